"""Content sanitizer: strips page chrome and tracking hooks and resolves lazy images.

Every extraction goes through ``prepare_document`` first, so extraction functions
can assume a cleaned tree.
"""

import logging
from typing import Iterable, List, Optional

from selectolax.parser import HTMLParser, Node

from .constants import DEFAULT_REMOVE_ELEMENTS, REMOVE_ATTRIBUTES, LAZY_LOAD_ATTRS

logger = logging.getLogger(__name__)

_REMOVE_ATTRIBUTES = frozenset(REMOVE_ATTRIBUTES)


def parse_document(html: str) -> HTMLParser:
    return HTMLParser(html or "")


def safe_css(root, selector: str) -> List[Node]:
    """Run a CSS query, treating an invalid selector as matching nothing."""
    if not selector or not selector.strip():
        return []
    try:
        return list(root.css(selector.strip()))
    except Exception:
        logger.debug("Skipping invalid selector %r", selector)
        return []


def safe_css_first(root, selector: str) -> Optional[Node]:
    matches = safe_css(root, selector)
    return matches[0] if matches else None


def node_attr(node: Optional[Node], key: str) -> str:
    if node is None:
        return ""
    raw = node.attributes.get(key)
    if raw is None:
        return ""
    return str(raw).strip()


def sanitize_document(tree: HTMLParser, remove_selectors: Iterable[str] = ()) -> HTMLParser:
    """Remove built-in noise elements, then caller selectors, then event/tracking attributes."""
    for selector in list(DEFAULT_REMOVE_ELEMENTS) + list(remove_selectors or ()):
        # Innermost first: a decomposed ancestor frees its descendants.
        for node in reversed(safe_css(tree, selector)):
            node.decompose()

    for node in safe_css(tree, "*"):
        names = [
            name for name in node.attributes
            if name.lower() in _REMOVE_ATTRIBUTES or name.lower().startswith("on")
        ]
        for name in names:
            del node.attrs[name]
    return tree


def _first_srcset_url(value: str) -> str:
    first = value.split(",")[0].strip()
    return first.split()[0] if first else ""


def lazy_source(node: Node) -> str:
    """First usable lazy-load URL on an image, in attribute priority order."""
    for attr in LAZY_LOAD_ATTRS:
        value = node_attr(node, attr)
        if "srcset" in attr and value:
            value = _first_srcset_url(value)
        if value and not value.startswith("data:"):
            return value
    return ""


def resolve_lazy_images(tree: HTMLParser) -> int:
    """Promote lazy-load attributes into ``src`` where it is empty or a data URI."""
    promoted = 0
    for img in safe_css(tree, "img"):
        src = node_attr(img, "src")
        if src and not src.startswith("data:"):
            continue
        lazy = lazy_source(img)
        if lazy:
            img.attrs["src"] = lazy
            promoted += 1
    return promoted


def prepare_document(html: str, remove_selectors: Iterable[str] = ()) -> HTMLParser:
    tree = parse_document(html)
    sanitize_document(tree, remove_selectors)
    resolve_lazy_images(tree)
    return tree


def inner_html(node: Optional[Node]) -> str:
    """Serialized children of ``node`` without its own tag."""
    if node is None:
        return ""
    parts = []
    for child in node.iter(include_text=True):
        parts.append(child.html or "")
    return "".join(parts)
