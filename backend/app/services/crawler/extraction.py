"""Selector extraction: turns a sanitized page into an article or product record."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

from selectolax.parser import HTMLParser, Node

from .constants import (
    DEFAULT_SKIP_IMAGE_PATTERNS,
    META_TITLE_MAX,
    META_DESCRIPTION_MAX,
    SEO_TITLE_MAX,
    SEO_DESCRIPTION_MAX,
    INSPECT_VALUE_MAX,
    INSPECT_LINKS_MAX,
)
from .errors import ConfigurationError, MissingTitleError
from .models import (
    ArticleSelectors,
    CrawlKind,
    CrawlSourceConfig,
    Extracted,
    ExtractedArticle,
    ExtractedProduct,
    ProductSelectors,
    SeoConfig,
    Transform,
)
from .sanitizer import (
    inner_html,
    lazy_source,
    node_attr,
    parse_document,
    prepare_document,
    safe_css,
    safe_css_first,
)
from .transforms import apply_transforms
from .urls import is_skippable_href, resolve_url

_ATTR_SUFFIX_RE = re.compile(r"::attr\(([^)]+)\)\s*$")


def split_attr_selector(selector: str) -> Tuple[str, Optional[str]]:
    """Split ``"css::attr(name)"`` into ``("css", "name")``."""
    selector = (selector or "").strip()
    match = _ATTR_SUFFIX_RE.search(selector)
    if not match:
        return selector, None
    return selector[: match.start()].strip(), match.group(1).strip().strip("'\"")


def collapse_whitespace(text: str) -> str:
    return " ".join((text or "").split())


def node_text(node: Optional[Node]) -> str:
    """Text content of a node; empty on parser quirks."""
    if node is None:
        return ""
    try:
        text = node.text(deep=True)
    except Exception:
        return ""
    return text or ""


def image_source(node: Node) -> str:
    """``src`` of an image, falling back to its lazy-load attributes."""
    src = node_attr(node, "src")
    if src and not src.startswith("data:"):
        return src
    return lazy_source(node) or src


def compile_skip_patterns(patterns: Optional[Iterable[str]]) -> List[Pattern]:
    compiled = []
    for pattern in patterns if patterns is not None else DEFAULT_SKIP_IMAGE_PATTERNS:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error:
            continue
    return compiled


def is_valid_image_url(url: str, skip_patterns: Iterable[Pattern]) -> bool:
    if not url or url.startswith("data:"):
        return False
    return not any(pattern.search(url) for pattern in skip_patterns)


# ============================================================================
# Field primitives
# ============================================================================

def extract_field(
    tree: HTMLParser,
    selector: Optional[str],
    transforms: Iterable[Transform] = (),
    keep_html: bool = False,
    base_url: str = "",
) -> str:
    """Value of the first match of ``selector``, or "" when nothing matches."""
    if not selector:
        return ""
    css, attribute = split_attr_selector(selector)
    node = safe_css_first(tree, css)
    if node is None:
        return ""

    if attribute:
        value = node_attr(node, attribute)
    elif node.tag == "meta":
        value = node_attr(node, "content")
    elif node.tag == "img":
        value = resolve_url(image_source(node), base_url) if base_url else image_source(node)
    elif keep_html:
        value = inner_html(node)
    else:
        value = node_text(node)

    transforms = list(transforms or ())
    if not transforms and not keep_html:
        return collapse_whitespace(value)
    return apply_transforms(value, transforms)


def extract_image_url(tree: HTMLParser, selector: Optional[str], base_url: str) -> Optional[str]:
    if not selector:
        return None
    css, attribute = split_attr_selector(selector)
    node = safe_css_first(tree, css)
    if node is None:
        return None
    if attribute:
        src = node_attr(node, attribute)
    elif node.tag == "meta":
        src = node_attr(node, "content")
    elif node.tag == "img":
        src = image_source(node)
    else:
        img = safe_css_first(node, "img")
        src = image_source(img) if img is not None else ""
    return resolve_url(src, base_url) or None


def extract_images(
    tree: HTMLParser,
    selector: Optional[str],
    base_url: str,
    skip_patterns: Iterable[Pattern] = (),
) -> List[str]:
    """Images matched by ``selector`` (or contained in its matches), in document order, de-duplicated."""
    if not selector:
        return []
    skip_patterns = list(skip_patterns)
    css, attribute = split_attr_selector(selector)
    images: List[str] = []

    def _add(raw: str) -> None:
        url = resolve_url(raw, base_url)
        if url and url not in images and is_valid_image_url(url, skip_patterns):
            images.append(url)

    for node in safe_css(tree, css):
        if attribute:
            _add(node_attr(node, attribute))
        elif node.tag == "img":
            _add(image_source(node))
        else:
            for img in safe_css(node, "img"):
                _add(image_source(img))
    return images


def extract_seo_metadata(tree: HTMLParser, seo_config: Optional[SeoConfig]) -> Dict[str, Optional[str]]:
    """Page-level SEO title/description: og tags, then ``<title>``/``h1`` or meta description."""
    if seo_config is not None and not seo_config.extract_meta:
        return {"meta_title": None, "meta_description": None}

    title = (
        node_attr(safe_css_first(tree, 'meta[property="og:title"]'), "content")
        or collapse_whitespace(node_text(safe_css_first(tree, "title")))
        or collapse_whitespace(node_text(safe_css_first(tree, "h1")))
    )
    description = (
        node_attr(safe_css_first(tree, 'meta[property="og:description"]'), "content")
        or node_attr(safe_css_first(tree, 'meta[name="description"]'), "content")
    )
    return {
        "meta_title": title[:SEO_TITLE_MAX] if title else None,
        "meta_description": description[:SEO_DESCRIPTION_MAX] if description else None,
    }


def parse_price(price_text: Optional[str]) -> Optional[int]:
    """Strip everything but digits; ``None`` when nothing numeric remains."""
    if not price_text:
        return None
    digits = re.sub(r"\D", "", price_text)
    return int(digits) if digits else None


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if not value:
        return None
    return value[:limit]


def _meta_fields(
    tree: HTMLParser,
    config: CrawlSourceConfig,
    explicit_title: Optional[str],
    explicit_description: Optional[str],
    title: str,
    excerpt: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    seo = config.seo_config
    title_selector = explicit_title or (seo.meta_title_selector if seo else None)
    description_selector = explicit_description or (seo.meta_description_selector if seo else None)

    meta_title = extract_field(tree, title_selector, config.transforms_for("meta_title")) or None
    meta_description = (
        extract_field(tree, description_selector, config.transforms_for("meta_description")) or None
    )
    if meta_title is None or meta_description is None:
        page_meta = extract_seo_metadata(tree, seo)
        meta_title = meta_title or page_meta["meta_title"]
        meta_description = meta_description or page_meta["meta_description"]
    return (
        meta_title or _truncate(title, META_TITLE_MAX),
        meta_description or _truncate(excerpt, META_DESCRIPTION_MAX),
    )


# ============================================================================
# Records
# ============================================================================

def extract_article(
    tree: HTMLParser,
    selectors: ArticleSelectors,
    config: CrawlSourceConfig,
    base_url: str,
    title_override: Optional[str] = None,
) -> ExtractedArticle:
    """Extract an article from a tree already passed through ``prepare_document``."""
    title = (title_override or "").strip() or extract_field(tree, selectors.title, config.transforms_for("title"))
    if not title:
        raise MissingTitleError(selectors.title)

    content = extract_field(tree, selectors.content, config.transforms_for("content"), keep_html=True)
    excerpt = extract_field(tree, selectors.excerpt, config.transforms_for("excerpt")) or None
    author = extract_field(tree, selectors.author, config.transforms_for("author")) or None
    publish_date = extract_field(tree, selectors.publish_date, config.transforms_for("publish_date")) or None
    featured_image = extract_image_url(tree, selectors.featured_image, base_url)

    skip = compile_skip_patterns(config.image_config.skip_patterns if config.image_config else None)
    images = extract_images(tree, selectors.content, base_url, skip)

    meta_title, meta_description = _meta_fields(
        tree, config, selectors.meta_title, selectors.meta_description, title, excerpt
    )

    return ExtractedArticle(
        title=title,
        content=content,
        excerpt=excerpt,
        featured_image=featured_image,
        author=author,
        publish_date=publish_date,
        meta_title=meta_title,
        meta_description=meta_description,
        images=images,
    )


def extract_product(
    tree: HTMLParser,
    selectors: ProductSelectors,
    config: CrawlSourceConfig,
    base_url: str,
    title_override: Optional[str] = None,
) -> ExtractedProduct:
    name = (title_override or "").strip() or extract_field(tree, selectors.name, config.transforms_for("name"))
    if not name:
        raise MissingTitleError(selectors.name)

    description = extract_field(
        tree, selectors.description, config.transforms_for("description"), keep_html=True
    )
    price = parse_price(extract_field(tree, selectors.price, config.transforms_for("price")))
    original_price = parse_price(
        extract_field(tree, selectors.original_price, config.transforms_for("original_price"))
    )
    sku = extract_field(tree, selectors.sku, config.transforms_for("sku")) or None

    skip = compile_skip_patterns(config.image_config.skip_patterns if config.image_config else None)
    images = extract_images(tree, selectors.images or selectors.description, base_url, skip)

    excerpt = collapse_whitespace(re.sub(r"<[^>]*>", " ", description)) or None
    meta_title, meta_description = _meta_fields(
        tree, config, selectors.meta_title, selectors.meta_description, name, excerpt
    )

    return ExtractedProduct(
        name=name,
        description=description,
        price=price,
        original_price=original_price,
        sku=sku,
        meta_title=meta_title,
        meta_description=meta_description,
        images=images,
    )


def extract_from_html(
    html: str,
    config: CrawlSourceConfig,
    kind: CrawlKind,
    page_url: str,
    title_override: Optional[str] = None,
) -> Extracted:
    """Sanitize ``html`` and extract a record of ``kind`` using the profile's selectors.

    ``title_override`` replaces the title (or product name) selector, for pasted
    HTML whose title is supplied by the operator.
    """
    selectors = config.require_selectors(kind, require_title=not title_override)
    tree = prepare_document(html, config.remove_elements)
    if CrawlKind(kind) == CrawlKind.article:
        return extract_article(tree, selectors, config, page_url, title_override)
    return extract_product(tree, selectors, config, page_url, title_override)


# ============================================================================
# Selector testing
# ============================================================================

def test_selectors(html: str, selectors: Dict[str, str]) -> Dict[str, Dict[str, Any]]:
    """Per-field match report for a selector map against raw page HTML."""
    tree = parse_document(html)
    results: Dict[str, Dict[str, Any]] = {}
    for name, selector in selectors.items():
        css, attribute = split_attr_selector(selector)
        try:
            matches = list(tree.css(css))
        except Exception:
            results[name] = {"found": False, "value": "Invalid selector", "count": 0}
            continue
        value = ""
        if matches:
            first = matches[0]
            value = node_attr(first, attribute) if attribute else collapse_whitespace(node_text(first))
        results[name] = {
            "found": bool(matches),
            "value": value[:INSPECT_VALUE_MAX],
            "count": len(matches),
        }
    return results


# Keep pytest from collecting the helper above when imported into test modules.
test_selectors.__test__ = False


@dataclass
class SelectorInspection:
    found: bool
    count: int = 0
    value: Optional[str] = None
    values: List[str] = field(default_factory=list)
    html_content: Optional[str] = None
    images: List[str] = field(default_factory=list)
    links: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.found,
            "count": self.count,
            "value": self.value,
            "values": self.values,
            "html_content": self.html_content,
            "images": self.images,
            "links": self.links,
            "char_count": len(self.value or ""),
            "html_char_count": len(self.html_content or ""),
        }


def inspect_selector(html: str, selector: str, page_url: str, multiple: bool = False) -> SelectorInspection:
    """Inspect what a single selector yields on a page.

    In multiple mode every match contributes a value (attribute, image URL or
    text). Otherwise the first match is reported in full: text, inner HTML and
    the images and links it contains.
    """
    if not selector or not selector.strip():
        raise ConfigurationError("selector is required")
    tree = parse_document(html)
    css, attribute = split_attr_selector(selector)
    matches = safe_css(tree, css)
    if not matches:
        return SelectorInspection(found=False)

    if multiple:
        values: List[str] = []
        images: List[str] = []
        for node in matches:
            if attribute:
                value = node_attr(node, attribute)
            elif node.tag == "img":
                value = resolve_url(image_source(node), page_url)
                if value:
                    images.append(value)
            else:
                value = collapse_whitespace(node_text(node))
            if value:
                values.append(value)
        return SelectorInspection(found=True, count=len(values), values=values, images=images)

    first = matches[0]
    report = SelectorInspection(found=True, count=len(matches))
    if attribute:
        report.value = node_attr(first, attribute)
        if report.value and re.search(r"\.(jpe?g|png|webp|gif)", report.value, re.IGNORECASE):
            report.images.append(resolve_url(report.value, page_url))
    elif first.tag == "img":
        report.value = resolve_url(image_source(first), page_url)
        if report.value:
            report.images.append(report.value)
    elif first.tag == "meta":
        report.value = node_attr(first, "content")
    else:
        report.value = collapse_whitespace(node_text(first))
        report.html_content = inner_html(first) or None
        for img in safe_css(first, "img"):
            url = resolve_url(image_source(img), page_url)
            if url and url not in report.images:
                report.images.append(url)
        for link in safe_css(first, "a[href]"):
            href = node_attr(link, "href")
            text = collapse_whitespace(node_text(link))
            if text and not is_skippable_href(href):
                report.links.append({"url": resolve_url(href, page_url), "text": text[:100]})
                if len(report.links) >= INSPECT_LINKS_MAX:
                    break
    return report
