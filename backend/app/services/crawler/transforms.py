"""Per-field text transforms applied to extracted values."""

import logging
import re
from typing import Iterable

from .models import Transform

logger = logging.getLogger(__name__)

HTML_ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&nbsp;": " ",
}

_TAG_RE = re.compile(r"<[^>]*>")
_EMPTY_TAG_RE = re.compile(r"<(\w+)[^>]*>\s*</\1>")
_ENTITY_RE = re.compile(r"&[^;\s]+;")


def decode_html_entities(text: str) -> str:
    return _ENTITY_RE.sub(lambda match: HTML_ENTITIES.get(match.group(0), match.group(0)), text)


def _apply_one(value: str, transform: Transform) -> str:
    kind = transform.type
    if kind == "trim":
        return value.strip()
    if kind == "stripTags":
        return _TAG_RE.sub("", value)
    if kind == "replace":
        if transform.find is None:
            return value
        return value.replace(transform.find, transform.replace or "")
    if kind == "regex":
        if not transform.pattern:
            return value
        try:
            return re.sub(transform.pattern, transform.replace or "", value)
        except re.error:
            logger.debug("Skipping invalid transform pattern %r", transform.pattern)
            return value
    if kind == "maxLength":
        limit = transform.value
        if isinstance(limit, int) and len(value) > limit:
            return value[:limit] + (transform.ellipsis or "")
        return value
    if kind == "toNumber":
        return re.sub(r"\D", "", value)
    if kind == "toLower":
        return value.lower()
    if kind == "toUpper":
        return value.upper()
    if kind == "removeEmptyTags":
        return _EMPTY_TAG_RE.sub("", value)
    if kind == "decodeHtml":
        return decode_html_entities(value)
    if kind == "addPrefix":
        return f"{transform.value}{value}" if isinstance(transform.value, str) else value
    if kind == "addSuffix":
        return f"{value}{transform.value}" if isinstance(transform.value, str) else value
    return value


def apply_transforms(value: str, transforms: Iterable[Transform]) -> str:
    """Run ``transforms`` in order. With no transforms the value is only trimmed."""
    transforms = list(transforms or ())
    if not transforms:
        return value.strip()
    for transform in transforms:
        value = _apply_one(value, transform)
    return value
