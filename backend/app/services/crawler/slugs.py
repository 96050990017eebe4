"""Slug generation and collision handling against the catalog."""

import re
import unicodedata
from enum import Enum

from .catalog import CatalogStore
from .constants import SLUG_MAX_LENGTH
from .errors import ExtractionError, SlugConflictError
from .models import CrawlKind


class SlugMode(str, Enum):
    SUFFIX = "suffix"  # append -1, -2, ... until free
    REJECT = "reject"  # raise SlugConflictError


def slugify(title: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """URL-safe slug from a title.

    >>> slugify("Đường Ăn Kiêng")
    'duong-an-kieng'
    """
    if not title:
        return ""

    slug = title.lower()
    slug = slug.replace("đ", "d")
    slug = unicodedata.normalize("NFD", slug)
    slug = "".join(ch for ch in slug if not unicodedata.combining(ch))

    # Keep ascii letters, digits, whitespace and hyphens
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")

    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


async def resolve_slug(
    catalog: CatalogStore,
    title: str,
    kind: CrawlKind,
    mode: SlugMode = SlugMode.REJECT,
) -> str:
    """Slug for ``title`` that is free in the catalog, per ``mode``."""
    base = slugify(title)
    if not base:
        raise ExtractionError(f'Title "{title}" does not produce a usable slug', field="slug")
    if await catalog.find_by_slug(base, kind) is None:
        return base

    if mode == SlugMode.REJECT:
        raise SlugConflictError(base, title)

    counter = 1
    while True:
        candidate = f"{base}-{counter}"
        if await catalog.find_by_slug(candidate, kind) is None:
            return candidate
        counter += 1
