"""Catalog store interface and the record fields the crawler writes."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from .constants import META_TITLE_MAX, META_DESCRIPTION_MAX
from .models import CrawlKind, Extracted, ExtractedArticle
from .urls import normalize_url


@dataclass(frozen=True)
class CatalogRecord:
    id: int
    slug: str


class CatalogStore(Protocol):
    """Persistence for created articles/products.

    Implementations must enforce uniqueness of ``(kind, source_url)`` and
    ``(kind, slug)`` and raise ``CatalogConflictError`` when a write loses.
    """

    async def find_by_source_url(self, url: str, kind: CrawlKind) -> Optional[CatalogRecord]:
        ...

    async def find_by_slug(self, slug: str, kind: CrawlKind) -> Optional[CatalogRecord]:
        ...

    async def create(self, kind: CrawlKind, fields: Dict[str, Any]) -> CatalogRecord:
        ...


async def find_duplicate(catalog: CatalogStore, url: str, kind: CrawlKind) -> Optional[CatalogRecord]:
    """Existing record whose stored source URL matches ``url`` after normalization."""
    normalized = normalize_url(url)
    if not normalized:
        return None
    return await catalog.find_by_source_url(normalized, CrawlKind(kind))


async def is_duplicate(catalog: CatalogStore, url: str, kind: CrawlKind) -> bool:
    return await find_duplicate(catalog, url, kind) is not None


def build_catalog_fields(
    extracted: Extracted,
    *,
    slug: str,
    source_url: Optional[str],
    category_id: Optional[int],
    status: str,
) -> Dict[str, Any]:
    """Column values for a new catalog record built from an extraction result."""
    fields: Dict[str, Any] = {
        "slug": slug,
        "source_url": normalize_url(source_url) if source_url else None,
        "category_id": category_id,
        "status": status,
        "meta_title": extracted.meta_title or extracted.display_title[:META_TITLE_MAX],
        "meta_description": extracted.meta_description or _summary(extracted),
        "images": list(extracted.images),
    }
    if isinstance(extracted, ExtractedArticle):
        fields.update(
            title=extracted.title,
            content=extracted.content,
            excerpt=extracted.excerpt,
            featured_image=extracted.featured_image or (extracted.images[0] if extracted.images else None),
            author=extracted.author,
            publish_date=extracted.publish_date,
        )
    else:
        fields.update(
            name=extracted.name,
            description=extracted.description,
            price=extracted.price,
            original_price=extracted.original_price,
            sku=extracted.sku,
        )
    return fields


def _summary(extracted: Extracted) -> Optional[str]:
    if isinstance(extracted, ExtractedArticle) and extracted.excerpt:
        return extracted.excerpt[:META_DESCRIPTION_MAX]
    return None
