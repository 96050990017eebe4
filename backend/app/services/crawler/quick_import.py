"""Single-item import from a URL or pasted HTML."""

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import get_settings
from .catalog import CatalogRecord, CatalogStore, build_catalog_fields, find_duplicate
from .errors import CatalogConflictError, ConfigurationError
from .extraction import extract_from_html
from .fetcher import PageFetcher
from .images import ImageUploader, rehost_images
from .models import CrawlKind, CrawlSourceConfig, Extracted
from .slugs import SlugMode, resolve_slug
from .urls import validate_public_url

logger = logging.getLogger(__name__)


@dataclass
class QuickImportResult:
    record: CatalogRecord
    extracted: Extracted
    images_uploaded: int = 0


class QuickImporter:
    def __init__(
        self,
        catalog: CatalogStore,
        fetcher: Optional[PageFetcher] = None,
        uploader: Optional[ImageUploader] = None,
    ):
        self.catalog = catalog
        self.fetcher = fetcher or PageFetcher()
        self.uploader = uploader

    async def _load(
        self,
        config: CrawlSourceConfig,
        kind: CrawlKind,
        url: Optional[str],
        html: Optional[str],
        html_title: Optional[str],
    ) -> Extracted:
        if html:
            return extract_from_html(html, config, kind, url or "", title_override=html_title)
        if not url:
            raise ConfigurationError("Either url or html is required")
        validate_public_url(url, get_settings().blocked_hosts())
        page = await self.fetcher.fetch(url, config.request_headers)
        return extract_from_html(page, config, kind, url)

    async def preview(
        self,
        config: CrawlSourceConfig,
        kind: CrawlKind = CrawlKind.article,
        url: Optional[str] = None,
        html: Optional[str] = None,
        html_title: Optional[str] = None,
    ) -> Extracted:
        """Extraction result without touching the catalog or the uploader."""
        return await self._load(config, CrawlKind(kind), url, html, html_title)

    async def import_item(
        self,
        config: CrawlSourceConfig,
        kind: CrawlKind = CrawlKind.article,
        url: Optional[str] = None,
        html: Optional[str] = None,
        html_title: Optional[str] = None,
        category_id: Optional[int] = None,
        status: str = "draft",
        upload_images: bool = False,
        upload_folder: Optional[str] = None,
    ) -> QuickImportResult:
        kind = CrawlKind(kind)
        if upload_images and self.uploader is None:
            raise ConfigurationError("Image uploading is not configured")

        # Only URL imports can collide on source URL
        if url and not html:
            existing = await find_duplicate(self.catalog, url, kind)
            if existing is not None:
                raise CatalogConflictError(
                    "This URL has already been imported", field="source_url", value=url
                )

        extracted = await self._load(config, kind, url, html, html_title)

        uploaded = 0
        if upload_images:
            folder = upload_folder or (config.image_config.upload_folder if config.image_config else None)
            folder = folder or f"{kind.value}s"
            extracted, uploaded = await rehost_images(extracted, self.uploader, folder)

        slug = await resolve_slug(self.catalog, extracted.display_title, kind, SlugMode.REJECT)
        fields = build_catalog_fields(
            extracted, slug=slug, source_url=url, category_id=category_id, status=status
        )
        record = await self.catalog.create(kind, fields)
        logger.info("Quick-imported %s %s from %s", kind.value, record.id, url or "pasted HTML")
        return QuickImportResult(record=record, extracted=extracted, images_uploaded=uploaded)
