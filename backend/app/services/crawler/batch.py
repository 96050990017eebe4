"""Batch orchestrator: runs the fetch/extract/dedup/slug/persist pipeline over a list of URLs."""

import asyncio
import logging
from typing import Callable, List, Optional

from app.config import get_settings
from .catalog import CatalogStore, build_catalog_fields, find_duplicate
from .errors import CatalogConflictError, ConfigurationError, SlugConflictError
from .extraction import extract_from_html
from .fetcher import PageFetcher
from .models import (
    BatchItemResult,
    BatchItemStatus,
    BatchResult,
    CrawlKind,
    CrawlSourceConfig,
)
from .slugs import SlugMode, resolve_slug

logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """Processes batch URLs strictly in order, one at a time.

    Per-URL failures are recorded and never abort the run. The optional
    ``should_cancel`` callable is checked before each URL.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        fetcher: Optional[PageFetcher] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
        sleep: Callable = asyncio.sleep,
    ):
        self.catalog = catalog
        self.fetcher = fetcher or PageFetcher()
        self.progress_callback = progress_callback
        self._sleep = sleep

    def _log(self, message: str) -> None:
        """Log progress if callback is set."""
        if self.progress_callback:
            self.progress_callback(message)

    async def run_batch(
        self,
        urls: List[str],
        config: CrawlSourceConfig,
        category_id: Optional[int] = None,
        status: str = "draft",
        kind: CrawlKind = CrawlKind.article,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> BatchResult:
        kind = CrawlKind(kind)
        max_urls = get_settings().crawler_batch_max_urls
        if len(urls) > max_urls:
            raise ConfigurationError(f"Maximum {max_urls} URLs per batch")
        config.require_selectors(kind)

        result = BatchResult()
        pending = [url.strip() for url in urls if url and url.strip()]
        self._log(f"Starting batch of {len(pending)} {kind.value} URLs")

        for position, url in enumerate(pending):
            if should_cancel is not None and should_cancel():
                result.cancelled = True
                self._log("Batch cancelled")
                break

            item, fetched = await self._process(url, config, category_id, status, kind)
            result.add(item)
            self._log(f"[{position + 1}/{len(pending)}] {item.status.value}: {url}")

            if fetched and config.request_delay_ms > 0 and position < len(pending) - 1:
                await self._sleep(config.request_delay_ms / 1000)

        logger.info(result.message)
        return result

    async def _process(
        self,
        url: str,
        config: CrawlSourceConfig,
        category_id: Optional[int],
        status: str,
        kind: CrawlKind,
    ):
        """Run one URL through the pipeline; returns the outcome and whether a fetch happened."""
        try:
            existing = await find_duplicate(self.catalog, url, kind)
        except Exception as exc:
            logger.warning("Batch duplicate check failed for %s: %s", url, exc)
            return BatchItemResult(url=url, status=BatchItemStatus.failed, error=str(exc)), False
        if existing is not None:
            return BatchItemResult(
                url=url,
                status=BatchItemStatus.duplicate,
                error="URL already imported",
                item_id=existing.id,
                slug=existing.slug,
            ), False

        try:
            html = await self.fetcher.fetch(url, config.request_headers)
        except Exception as exc:
            logger.warning("Batch fetch failed for %s: %s", url, exc)
            return BatchItemResult(url=url, status=BatchItemStatus.failed, error=str(exc)), True

        try:
            extracted = extract_from_html(html, config, kind, url)
            slug = await resolve_slug(self.catalog, extracted.display_title, kind, SlugMode.REJECT)
            fields = build_catalog_fields(
                extracted, slug=slug, source_url=url, category_id=category_id, status=status
            )
            record = await self.catalog.create(kind, fields)
        except SlugConflictError as exc:
            return BatchItemResult(
                url=url,
                status=BatchItemStatus.slug_conflict,
                error=str(exc),
                slug=exc.slug,
                title=exc.title,
            ), True
        except CatalogConflictError as exc:
            # Lost a uniqueness race with a concurrent writer.
            outcome = BatchItemStatus.slug_conflict if exc.field == "slug" else BatchItemStatus.duplicate
            return BatchItemResult(
                url=url,
                status=outcome,
                error=str(exc),
                slug=exc.value if exc.field == "slug" else None,
                title=extracted.display_title,
            ), True
        except Exception as exc:
            logger.warning("Batch item failed for %s: %s", url, exc)
            return BatchItemResult(url=url, status=BatchItemStatus.failed, error=str(exc)), True

        return BatchItemResult(
            url=url,
            status=BatchItemStatus.success,
            item_id=record.id,
            slug=record.slug,
            title=extracted.display_title,
        ), True
