"""Crawl job lifecycle: queue, run, review, approve.

    queued -> processing -> success | failed | duplicate | pending_review
    pending_review -> success   (approval; suffix-mode slug)

Transitions only move forward. A failed job frees its URL for a new submission.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models import ACTIVE_JOB_STATUSES, CrawlJob, CrawlJobStatus, CrawlSource, CrawlType
from app.services.catalog_store import SqlCatalogStore
from .catalog import build_catalog_fields, find_duplicate
from .constants import FALLBACK_SELECTORS
from .errors import CatalogConflictError, ConfigurationError, JobStateError, NotFoundError
from .extraction import extract_from_html
from .fetcher import PageFetcher
from .models import CrawlKind, CrawlSourceConfig, extracted_from_dict, load_source_config
from .slugs import SlugMode, resolve_slug
from .urls import normalize_url, validate_public_url

logger = logging.getLogger(__name__)

# Extracted fields an operator may override when approving
EDITABLE_FIELDS = {
    "title", "content", "excerpt", "featured_image", "author", "publish_date",
    "name", "description", "price", "original_price", "sku",
    "meta_title", "meta_description", "images",
}


@dataclass
class JobSubmission:
    created: List[CrawlJob] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.created:
            return "All URLs have already been queued or crawled"
        return f"Queued {len(self.created)} URLs"


def fallback_config() -> CrawlSourceConfig:
    return load_source_config({"selectors": FALLBACK_SELECTORS})


class CrawlJobService:
    def __init__(self, db: AsyncSession, fetcher: Optional[PageFetcher] = None):
        self.db = db
        self.fetcher = fetcher or PageFetcher()
        self.catalog = SqlCatalogStore(db)

    async def get_job(self, job_id: int) -> CrawlJob:
        result = await self.db.execute(select(CrawlJob).where(CrawlJob.id == job_id))
        job = result.scalar_one_or_none()
        if job is None:
            raise NotFoundError(f"Crawl job {job_id} not found")
        return job

    async def get_source(self, source_id: int) -> CrawlSource:
        result = await self.db.execute(select(CrawlSource).where(CrawlSource.id == source_id))
        source = result.scalar_one_or_none()
        if source is None:
            raise NotFoundError(f"Crawl source {source_id} not found")
        return source

    async def source_config(self, source_id: Optional[int]) -> CrawlSourceConfig:
        if source_id is None:
            return fallback_config()
        source = await self.get_source(source_id)
        return load_source_config(source.config)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    async def create_jobs(
        self,
        urls: List[str],
        kind: CrawlKind = CrawlKind.article,
        source_id: Optional[int] = None,
    ) -> JobSubmission:
        settings = get_settings()
        urls = [url.strip() for url in urls if url and url.strip()]
        if not urls:
            raise ConfigurationError("At least one URL is required")
        if len(urls) > settings.crawler_batch_max_urls:
            raise ConfigurationError(f"Maximum {settings.crawler_batch_max_urls} URLs per batch")
        if source_id is not None:
            await self.get_source(source_id)

        submission = JobSubmission()
        candidates: List[str] = []
        for url in urls:
            try:
                validate_public_url(url, settings.blocked_hosts())
            except ConfigurationError:
                submission.invalid.append(url)
                continue
            normalized = normalize_url(url)
            if normalized in candidates:
                submission.duplicates.append(url)
            else:
                candidates.append(normalized)

        if not candidates:
            raise ConfigurationError("No valid URLs provided")

        active = await self.db.execute(
            select(CrawlJob.url).where(
                CrawlJob.url.in_(candidates),
                CrawlJob.status.in_(ACTIVE_JOB_STATUSES),
            )
        )
        claimed = set(active.scalars().all())
        failed_counts = dict(
            (
                await self.db.execute(
                    select(CrawlJob.url, func.count(CrawlJob.id))
                    .where(CrawlJob.url.in_(candidates), CrawlJob.status == CrawlJobStatus.failed)
                    .group_by(CrawlJob.url)
                )
            ).all()
        )

        rows = []
        for url in candidates:
            if url in claimed:
                submission.duplicates.append(url)
                continue
            rows.append({
                "url": url,
                "crawl_type": CrawlType(CrawlKind(kind).value),
                "source_id": source_id,
                "status": CrawlJobStatus.queued,
                "retry_count": failed_counts.get(url, 0),
            })

        await self._insert_jobs(rows, submission)
        for job in submission.created:
            await self.db.refresh(job)
        logger.info(
            "Queued %d crawl jobs (%d duplicate, %d invalid)",
            len(submission.created), len(submission.duplicates), len(submission.invalid),
        )
        return submission

    async def _insert_jobs(self, rows: List[Dict[str, Any]], submission: JobSubmission) -> None:
        jobs = [CrawlJob(**row) for row in rows]
        self.db.add_all(jobs)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent submission claimed one of the URLs since the check above
            await self.db.rollback()
            jobs = []
            for row in rows:
                job = CrawlJob(**row)
                self.db.add(job)
                try:
                    await self.db.commit()
                except IntegrityError:
                    await self.db.rollback()
                    logger.info("Crawl job for %s already claimed", row["url"])
                    submission.duplicates.append(row["url"])
                    continue
                jobs.append(job)
        submission.created.extend(jobs)

    async def list_jobs(
        self,
        status: Optional[CrawlJobStatus] = None,
        kind: Optional[CrawlKind] = None,
        source_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[CrawlJob], int]:
        filters = []
        if status is not None:
            filters.append(CrawlJob.status == CrawlJobStatus(status))
        if kind is not None:
            filters.append(CrawlJob.crawl_type == CrawlType(CrawlKind(kind).value))
        if source_id is not None:
            filters.append(CrawlJob.source_id == source_id)

        page = max(1, page)
        total = (await self.db.execute(select(func.count(CrawlJob.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(CrawlJob)
            .where(*filters)
            .order_by(CrawlJob.created_at.desc(), CrawlJob.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def delete_job(self, job_id: int) -> None:
        job = await self.get_job(job_id)
        if job.status == CrawlJobStatus.processing:
            raise JobStateError("Cannot delete a job while it is processing", status=job.status.value)
        await self.db.delete(job)
        await self.db.commit()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _claim(self, job: CrawlJob) -> None:
        """Move a queued job to processing; fails if another worker got there first."""
        result = await self.db.execute(
            update(CrawlJob)
            .where(CrawlJob.id == job.id, CrawlJob.status == CrawlJobStatus.queued)
            .values(status=CrawlJobStatus.processing)
        )
        await self.db.commit()
        if result.rowcount != 1:
            await self.db.refresh(job)
            raise JobStateError(
                f"Job {job.id} is {job.status.value}, only queued jobs can run",
                status=job.status.value,
            )
        await self.db.refresh(job)

    async def _finish(self, job: CrawlJob, status: CrawlJobStatus, **values: Any) -> CrawlJob:
        job.status = status
        job.processed_at = datetime.utcnow()
        for key, value in values.items():
            setattr(job, key, value)
        await self.db.commit()
        await self.db.refresh(job)
        logger.info("Crawl job %s -> %s", job.id, status.value)
        return job

    async def run_job(self, job_id: int) -> CrawlJob:
        """Fetch and extract a queued job, leaving it for review on success."""
        job = await self.get_job(job_id)
        if job.status != CrawlJobStatus.queued:
            raise JobStateError(
                f"Job {job.id} is {job.status.value}, only queued jobs can run",
                status=job.status.value,
            )
        await self._claim(job)
        kind = CrawlKind(job.crawl_type.value)

        try:
            existing = await find_duplicate(self.catalog, job.url, kind)
            if existing is not None:
                return await self._finish(
                    job,
                    CrawlJobStatus.duplicate,
                    created_item_id=existing.id,
                    error_message=f"{kind.value.capitalize()} already exists: {existing.id}",
                )
            config = await self.source_config(job.source_id)
            html = await self.fetcher.fetch(job.url, config.request_headers)
            extracted = extract_from_html(html, config, kind, job.url)
        except Exception as exc:
            logger.warning("Crawl job %s failed: %s", job.id, exc)
            return await self._finish(job, CrawlJobStatus.failed, error_message=str(exc))

        return await self._finish(
            job,
            CrawlJobStatus.pending_review,
            extracted_data=extracted.to_dict(),
            error_message=None,
        )

    # ------------------------------------------------------------------
    # Approve
    # ------------------------------------------------------------------

    async def approve_job(
        self,
        job_id: int,
        edits: Optional[Dict[str, Any]] = None,
        category_id: Optional[int] = None,
        status: str = "draft",
    ) -> CrawlJob:
        """Create the catalog record for a reviewed job, with operator edits applied."""
        job = await self.get_job(job_id)
        if job.status != CrawlJobStatus.pending_review:
            raise JobStateError("Job is not pending review", status=job.status.value)
        if not job.extracted_data:
            raise JobStateError("No extracted data found", status=job.status.value)

        kind = CrawlKind(job.crawl_type.value)
        data = dict(job.extracted_data)
        data.update({key: value for key, value in (edits or {}).items() if key in EDITABLE_FIELDS})
        extracted = extracted_from_dict(kind, data)
        if not extracted.display_title.strip():
            raise ConfigurationError("A title is required to approve a job")

        record = None
        for _ in range(3):
            slug = await resolve_slug(self.catalog, extracted.display_title, kind, SlugMode.SUFFIX)
            fields = build_catalog_fields(
                extracted, slug=slug, source_url=job.url, category_id=category_id, status=status
            )
            try:
                record = await self.catalog.create(kind, fields)
                break
            except CatalogConflictError as exc:
                if exc.field != "slug":
                    raise
                # Another writer took the slug between the check and the insert; try the next one.
                continue
        if record is None:
            raise CatalogConflictError(
                f'Could not reserve a slug for "{extracted.display_title}"', field="slug"
            )

        job = await self.get_job(job_id)
        return await self._finish(job, CrawlJobStatus.success, created_item_id=record.id)
