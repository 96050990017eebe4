"""Crawler API routes - selector testing, batch import, list pages, jobs and sources."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.config import get_settings
from app.models.base import get_db
from app.models.crawl import CrawlJob, CrawlJobStatus, CrawlSource, CrawlType
from app.services.catalog_store import SqlCatalogStore
from app.services.crawler.batch import BatchOrchestrator
from app.services.crawler.errors import (
    CatalogConflictError,
    ConfigurationError,
    CrawlerError,
    ExtractionError,
    FetchError,
    JobStateError,
    NotFoundError,
    SlugConflictError,
)
from app.services.crawler.extraction import inspect_selector, test_selectors
from app.services.crawler.fetcher import PageFetcher
from app.services.crawler.images import ImageUploader
from app.services.crawler.jobs import CrawlJobService
from app.services.crawler.links import ListPageExtractor
from app.services.crawler.models import CrawlKind, CrawlSourceConfig, PaginationConfig, load_source_config
from app.services.crawler.quick_import import QuickImporter
from app.services.crawler.urls import validate_public_url

router = APIRouter()


# ============================================================================
# Dependencies
# ============================================================================

def get_fetcher() -> PageFetcher:
    return PageFetcher()


def get_image_uploader() -> Optional[ImageUploader]:
    """No image host is wired by default; deployments override this dependency."""
    return None


def _http_error(exc: CrawlerError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ConfigurationError, JobStateError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, SlugConflictError):
        return HTTPException(
            status_code=409,
            detail={"error": str(exc), "slug_conflict": True, "slug": exc.slug},
        )
    if isinstance(exc, CatalogConflictError):
        return HTTPException(
            status_code=409,
            detail={"error": str(exc), "duplicate": exc.field == "source_url", "field": exc.field},
        )
    if isinstance(exc, (FetchError, ExtractionError)):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _check_url(url: str) -> str:
    try:
        return validate_public_url(url, get_settings().blocked_hosts())
    except ConfigurationError as exc:
        raise _http_error(exc)


async def _resolve_config(
    db: AsyncSession,
    source_id: Optional[int],
    config: Optional[Dict[str, Any]],
) -> CrawlSourceConfig:
    try:
        if config is not None:
            return load_source_config(config)
        return await CrawlJobService(db).source_config(source_id)
    except CrawlerError as exc:
        raise _http_error(exc)


async def _list_profile(db: AsyncSession, source_id: Optional[int]) -> Optional[CrawlSourceConfig]:
    if source_id is None:
        return None
    return await _resolve_config(db, source_id, None)


def _list_delay(delay_ms: Optional[int], profile: Optional[CrawlSourceConfig]) -> int:
    if delay_ms is not None:
        return delay_ms
    return profile.request_delay_ms if profile else 0


def _mapping_response(profile: Optional[CrawlSourceConfig], url: str) -> Optional[Dict[str, Any]]:
    mapping = profile.mapping_for(url) if profile else None
    if mapping is None:
        return None
    return {"id": mapping.id, "category_id": mapping.category_id, "status": mapping.status}


# ============================================================================
# Pydantic Schemas
# ============================================================================

class TestSelectorsRequest(BaseModel):
    url: str
    selectors: Dict[str, str]
    headers: Dict[str, str] = Field(default_factory=dict)


class InspectSelectorRequest(BaseModel):
    url: str
    selector: str
    is_multiple: bool = False


class BatchRequest(BaseModel):
    urls: List[str]
    kind: CrawlKind = CrawlKind.article
    source_id: Optional[int] = None
    config: Optional[Dict[str, Any]] = None
    category_id: Optional[int] = None
    status: str = "draft"


class ExtractLinksRequest(BaseModel):
    url: str
    source_id: Optional[int] = None
    link_selector: Optional[str] = None
    container_selector: Optional[str] = None
    filter_pattern: Optional[str] = None
    exclude_pattern: Optional[str] = None
    limit: int = Field(default=100, ge=1, le=1000)
    pagination: Optional[PaginationConfig] = None
    delay_ms: Optional[int] = Field(default=None, ge=0)


class TestListRequest(BaseModel):
    url: str
    source_id: Optional[int] = None
    item_selector: Optional[str] = None
    link_selector: Optional[str] = None
    image_selector: Optional[str] = None
    title_selector: Optional[str] = None
    filter_pattern: Optional[str] = None
    exclude_pattern: Optional[str] = None


class LinkResponse(BaseModel):
    url: str
    title: str
    image: Optional[str] = None
    index: int


class JobCreate(BaseModel):
    urls: List[str] = Field(default_factory=list)
    url: Optional[str] = None
    kind: CrawlKind = CrawlKind.article
    source_id: Optional[int] = None


class JobResponse(BaseModel):
    id: int
    url: str
    kind: str
    source_id: Optional[int]
    status: str
    extracted_data: Optional[Dict[str, Any]]
    created_item_id: Optional[int]
    error_message: Optional[str]
    retry_count: int
    created_at: datetime
    processed_at: Optional[datetime]


class JobApprove(BaseModel):
    edits: Dict[str, Any] = Field(default_factory=dict)
    category_id: Optional[int] = None
    status: str = "draft"


class QuickImportRequest(BaseModel):
    url: Optional[str] = None
    html: Optional[str] = None
    html_title: Optional[str] = None
    kind: CrawlKind = CrawlKind.article
    selectors: Dict[str, str] = Field(default_factory=dict)
    remove_selectors: List[str] = Field(default_factory=list)
    category_id: Optional[int] = None
    status: str = "draft"
    upload_images: bool = False
    upload_folder: Optional[str] = None


class SourceCreate(BaseModel):
    name: str
    base_url: str
    kind: CrawlKind = CrawlKind.article
    config: Dict[str, Any] = Field(default_factory=dict)


class SourceResponse(BaseModel):
    id: int
    name: str
    base_url: str
    kind: str
    config: Dict[str, Any]
    is_active: bool
    created_at: datetime


def _job_response(job: CrawlJob) -> JobResponse:
    return JobResponse(
        id=job.id,
        url=job.url,
        kind=job.crawl_type.value,
        source_id=job.source_id,
        status=job.status.value,
        extracted_data=job.extracted_data,
        created_item_id=job.created_item_id,
        error_message=job.error_message,
        retry_count=job.retry_count or 0,
        created_at=job.created_at,
        processed_at=job.processed_at,
    )


def _source_response(source: CrawlSource) -> SourceResponse:
    return SourceResponse(
        id=source.id,
        name=source.name,
        base_url=source.base_url,
        kind=source.crawl_type.value,
        config=source.config or {},
        is_active=bool(source.is_active),
        created_at=source.created_at,
    )


# ============================================================================
# Selector testing
# ============================================================================

@router.post("/test")
async def test_source_selectors(
    data: TestSelectorsRequest,
    fetcher: PageFetcher = Depends(get_fetcher),
):
    """Report what each selector in a map matches on a live page."""
    url = _check_url(data.url)
    try:
        html = await fetcher.fetch(url, data.headers)
    except CrawlerError as exc:
        raise _http_error(exc)
    return {"success": True, "results": test_selectors(html, data.selectors)}


@router.post("/test-selector")
async def test_single_selector(
    data: InspectSelectorRequest,
    fetcher: PageFetcher = Depends(get_fetcher),
):
    """Inspect one selector in detail (value, inner HTML, images, links)."""
    url = _check_url(data.url)
    try:
        html = await fetcher.fetch(url)
        report = inspect_selector(html, data.selector, url, multiple=data.is_multiple)
    except CrawlerError as exc:
        raise _http_error(exc)
    return report.to_dict()


# ============================================================================
# Batch import
# ============================================================================

@router.post("/batch")
async def run_batch(
    data: BatchRequest,
    db: AsyncSession = Depends(get_db),
    fetcher: PageFetcher = Depends(get_fetcher),
):
    """Import up to 50 URLs. Per-URL failures are reported in the result, not as errors."""
    config = await _resolve_config(db, data.source_id, data.config)
    orchestrator = BatchOrchestrator(SqlCatalogStore(db), fetcher)
    try:
        result = await orchestrator.run_batch(
            data.urls, config, data.category_id, data.status, data.kind
        )
    except ConfigurationError as exc:
        raise _http_error(exc)
    return result.to_dict()


# ============================================================================
# List pages
# ============================================================================

@router.post("/extract-links")
async def extract_links(
    data: ExtractLinksRequest,
    db: AsyncSession = Depends(get_db),
    fetcher: PageFetcher = Depends(get_fetcher),
):
    """Collect detail-page links from a category or index page.

    With ``source_id`` the stored profile supplies the link selector, request
    headers, delay, pagination and page bound the request leaves unset.
    """
    url = _check_url(data.url)
    profile = await _list_profile(db, data.source_id)
    extractor = ListPageExtractor(fetcher)
    try:
        links = await extractor.extract_links(
            url,
            link_selector=data.link_selector or (profile.list_link_selector if profile else None) or "a[href]",
            container_selector=data.container_selector,
            filter_pattern=data.filter_pattern,
            exclude_pattern=data.exclude_pattern,
            limit=data.limit,
            headers=profile.request_headers if profile else None,
            pagination=data.pagination or (profile.pagination_config if profile else None),
            delay_ms=_list_delay(data.delay_ms, profile),
            max_pages=profile.list_max_pages if profile else None,
        )
    except CrawlerError as exc:
        raise _http_error(exc)
    return {
        "success": True,
        "source_url": url,
        "links_found": len(links),
        "links": [LinkResponse(**vars(link)) for link in links],
        "category_mapping": _mapping_response(profile, url),
    }


@router.post("/test-list")
async def test_list_page(
    data: TestListRequest,
    db: AsyncSession = Depends(get_db),
    fetcher: PageFetcher = Depends(get_fetcher),
):
    """Preview what a list-item profile finds on one page."""
    url = _check_url(data.url)
    profile = await _list_profile(db, data.source_id)
    extractor = ListPageExtractor(fetcher)
    try:
        items = await extractor.extract_items(
            url,
            item_selector=data.item_selector or (profile.list_item_selector if profile else None),
            link_selector=data.link_selector or (profile.list_link_selector if profile else None),
            image_selector=data.image_selector or (profile.list_image_selector if profile else None),
            title_selector=data.title_selector or (profile.list_title_selector if profile else None),
            filter_pattern=data.filter_pattern,
            exclude_pattern=data.exclude_pattern,
            headers=profile.request_headers if profile else None,
        )
    except CrawlerError as exc:
        raise _http_error(exc)
    return {
        "success": True,
        "links_found": len(items),
        "links_with_image": sum(1 for item in items if item.image),
        "sample_links": [LinkResponse(**vars(item)) for item in items[:5]],
        "category_mapping": _mapping_response(profile, url),
    }


# ============================================================================
# Jobs
# ============================================================================

@router.post("/jobs", status_code=201)
async def create_jobs(data: JobCreate, db: AsyncSession = Depends(get_db)):
    """Queue one or more URLs for crawling."""
    urls = data.urls or ([data.url] if data.url else [])
    try:
        submission = await CrawlJobService(db).create_jobs(urls, data.kind, data.source_id)
    except CrawlerError as exc:
        raise _http_error(exc)
    return {
        "message": submission.message,
        "created": len(submission.created),
        "duplicates": len(submission.duplicates),
        "invalid": len(submission.invalid),
        "invalid_urls": submission.invalid,
        "jobs": [_job_response(job) for job in submission.created],
    }


@router.get("/jobs")
async def list_jobs(
    status: Optional[CrawlJobStatus] = Query(None),
    kind: Optional[CrawlKind] = Query(None),
    source_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    jobs, total = await CrawlJobService(db).list_jobs(status, kind, source_id, page, limit)
    return {
        "jobs": [_job_response(job) for job in jobs],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: int, db: AsyncSession = Depends(get_db)):
    try:
        job = await CrawlJobService(db).get_job(job_id)
    except CrawlerError as exc:
        raise _http_error(exc)
    return _job_response(job)


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a job unless it is being processed."""
    try:
        await CrawlJobService(db).delete_job(job_id)
    except CrawlerError as exc:
        raise _http_error(exc)
    return {"deleted": True}


@router.post("/jobs/{job_id}/run")
async def run_job(
    job_id: int,
    background: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    fetcher: PageFetcher = Depends(get_fetcher),
):
    """Crawl a queued job now, or hand it to the worker with ``background=true``."""
    service = CrawlJobService(db, fetcher)
    try:
        job = await service.get_job(job_id)
        if background:
            if job.status != CrawlJobStatus.queued:
                raise JobStateError("Only queued jobs can run", status=job.status.value)
            # Trigger async task (Celery)
            from app.workers.crawl_tasks import run_crawl_job
            run_crawl_job.delay(job.id)
            return {"queued": True, "job": _job_response(job)}
        job = await service.run_job(job_id)
    except CrawlerError as exc:
        raise _http_error(exc)

    if job.status == CrawlJobStatus.failed:
        raise HTTPException(status_code=422, detail=job.error_message or "Crawl failed")
    return {"queued": False, "job": _job_response(job)}


@router.post("/jobs/{job_id}/approve")
async def approve_job(job_id: int, data: JobApprove, db: AsyncSession = Depends(get_db)):
    """Create the catalog record for a job waiting for review."""
    try:
        job = await CrawlJobService(db).approve_job(job_id, data.edits, data.category_id, data.status)
    except CrawlerError as exc:
        raise _http_error(exc)
    return {
        "message": f"Created {job.crawl_type.value}",
        "item_id": job.created_item_id,
        "kind": job.crawl_type.value,
        "job": _job_response(job),
    }


# ============================================================================
# Quick import
# ============================================================================

def _quick_config(data: QuickImportRequest) -> CrawlSourceConfig:
    try:
        return load_source_config({
            "selectors": {data.kind.value: data.selectors},
            "removeElements": data.remove_selectors,
        })
    except ConfigurationError as exc:
        raise _http_error(exc)


@router.post("/quick-import/preview")
async def quick_import_preview(
    data: QuickImportRequest,
    db: AsyncSession = Depends(get_db),
    fetcher: PageFetcher = Depends(get_fetcher),
):
    """Extract without creating anything."""
    if data.url and not data.html:
        _check_url(data.url)
    importer = QuickImporter(SqlCatalogStore(db), fetcher)
    try:
        extracted = await importer.preview(
            _quick_config(data), data.kind, data.url, data.html, data.html_title
        )
    except CrawlerError as exc:
        raise _http_error(exc)
    return {"success": True, "data": extracted.to_dict(), "images_count": len(extracted.images)}


@router.post("/quick-import")
async def quick_import(
    data: QuickImportRequest,
    db: AsyncSession = Depends(get_db),
    fetcher: PageFetcher = Depends(get_fetcher),
    uploader: Optional[ImageUploader] = Depends(get_image_uploader),
):
    """Import a single item from a URL or pasted HTML."""
    if data.url and not data.html:
        _check_url(data.url)
    importer = QuickImporter(SqlCatalogStore(db), fetcher, uploader)
    try:
        result = await importer.import_item(
            _quick_config(data),
            data.kind,
            url=data.url,
            html=data.html,
            html_title=data.html_title,
            category_id=data.category_id,
            status=data.status,
            upload_images=data.upload_images,
            upload_folder=data.upload_folder,
        )
    except CrawlerError as exc:
        raise _http_error(exc)
    return {
        "success": True,
        "message": f"Imported: {result.extracted.display_title}",
        "data": {
            "id": result.record.id,
            "slug": result.record.slug,
            "title": result.extracted.display_title,
            "images_found": len(result.extracted.images),
            "images_uploaded": result.images_uploaded,
        },
    }


# ============================================================================
# Sources
# ============================================================================

@router.post("/sources", response_model=SourceResponse, status_code=201)
async def create_source(data: SourceCreate, db: AsyncSession = Depends(get_db)):
    """Store a validated selector profile."""
    try:
        config = load_source_config(data.config)
    except ConfigurationError as exc:
        raise _http_error(exc)
    source = CrawlSource(
        name=data.name,
        base_url=data.base_url,
        crawl_type=CrawlType(data.kind.value),
        config=config.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
    db.add(source)
    await db.commit()
    await db.refresh(source)
    return _source_response(source)


@router.get("/sources", response_model=List[SourceResponse])
async def list_sources(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(CrawlSource).order_by(CrawlSource.created_at.desc(), CrawlSource.id.desc()))
    return [_source_response(source) for source in result.scalars().all()]


@router.get("/sources/{source_id}", response_model=SourceResponse)
async def get_source(source_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(CrawlSource).where(CrawlSource.id == source_id))
    source = result.scalar_one_or_none()
    if not source:
        raise HTTPException(status_code=404, detail="Crawl source not found")
    return _source_response(source)


@router.delete("/sources/{source_id}")
async def delete_source(source_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(CrawlSource).where(CrawlSource.id == source_id))
    source = result.scalar_one_or_none()
    if not source:
        raise HTTPException(status_code=404, detail="Crawl source not found")
    await db.delete(source)
    await db.commit()
    return {"deleted": True}
