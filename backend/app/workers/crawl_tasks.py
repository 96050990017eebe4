"""Celery tasks for crawl jobs."""
import asyncio
import logging
from typing import Any, Dict, List

from sqlalchemy import select

from app.workers.celery_app import celery_app
from app.config import get_settings
from app.models.base import engine, session_scope
from app.models.crawl import CrawlJob, CrawlJobStatus
from app.services.crawler.errors import CrawlerError
from app.services.crawler.jobs import CrawlJobService

logger = logging.getLogger(__name__)


async def _run_job(job_id: int) -> Dict[str, Any]:
    async with session_scope() as db:
        try:
            job = await CrawlJobService(db).run_job(job_id)
        except CrawlerError as exc:
            return {"error": str(exc)}
        return {"job_id": job.id, "status": job.status.value, "error": job.error_message}


async def _run_queued(limit: int) -> List[Dict[str, Any]]:
    async with session_scope() as db:
        result = await db.execute(
            select(CrawlJob.id)
            .where(CrawlJob.status == CrawlJobStatus.queued)
            .order_by(CrawlJob.created_at, CrawlJob.id)
            .limit(limit)
        )
        job_ids = list(result.scalars().all())

    delay = get_settings().crawler_default_request_delay_ms / 1000
    outcomes = []
    for position, job_id in enumerate(job_ids):
        outcomes.append(await _run_job(job_id))
        if delay > 0 and position < len(job_ids) - 1:
            await asyncio.sleep(delay)
    return outcomes


def _run_in_new_loop(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        # Pooled connections are bound to this loop
        loop.run_until_complete(engine.dispose())
        loop.close()


@celery_app.task(name="app.workers.crawl_tasks.run_crawl_job")
def run_crawl_job(job_id: int):
    """Fetch and extract one queued crawl job."""
    outcome = _run_in_new_loop(_run_job(job_id))
    logger.info("Crawl job %s finished: %s", job_id, outcome)
    return outcome


@celery_app.task(name="app.workers.crawl_tasks.run_queued_jobs")
def run_queued_jobs(limit: int = 50):
    """Drain up to ``limit`` queued jobs, oldest first, one at a time."""
    outcomes = _run_in_new_loop(_run_queued(limit))
    return {"processed": len(outcomes), "results": outcomes}
