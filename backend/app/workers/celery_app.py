from celery import Celery
from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "storefront_crawler",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.workers.crawl_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # One fetch is capped by crawler_fetch_timeout_seconds; leave room for extraction and writes
    task_time_limit=120,
    task_soft_time_limit=90,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "app.workers.crawl_tasks.run_crawl_job": {"queue": "crawler.jobs"},
        "app.workers.crawl_tasks.run_queued_jobs": {"queue": "crawler.jobs"},
    },
)
