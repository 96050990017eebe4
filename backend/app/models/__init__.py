from app.models.base import Base
from app.models.catalog import Article, Product
from app.models.crawl import CrawlSource, CrawlJob, CrawlJobStatus, CrawlType, ACTIVE_JOB_STATUSES

__all__ = [
    "Base",
    "Article", "Product",
    "CrawlSource", "CrawlJob", "CrawlJobStatus", "CrawlType", "ACTIVE_JOB_STATUSES",
]
