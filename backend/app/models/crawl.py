"""Crawl sources (selector profiles) and crawl jobs."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, ForeignKey, Enum, Boolean, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.models.base import Base


class CrawlType(enum.Enum):
    article = "article"
    product = "product"


class CrawlJobStatus(enum.Enum):
    queued = "queued"
    processing = "processing"
    success = "success"
    failed = "failed"
    duplicate = "duplicate"
    pending_review = "pending_review"


# Statuses that still claim a URL; a failed job frees it for resubmission
ACTIVE_JOB_STATUSES = (
    CrawlJobStatus.queued,
    CrawlJobStatus.processing,
    CrawlJobStatus.success,
    CrawlJobStatus.duplicate,
    CrawlJobStatus.pending_review,
)


class CrawlSource(Base):
    """Reusable selector profile for one site family."""
    __tablename__ = "crawl_sources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    base_url = Column(String(1000), nullable=False)
    crawl_type = Column(Enum(CrawlType), nullable=False, default=CrawlType.article)

    # Validated CrawlSourceConfig, stored with its camelCase keys
    config = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    jobs = relationship("CrawlJob", back_populates="source", passive_deletes=True)


class CrawlJob(Base):
    """One URL to crawl, from queueing through review to catalog creation."""
    __tablename__ = "crawl_jobs"
    __table_args__ = (
        # At most one job per URL outside the failed status
        Index(
            "uq_crawl_jobs_active_url",
            "url",
            unique=True,
            postgresql_where=text("status != 'failed'"),
            sqlite_where=text("status != 'failed'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(2000), nullable=False, index=True)
    crawl_type = Column(Enum(CrawlType), nullable=False, default=CrawlType.article)
    source_id = Column(Integer, ForeignKey("crawl_sources.id", ondelete="SET NULL"), nullable=True)
    status = Column(Enum(CrawlJobStatus), nullable=False, default=CrawlJobStatus.queued, index=True)

    extracted_data = Column(JSON, nullable=True)
    created_item_id = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0)  # Earlier failed jobs for the same URL

    created_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)

    source = relationship("CrawlSource", back_populates="jobs")
