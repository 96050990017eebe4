"""Content crawler package: fetch, sanitize, extract and import catalog items."""

from .models import (
    CrawlKind,
    CrawlSourceConfig,
    ExtractedArticle,
    ExtractedProduct,
    ExtractedLink,
    BatchItemStatus,
    BatchItemResult,
    BatchResult,
    load_source_config,
)
from .errors import (
    CrawlerError,
    FetchError,
    FetchTimeoutError,
    ExtractionError,
    MissingTitleError,
    ConfigurationError,
    SlugConflictError,
    CatalogConflictError,
    JobStateError,
    NotFoundError,
)
from .fetcher import PageFetcher
from .sanitizer import prepare_document, sanitize_document, resolve_lazy_images
from .extraction import extract_article, extract_product, extract_from_html, inspect_selector, test_selectors
from .urls import normalize_url, resolve_url
from .slugs import SlugMode, slugify, resolve_slug
from .catalog import CatalogRecord, CatalogStore, find_duplicate, is_duplicate
from .links import ListPageExtractor
from .batch import BatchOrchestrator
from .images import ImageUploader, rehost_images
from .quick_import import QuickImporter, QuickImportResult

__all__ = [
    # Main entry points
    "BatchOrchestrator",
    "ListPageExtractor",
    "QuickImporter",
    "PageFetcher",

    # Pipeline stages
    "prepare_document",
    "sanitize_document",
    "resolve_lazy_images",
    "extract_article",
    "extract_product",
    "extract_from_html",
    "inspect_selector",
    "test_selectors",
    "normalize_url",
    "resolve_url",
    "slugify",
    "resolve_slug",
    "SlugMode",
    "find_duplicate",
    "is_duplicate",
    "rehost_images",

    # Data models
    "CrawlKind",
    "CrawlSourceConfig",
    "ExtractedArticle",
    "ExtractedProduct",
    "ExtractedLink",
    "BatchItemStatus",
    "BatchItemResult",
    "BatchResult",
    "CatalogRecord",
    "CatalogStore",
    "ImageUploader",
    "QuickImportResult",
    "load_source_config",

    # Errors
    "CrawlerError",
    "FetchError",
    "FetchTimeoutError",
    "ExtractionError",
    "MissingTitleError",
    "ConfigurationError",
    "SlugConflictError",
    "CatalogConflictError",
    "JobStateError",
    "NotFoundError",
]
