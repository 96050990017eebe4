from __future__ import annotations

from typing import Optional


class CrawlerError(RuntimeError):
    """Base class for crawler failures."""


class FetchError(CrawlerError):
    def __init__(self, message: str, *, url: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    pass


class ExtractionError(CrawlerError):
    def __init__(self, message: str, *, field: str = "") -> None:
        super().__init__(message)
        self.field = field


class MissingTitleError(ExtractionError):
    def __init__(self, selector: str = "") -> None:
        detail = f" (selector: {selector})" if selector else ""
        super().__init__(f"missing title{detail}", field="title")
        self.selector = selector


class ConfigurationError(CrawlerError):
    """Invalid profile, pattern or request; raised before any fetch."""


class SlugConflictError(CrawlerError):
    def __init__(self, slug: str, title: str = "") -> None:
        super().__init__(f'Slug "{slug}" already exists')
        self.slug = slug
        self.title = title


class CatalogConflictError(CrawlerError):
    """Unique constraint violation raised by the catalog store on write."""

    def __init__(self, message: str, *, field: str, value: str = "") -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class JobStateError(CrawlerError):
    def __init__(self, message: str, *, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(CrawlerError):
    pass
