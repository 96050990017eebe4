"""Data models for the content crawler.

Selector profiles are pydantic models validated once at the boundary and frozen
afterwards; extraction results and batch outcomes are plain dataclasses.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConfigurationError


class CrawlKind(str, Enum):
    article = "article"
    product = "product"


class BatchItemStatus(str, Enum):
    success = "success"
    failed = "failed"
    duplicate = "duplicate"
    slug_conflict = "slug_conflict"


# ============================================================================
# Selector profile
# ============================================================================

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ArticleSelectors(_Frozen):
    title: str = ""
    content: str = ""
    excerpt: Optional[str] = None
    featured_image: Optional[str] = Field(default=None, alias="featuredImage")
    author: Optional[str] = None
    publish_date: Optional[str] = Field(default=None, alias="publishDate")
    meta_title: Optional[str] = Field(default=None, alias="metaTitle")
    meta_description: Optional[str] = Field(default=None, alias="metaDescription")


class ProductSelectors(_Frozen):
    name: str = ""
    description: str = ""
    price: Optional[str] = None
    original_price: Optional[str] = Field(default=None, alias="originalPrice")
    sku: Optional[str] = None
    images: Optional[str] = None
    meta_title: Optional[str] = Field(default=None, alias="metaTitle")
    meta_description: Optional[str] = Field(default=None, alias="metaDescription")


class SelectorSet(_Frozen):
    article: Optional[ArticleSelectors] = None
    product: Optional[ProductSelectors] = None


TransformType = Literal[
    "trim", "stripTags", "replace", "regex", "maxLength", "toNumber",
    "toLower", "toUpper", "removeEmptyTags", "decodeHtml", "addPrefix", "addSuffix",
]


class Transform(_Frozen):
    type: TransformType
    find: Optional[str] = None
    replace: Optional[str] = None
    pattern: Optional[str] = None
    value: Optional[Union[int, str]] = None
    ellipsis: Optional[str] = None


class SeoConfig(_Frozen):
    extract_meta: bool = Field(default=True, alias="extractMeta")
    meta_title_selector: Optional[str] = Field(default=None, alias="metaTitleSelector")
    meta_description_selector: Optional[str] = Field(default=None, alias="metaDescriptionSelector")


class ImageConfig(_Frozen):
    max_size_mb: Optional[float] = Field(default=None, alias="maxSizeMB")
    upload_folder: Optional[str] = Field(default=None, alias="cloudinaryFolder")
    skip_patterns: Optional[Tuple[str, ...]] = Field(default=None, alias="skipPatterns")


class PaginationConfig(_Frozen):
    enabled: bool = False
    type: Literal["numbered", "next_link"] = "numbered"
    max_pages: Optional[int] = Field(default=None, alias="maxPages")
    next_selector: Optional[str] = Field(default=None, alias="nextSelector")
    page_param: str = Field(default="page", alias="pageParam")
    delay: Optional[int] = None


class CategoryMapping(_Frozen):
    """Ties a list page to the catalog category and status its items import under."""

    id: Optional[str] = None
    list_page_url: str = Field(default="", alias="listPageUrl")
    category_id: Optional[int] = Field(default=None, alias="categoryId")
    status: str = "draft"

    @field_validator("category_id", mode="before")
    @classmethod
    def _blank_category(cls, value: Any) -> Optional[int]:
        if value in (None, "", "none"):
            return None
        return int(value)


class CrawlSourceConfig(_Frozen):
    """Reusable extraction profile for one site family."""

    selectors: SelectorSet = Field(default_factory=SelectorSet)
    transforms: Dict[str, Tuple[Transform, ...]] = Field(default_factory=dict)
    remove_elements: Tuple[str, ...] = Field(default=(), alias="removeElements")
    seo_config: Optional[SeoConfig] = Field(default=None, alias="seoConfig")
    image_config: Optional[ImageConfig] = Field(default=None, alias="imageConfig")
    pagination_config: Optional[PaginationConfig] = Field(default=None, alias="paginationConfig")
    request_headers: Dict[str, str] = Field(default_factory=dict, alias="requestHeaders")
    request_delay_ms: int = Field(default=0, alias="requestDelayMs")

    # List page settings
    list_item_selector: Optional[str] = Field(default=None, alias="listItemSelector")
    list_link_selector: Optional[str] = Field(default=None, alias="listLinkSelector")
    list_image_selector: Optional[str] = Field(default=None, alias="listImageSelector")
    list_title_selector: Optional[str] = Field(default=None, alias="listTitleSelector")
    list_max_pages: Optional[int] = Field(default=None, alias="listMaxPages")
    category_mappings: Tuple[CategoryMapping, ...] = Field(default=(), alias="categoryMappings")

    @field_validator("remove_elements", mode="before")
    @classmethod
    def _dedupe_remove_elements(cls, value: Any) -> Tuple[str, ...]:
        if not value:
            return ()
        ordered: List[str] = []
        for raw in value:
            selector = str(raw or "").strip()
            if selector and selector not in ordered:
                ordered.append(selector)
        return tuple(ordered)

    @field_validator("request_delay_ms", mode="before")
    @classmethod
    def _non_negative_delay(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, int(value))

    @field_validator("request_headers", mode="before")
    @classmethod
    def _string_mapping(cls, value: Any) -> Dict[str, str]:
        if not value:
            return {}
        return {str(k): str(v) for k, v in dict(value).items()}

    @field_validator("category_mappings", mode="before")
    @classmethod
    def _none_mappings(cls, value: Any) -> Any:
        return value or ()

    @field_validator("list_max_pages", mode="before")
    @classmethod
    def _positive_max_pages(cls, value: Any) -> Optional[int]:
        if value in (None, ""):
            return None
        return int(value) if int(value) > 0 else None

    @field_validator("transforms", mode="before")
    @classmethod
    def _none_transforms(cls, value: Any) -> Any:
        return value or {}

    def require_selectors(self, kind: "CrawlKind", require_title: bool = True) -> Union[ArticleSelectors, ProductSelectors]:
        """Return the selector set for ``kind`` or raise if it cannot extract a record."""
        kind = CrawlKind(kind)
        if kind == CrawlKind.article:
            selectors = self.selectors.article
            if selectors is None:
                raise ConfigurationError("No article selectors configured")
            required = ("title", "content") if require_title else ("content",)
            missing = [name for name in required if not getattr(selectors, name).strip()]
        else:
            selectors = self.selectors.product
            if selectors is None:
                raise ConfigurationError("No product selectors configured")
            required = ("name", "description") if require_title else ("description",)
            missing = [name for name in required if not getattr(selectors, name).strip()]
        if missing:
            raise ConfigurationError(
                f"{kind.value} selectors missing required field(s): {', '.join(missing)}"
            )
        return selectors

    def transforms_for(self, field_name: str) -> Tuple[Transform, ...]:
        return self.transforms.get(field_name, ())

    def mapping_for(self, list_page_url: str) -> Optional[CategoryMapping]:
        """The category mapping whose list page is ``list_page_url``, if any."""
        wanted = list_page_url.strip().rstrip("/")
        for mapping in self.category_mappings:
            if mapping.list_page_url.strip().rstrip("/") == wanted:
                return mapping
        return None


def load_source_config(payload: Optional[Dict[str, Any]]) -> CrawlSourceConfig:
    """Validate a raw profile payload, surfacing schema problems as configuration errors."""
    try:
        return CrawlSourceConfig.model_validate(payload or {})
    except ValueError as exc:
        raise ConfigurationError(f"Invalid crawl source config: {exc}") from exc


# ============================================================================
# Extraction results
# ============================================================================

@dataclass
class ExtractedArticle:
    title: str
    content: str
    excerpt: Optional[str] = None
    featured_image: Optional[str] = None
    author: Optional[str] = None
    publish_date: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    images: List[str] = field(default_factory=list)

    @property
    def display_title(self) -> str:
        return self.title

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ExtractedArticle":
        known = {name: payload[name] for name in cls.__dataclass_fields__ if name in payload}
        known.setdefault("title", "")
        known.setdefault("content", "")
        known["images"] = list(known.get("images") or [])
        return cls(**known)


@dataclass
class ExtractedProduct:
    name: str
    description: str = ""
    price: Optional[int] = None
    original_price: Optional[int] = None
    sku: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    images: List[str] = field(default_factory=list)

    @property
    def display_title(self) -> str:
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ExtractedProduct":
        known = {name: payload[name] for name in cls.__dataclass_fields__ if name in payload}
        known.setdefault("name", "")
        known["images"] = list(known.get("images") or [])
        return cls(**known)


Extracted = Union[ExtractedArticle, ExtractedProduct]


def extracted_from_dict(kind: CrawlKind, payload: Dict[str, Any]) -> Extracted:
    if CrawlKind(kind) == CrawlKind.article:
        return ExtractedArticle.from_dict(payload)
    return ExtractedProduct.from_dict(payload)


# ============================================================================
# List pages
# ============================================================================

@dataclass
class ExtractedLink:
    url: str
    title: str = ""
    image: Optional[str] = None
    index: int = 0


# ============================================================================
# Batch results
# ============================================================================

@dataclass
class BatchItemResult:
    url: str
    status: BatchItemStatus
    error: Optional[str] = None
    item_id: Optional[int] = None
    slug: Optional[str] = None
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status.value,
            "error": self.error,
            "item_id": self.item_id,
            "slug": self.slug,
            "title": self.title,
        }


@dataclass
class BatchResult:
    items: List[BatchItemResult] = field(default_factory=list)
    cancelled: bool = False

    def add(self, item: BatchItemResult) -> BatchItemResult:
        self.items.append(item)
        return item

    def count(self, status: BatchItemStatus) -> int:
        return sum(1 for item in self.items if item.status == status)

    @property
    def success(self) -> int:
        return self.count(BatchItemStatus.success)

    @property
    def failed(self) -> int:
        return self.count(BatchItemStatus.failed)

    @property
    def duplicate(self) -> int:
        return self.count(BatchItemStatus.duplicate)

    @property
    def slug_conflict(self) -> int:
        return self.count(BatchItemStatus.slug_conflict)

    @property
    def message(self) -> str:
        return (
            f"Processed {len(self.items)} URLs: {self.success} succeeded, {self.failed} failed, "
            f"{self.duplicate} duplicate, {self.slug_conflict} slug conflicts"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "success": self.success,
            "failed": self.failed,
            "duplicate": self.duplicate,
            "slug_conflict": self.slug_conflict,
            "cancelled": self.cancelled,
            "results": [item.to_dict() for item in self.items],
        }
