"""SQLAlchemy-backed catalog store used by the crawler."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Article, Product
from app.services.crawler.catalog import CatalogRecord
from app.services.crawler.errors import CatalogConflictError
from app.services.crawler.models import CrawlKind

logger = logging.getLogger(__name__)

MODELS = {
    CrawlKind.article: Article,
    CrawlKind.product: Product,
}


class SqlCatalogStore:
    """Catalog store over the ``articles``/``products`` tables.

    Unique constraints on ``slug`` and ``source_url`` are the final word: a
    losing insert is rolled back and surfaced as ``CatalogConflictError``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _model(kind: CrawlKind):
        return MODELS[CrawlKind(kind)]

    async def _find(self, kind: CrawlKind, column: str, value: str) -> Optional[CatalogRecord]:
        model = self._model(kind)
        result = await self.db.execute(
            select(model.id, model.slug).where(getattr(model, column) == value).limit(1)
        )
        row = result.first()
        if row is None:
            return None
        return CatalogRecord(id=row.id, slug=row.slug)

    async def find_by_source_url(self, url: str, kind: CrawlKind) -> Optional[CatalogRecord]:
        return await self._find(kind, "source_url", url)

    async def find_by_slug(self, slug: str, kind: CrawlKind) -> Optional[CatalogRecord]:
        return await self._find(kind, "slug", slug)

    async def create(self, kind: CrawlKind, fields: Dict[str, Any]) -> CatalogRecord:
        model = self._model(kind)
        columns = set(model.__table__.columns.keys())
        record = model(**{key: value for key, value in fields.items() if key in columns})
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise await self._conflict(kind, fields) from exc
        await self.db.refresh(record)
        logger.info("Created %s %s (%s)", CrawlKind(kind).value, record.id, record.slug)
        return CatalogRecord(id=record.id, slug=record.slug)

    async def _conflict(self, kind: CrawlKind, fields: Dict[str, Any]) -> CatalogConflictError:
        source_url = fields.get("source_url")
        if source_url and await self.find_by_source_url(source_url, kind) is not None:
            return CatalogConflictError(
                f"{CrawlKind(kind).value} with source URL already exists",
                field="source_url",
                value=source_url,
            )
        slug = fields.get("slug", "")
        return CatalogConflictError(f'Slug "{slug}" already exists', field="slug", value=slug)
