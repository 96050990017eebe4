import asyncio
import os

# Must be set before anything imports app.config / app.models.base
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CRAWLER_DEFAULT_REQUEST_DELAY_MS", "0")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models import Base
from app.services.crawler.catalog import CatalogRecord
from app.services.crawler.errors import CatalogConflictError, FetchError
from app.services.crawler.models import CrawlKind


class FakeCatalog:
    """In-memory catalog with the same uniqueness rules as the SQL store."""

    def __init__(self):
        self.records = {CrawlKind.article: [], CrawlKind.product: []}
        self.create_error = None

    def seed(self, kind, slug, source_url=None, **fields):
        record = {"id": self._next_id(), "slug": slug, "source_url": source_url, **fields}
        self.records[CrawlKind(kind)].append(record)
        return record

    def _next_id(self):
        return sum(len(items) for items in self.records.values()) + 1

    async def find_by_source_url(self, url, kind):
        for record in self.records[CrawlKind(kind)]:
            if record["source_url"] == url:
                return CatalogRecord(id=record["id"], slug=record["slug"])
        return None

    async def find_by_slug(self, slug, kind):
        for record in self.records[CrawlKind(kind)]:
            if record["slug"] == slug:
                return CatalogRecord(id=record["id"], slug=record["slug"])
        return None

    async def create(self, kind, fields):
        if self.create_error is not None:
            raise self.create_error
        kind = CrawlKind(kind)
        if fields.get("source_url") and await self.find_by_source_url(fields["source_url"], kind):
            raise CatalogConflictError("duplicate source url", field="source_url", value=fields["source_url"])
        if await self.find_by_slug(fields["slug"], kind):
            raise CatalogConflictError("duplicate slug", field="slug", value=fields["slug"])
        record = {"id": self._next_id(), **fields}
        self.records[kind].append(record)
        return CatalogRecord(id=record["id"], slug=record["slug"])


class FakeFetcher:
    """Serves canned pages by URL; an Exception value is raised instead."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []
        self.headers = []

    async def fetch(self, url, headers=None):
        self.calls.append(url)
        self.headers.append(headers)
        page = self.pages.get(url)
        if page is None:
            raise FetchError("HTTP 404: Not Found", url=url, status_code=404)
        if isinstance(page, Exception):
            raise page
        return page


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def sleep():
    return RecordingSleep()


def make_engine():
    return create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def run_db():
    """Run ``scenario(session)`` against a fresh in-memory database."""

    def _run(scenario):
        async def _wrapper():
            engine = make_engine()
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            try:
                async with maker() as session:
                    return await scenario(session)
            finally:
                await engine.dispose()

        return asyncio.run(_wrapper())

    return _run


ARTICLE_HTML = """
<html>
<head>
  <title>Page Title</title>
  <meta property="og:title" content="OG Title">
  <meta name="description" content="Meta desc">
  <meta property="og:image" content="/og.jpg">
</head>
<body>
  <header><h1>Site header</h1></header>
  <nav><a href="/menu">Menu</a></nav>
  <article>
    <h1 class="title">  {title}  </h1>
    <div class="entry">
      <p>Intro <b>bold</b></p>
      <img src="/img/1.jpg">
      <img src="data:image/gif;base64,R0lGOD" data-src="//cdn.example.com/2.jpg">
      <img src="/img/1.jpg">
      <img src="https://tracker.example.com/pixel.gif">
      <script>track()</script>
    </div>
    <span class="author">Lan</span>
  </article>
</body>
</html>
"""


ARTICLE_PROFILE = {
    "selectors": {
        "article": {
            "title": ".title",
            "content": ".entry",
            "excerpt": "meta[name='description']::attr(content)",
            "featuredImage": "meta[property='og:image']::attr(content)",
            "author": ".author",
        }
    }
}


@pytest.fixture
def article_html():
    def _render(title="Omega 3 Benefits"):
        return ARTICLE_HTML.replace("{title}", title)

    return _render


@pytest.fixture
def article_profile():
    return ARTICLE_PROFILE
