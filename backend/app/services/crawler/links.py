"""List-page link extraction: collects detail-page URLs from category and index pages."""

import asyncio
import logging
import re
from typing import Callable, Dict, List, Optional, Pattern, Set
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

from selectolax.parser import HTMLParser

from app.config import get_settings
from .constants import LINK_TITLE_MAX
from .errors import ConfigurationError
from .extraction import collapse_whitespace, image_source, node_text
from .fetcher import PageFetcher
from .models import ExtractedLink, PaginationConfig
from .sanitizer import node_attr, parse_document, safe_css, safe_css_first
from .urls import is_skippable_href, resolve_url

logger = logging.getLogger(__name__)


def compile_pattern(pattern: Optional[str], label: str) -> Optional[Pattern]:
    if not pattern:
        return None
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise ConfigurationError(f"Invalid {label} pattern: {exc}") from exc


def _accept(url: str, include: Optional[Pattern], exclude: Optional[Pattern]) -> bool:
    if include is not None and not include.search(url):
        return False
    if exclude is not None and exclude.search(url):
        return False
    return True


def parse_links(
    tree: HTMLParser,
    page_url: str,
    link_selector: str = "a[href]",
    container_selector: Optional[str] = None,
    include: Optional[Pattern] = None,
    exclude: Optional[Pattern] = None,
    limit: int = 100,
    seen: Optional[Set[str]] = None,
) -> List[ExtractedLink]:
    """Links from one parsed page, filtered and de-duplicated against ``seen``."""
    seen = seen if seen is not None else set()
    if container_selector:
        roots = safe_css(tree, container_selector)
    else:
        roots = [tree.body] if tree.body is not None else []

    links: List[ExtractedLink] = []
    for root in roots:
        for node in safe_css(root, link_selector):
            if len(links) >= limit:
                return links
            href = node_attr(node, "href")
            if is_skippable_href(href):
                continue
            url = resolve_url(href, page_url)
            if not _accept(url, include, exclude) or url in seen:
                continue
            seen.add(url)
            title = collapse_whitespace(node_text(node)) or node_attr(node, "title")
            links.append(ExtractedLink(url=url, title=title[:LINK_TITLE_MAX], index=len(seen) - 1))
    return links


def parse_items(
    tree: HTMLParser,
    page_url: str,
    item_selector: str,
    link_selector: str,
    image_selector: Optional[str] = None,
    title_selector: Optional[str] = None,
    include: Optional[Pattern] = None,
    exclude: Optional[Pattern] = None,
    limit: int = 100,
    seen: Optional[Set[str]] = None,
) -> List[ExtractedLink]:
    """One link per list item, with its title and thumbnail when configured."""
    seen = seen if seen is not None else set()
    items: List[ExtractedLink] = []
    for item in safe_css(tree, item_selector):
        if len(items) >= limit:
            break
        link = safe_css_first(item, link_selector)
        href = node_attr(link, "href")
        if is_skippable_href(href):
            continue
        url = resolve_url(href, page_url)
        if not _accept(url, include, exclude) or url in seen:
            continue
        seen.add(url)

        title = ""
        if title_selector:
            title = collapse_whitespace(node_text(safe_css_first(item, title_selector)))
        if not title:
            title = collapse_whitespace(node_text(link)) or node_attr(link, "title")

        image = None
        if image_selector:
            img = safe_css_first(item, image_selector)
            if img is not None:
                image = resolve_url(image_source(img), page_url) or None

        items.append(ExtractedLink(url=url, title=title[:LINK_TITLE_MAX], image=image, index=len(seen) - 1))
    return items


def numbered_page_url(url: str, page_param: str, page: int) -> str:
    parsed = urlparse(url)
    params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != page_param]
    params.append((page_param, str(page)))
    return urlunparse(parsed._replace(query=urlencode(params)))


class ListPageExtractor:
    """Walks a list page (and its pagination) and returns the detail links it finds."""

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
        sleep: Callable = asyncio.sleep,
    ):
        self.fetcher = fetcher or PageFetcher()
        self.progress_callback = progress_callback
        self._sleep = sleep

    def _log(self, message: str) -> None:
        """Log progress if callback is set."""
        if self.progress_callback:
            self.progress_callback(message)

    async def extract_links(
        self,
        url: str,
        link_selector: str = "a[href]",
        container_selector: Optional[str] = None,
        filter_pattern: Optional[str] = None,
        exclude_pattern: Optional[str] = None,
        limit: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        pagination: Optional[PaginationConfig] = None,
        delay_ms: int = 0,
        max_pages: Optional[int] = None,
    ) -> List[ExtractedLink]:
        include = compile_pattern(filter_pattern, "filter")
        exclude = compile_pattern(exclude_pattern, "exclude")
        limit = limit or get_settings().crawler_default_link_limit

        def _parse(tree: HTMLParser, page_url: str, remaining: int, seen: Set[str]) -> List[ExtractedLink]:
            return parse_links(
                tree, page_url, link_selector or "a[href]", container_selector,
                include, exclude, remaining, seen,
            )

        return await self._walk(url, _parse, limit, headers, pagination, delay_ms, max_pages)

    async def extract_items(
        self,
        url: str,
        item_selector: str,
        link_selector: str,
        image_selector: Optional[str] = None,
        title_selector: Optional[str] = None,
        filter_pattern: Optional[str] = None,
        exclude_pattern: Optional[str] = None,
        limit: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        pagination: Optional[PaginationConfig] = None,
        delay_ms: int = 0,
        max_pages: Optional[int] = None,
    ) -> List[ExtractedLink]:
        if not item_selector or not link_selector:
            raise ConfigurationError("item_selector and link_selector are required")
        include = compile_pattern(filter_pattern, "filter")
        exclude = compile_pattern(exclude_pattern, "exclude")
        limit = limit or get_settings().crawler_default_link_limit

        def _parse(tree: HTMLParser, page_url: str, remaining: int, seen: Set[str]) -> List[ExtractedLink]:
            return parse_items(
                tree, page_url, item_selector, link_selector,
                image_selector, title_selector, include, exclude, remaining, seen,
            )

        return await self._walk(url, _parse, limit, headers, pagination, delay_ms, max_pages)

    async def _walk(
        self,
        url: str,
        parse: Callable[[HTMLParser, str, int, Set[str]], List[ExtractedLink]],
        limit: int,
        headers: Optional[Dict[str, str]],
        pagination: Optional[PaginationConfig],
        delay_ms: int,
        max_pages: Optional[int] = None,
    ) -> List[ExtractedLink]:
        """Fetch pages until the limit, an empty page, or the page bound.

        The bound is the pagination's own ``max_pages``, then the source's
        ``list_max_pages`` passed as ``max_pages``, then the configured default.
        """
        page_bound = max_pages
        max_pages = 1
        if pagination is not None and pagination.enabled:
            max_pages = pagination.max_pages or page_bound or get_settings().crawler_list_max_pages
            if pagination.delay is not None:
                delay_ms = pagination.delay

        seen: Set[str] = set()
        visited: Set[str] = set()
        links: List[ExtractedLink] = []
        page_url: Optional[str] = url
        page = 1

        while page_url and page <= max_pages and len(links) < limit:
            if page > 1 and delay_ms > 0:
                await self._sleep(delay_ms / 1000)
            visited.add(page_url)
            self._log(f"Fetching list page {page}: {page_url}")
            html = await self.fetcher.fetch(page_url, headers)
            tree = parse_document(html)

            found = parse(tree, page_url, limit - len(links), seen)
            links.extend(found)
            self._log(f"Found {len(found)} links on page {page}")
            if not found or max_pages == 1:
                break

            page += 1
            page_url = self._next_page_url(tree, url, page_url, pagination, page)
            if page_url in visited:
                break

        logger.info("Extracted %d links from %s", len(links), url)
        return links

    def _next_page_url(
        self,
        tree: HTMLParser,
        first_url: str,
        current_url: str,
        pagination: PaginationConfig,
        page: int,
    ) -> Optional[str]:
        if pagination.type == "next_link":
            if not pagination.next_selector:
                return None
            href = node_attr(safe_css_first(tree, pagination.next_selector), "href")
            if is_skippable_href(href):
                return None
            return resolve_url(href, current_url)
        return numbered_page_url(first_url, pagination.page_param or "page", page)
