"""Page fetcher: one GET per call, browser-like headers, fixed timeout, no retries."""

import logging
from typing import Dict, Optional

import httpx

from app.config import get_settings
from .constants import DEFAULT_ACCEPT
from .errors import FetchError, FetchTimeoutError

logger = logging.getLogger(__name__)


def default_headers() -> Dict[str, str]:
    settings = get_settings()
    return {
        "User-Agent": settings.crawler_user_agent,
        "Accept": DEFAULT_ACCEPT,
        "Accept-Language": settings.crawler_accept_language,
    }


class PageFetcher:
    """Fetches raw HTML. Holds no per-request state, so one instance can serve concurrent calls."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.timeout = timeout if timeout is not None else get_settings().crawler_fetch_timeout_seconds

    def _merge_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = default_headers()
        lowered = {key.lower(): key for key in merged}
        for key, value in (headers or {}).items():
            existing = lowered.get(key.lower())
            if existing:
                merged.pop(existing)
            merged[key] = value
        return merged

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        request_headers = self._merge_headers(headers)
        if self.client is not None:
            return await self._fetch_with(self.client, url, request_headers)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._fetch_with(client, url, request_headers)

    async def _fetch_with(self, client: httpx.AsyncClient, url: str, headers: Dict[str, str]) -> str:
        try:
            response = await client.get(
                url, headers=headers, timeout=self.timeout, follow_redirects=True
            )
        except httpx.TimeoutException as exc:
            logger.warning("Fetch timed out after %.0fs: %s", self.timeout, url)
            raise FetchTimeoutError(f"Timed out fetching {url}", url=url) from exc
        except httpx.HTTPError as exc:
            logger.warning("Fetch failed for %s: %s", url, exc)
            raise FetchError(f"Failed to fetch {url}: {exc}", url=url) from exc

        if not response.is_success:
            raise FetchError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                url=url,
                status_code=response.status_code,
            )
        return response.text
