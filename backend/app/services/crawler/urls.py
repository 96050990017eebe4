"""URL resolution, normalization and safety checks."""

from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse, urlunparse, parse_qsl, urlencode

from .constants import TRACKING_PARAMS, SKIP_HREF_PREFIXES
from .errors import ConfigurationError

DEFAULT_PORTS = {"http": 80, "https": 443}


def page_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a page URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_url(href: Optional[str], base_url: str) -> str:
    """Resolve an href or src found on ``base_url`` to an absolute URL.

    Protocol-relative references get ``https:``; relative ones resolve against the
    page origin. Without a base URL the href is returned as is; "" for empty input.
    """
    if not href:
        return ""
    href = href.strip()
    if not href:
        return ""
    if href.startswith("//"):
        return f"https:{href}"
    if href.startswith(("http://", "https://", "data:")) or not base_url:
        return href
    return urljoin(page_origin(base_url) + "/", href)


def is_skippable_href(href: Optional[str]) -> bool:
    if not href:
        return True
    href = href.strip()
    return not href or href.lower().startswith(SKIP_HREF_PREFIXES)


def normalize_url(url: str, tracking_params: Iterable[str] = TRACKING_PARAMS) -> str:
    """Canonical form of a URL used for duplicate detection.

    Lowercases scheme and host, drops the default port, the fragment, tracking
    query parameters and the trailing slash of non-root paths. Path and the
    remaining query keep their case and order.
    """
    url = (url or "").strip()
    if not url:
        return ""

    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if not scheme or not host:
        return url

    try:
        port = parsed.port
    except ValueError:
        port = None
    netloc = host
    if port and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    if parsed.username:
        auth = parsed.username
        if parsed.password:
            auth = f"{auth}:{parsed.password}"
        netloc = f"{auth}@{netloc}"

    strip = {name.lower() for name in tracking_params}
    params = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in strip and not key.lower().startswith("utm_")
    ]
    query = urlencode(params, doseq=True)

    path = parsed.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    return urlunparse((scheme, netloc, path, parsed.params, query, ""))


def validate_public_url(url: str, blocked_hosts: Iterable[str]) -> str:
    """Reject malformed URLs and local hosts before anything is fetched."""
    candidate = (url or "").strip()
    try:
        parsed = urlparse(candidate)
        hostname = parsed.hostname
    except ValueError:
        raise ConfigurationError(f"Invalid URL: {url}")
    if parsed.scheme not in ("http", "https") or not hostname:
        raise ConfigurationError(f"Invalid URL: {url}")
    blocked = {host.lower() for host in blocked_hosts}
    if hostname.lower() in blocked:
        raise ConfigurationError(f"URL host not allowed: {hostname}")
    return candidate
