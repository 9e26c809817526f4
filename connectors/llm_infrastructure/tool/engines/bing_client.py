"""HTTP client for the Bing Web Search v7 API."""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode, urlparse

import httpx

from connectors.config.settings import bing_settings

from ...errors import ConfigError, VendorError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

REGION_US = "en-US"
REGION_GB = "en-GB"
REGION_CN = "zh-CN"
REGION_JP = "ja-JP"

SAFE_SEARCH_OFF = "Off"
SAFE_SEARCH_MODERATE = "Moderate"
SAFE_SEARCH_STRICT = "Strict"

TIME_RANGE_DAY = "Day"
TIME_RANGE_WEEK = "Week"
TIME_RANGE_MONTH = "Month"

_PROXY_SCHEMES = ("http", "https", "socks5")
_RETRY_DELAY_SECONDS = 1.0


@dataclass
class SearchParams:
    query: str
    region: str = REGION_US
    safe_search: str = ""
    time_range: str = ""
    offset: int = 0
    count: int = 10

    def validate(self) -> None:
        if not self.query:
            raise ConfigError("search query cannot be empty")
        if self.count <= 0:
            raise ConfigError("search count must be greater than 0")
        if self.offset < 0:
            raise ConfigError("search offset must be greater than or equal to 0")

    def build(self) -> Dict[str, str]:
        params = {"q": self.query, "mkt": self.region, "count": str(self.count)}
        if self.time_range:
            params["freshness"] = self.time_range
        if self.offset > 0:
            params["offset"] = str(self.offset)
        if self.safe_search:
            params["safeSearch"] = self.safe_search
        return params

    def cache_key(self) -> str:
        digest = hashlib.md5(urlencode(sorted(self.build().items())).encode("utf-8")).hexdigest()
        return f"{self.query}_{digest}"

    def next_page(self) -> "SearchParams":
        return SearchParams(
            query=self.query,
            region=self.region,
            safe_search=self.safe_search,
            time_range=self.time_range,
            offset=self.offset + 1,
            count=self.count,
        )


@dataclass
class SearchResult:
    title: str
    url: str
    description: str


class InMemoryTTLCache:
    """Small in-memory TTL cache."""

    def __init__(self, ttl_seconds: float) -> None:
        self.ttl_seconds = ttl_seconds
        self._store: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        item = self._store.get(key)
        if item is None:
            return None
        expires_at, value = item
        if time.monotonic() >= expires_at:
            self._store.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (time.monotonic() + self.ttl_seconds, value)


def parse_search_response(data: Dict[str, Any]) -> list[SearchResult]:
    pages = (data.get("webPages") or {}).get("value") or []
    return [
        SearchResult(
            title=page.get("name", ""),
            url=page.get("url", ""),
            description=page.get("snippet", ""),
        )
        for page in pages
    ]


class BingClient:
    """Bing Web Search client.

    Retries transport errors and HTTP 429 up to ``max_retries`` times with
    a one-second pause. With ``cache=True`` results are kept in memory for
    ``cache_ttl`` seconds, keyed by query and encoded parameters.
    """

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        proxy_url: Optional[str] = None,
        cache: bool = False,
        cache_ttl: Optional[float] = None,
        max_retries: Optional[int] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url or bing_settings.search_url
        self.headers = dict(headers or {})
        self.timeout = timeout if timeout else bing_settings.timeout
        self.max_retries = max_retries if max_retries else bing_settings.max_retries

        proxy = None
        if proxy_url:
            scheme = urlparse(proxy_url).scheme
            if scheme not in _PROXY_SCHEMES:
                raise ConfigError(f"unsupported proxy scheme: {scheme}")
            proxy = proxy_url
        self._client = client or httpx.Client(timeout=self.timeout, proxy=proxy)
        self.cache = InMemoryTTLCache(cache_ttl or bing_settings.cache_ttl) if cache else None

    def _send_with_retry(self, params: SearchParams) -> list[SearchResult]:
        headers = dict(self.headers)
        headers.setdefault("User-Agent", DEFAULT_USER_AGENT)
        response = None
        for attempt in range(self.max_retries + 1):
            try:
                response = self._client.get(self.base_url, params=params.build(), headers=headers)
            except httpx.TransportError as exc:
                if attempt == self.max_retries:
                    raise VendorError(f"[BingClient.search] failed to send request after retries: {exc}") from exc
                logger.warning("Bing request failed (attempt %d): %s", attempt + 1, exc)
                time.sleep(_RETRY_DELAY_SECONDS)
                continue
            if response.status_code == 429:
                if attempt == self.max_retries:
                    raise VendorError("rate limit reached")
                logger.warning("Bing rate limited (attempt %d)", attempt + 1)
                time.sleep(_RETRY_DELAY_SECONDS)
                continue
            break

        try:
            response.raise_for_status()
            results = parse_search_response(response.json())
        except httpx.HTTPError as exc:
            raise VendorError(f"[BingClient.search] request failed: {exc}") from exc
        except ValueError as exc:
            raise VendorError(f"[BingClient.search] failed to parse search results: {exc}") from exc
        if not results:
            raise VendorError("no search results found")
        return results[: params.count]

    def search(self, params: SearchParams) -> list[SearchResult]:
        params.validate()
        key = params.cache_key() if self.cache is not None else ""
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Bing cache hit for %s", params.query)
                return cached

        results = self._send_with_retry(params)
        if self.cache is not None:
            self.cache.set(key, results)
        return results


__all__ = [
    "BingClient",
    "InMemoryTTLCache",
    "SearchParams",
    "SearchResult",
    "parse_search_response",
]
