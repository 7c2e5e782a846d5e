import logging
from typing import Any, Dict, Optional

from .adapters.adapter_generic import MarketplaceAdapter, has_core_fields
from .cache import TTLCache
from .errors import ExternalServiceUnavailable, TransientNetworkError
from .fetcher import HttpClient

logger = logging.getLogger(__name__)

SCRAPER_API_URL = "https://api.scraperapi.com/"


class ProxyFallback:
    """
    Last-resort fetch through ScraperAPI. Results are cached per URL:
    successes for ``success_ttl`` seconds, failures for ``failure_ttl``.
    """

    def __init__(self, http: HttpClient, api_key: Optional[str], cache: Optional[TTLCache] = None,
                 timeout: float = 60.0, success_ttl: float = 600.0, failure_ttl: float = 120.0):
        self.http = http
        self.api_key = api_key
        self.cache = cache or TTLCache()
        self.timeout = timeout
        self.success_ttl = success_ttl
        self.failure_ttl = failure_ttl

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _fetch(self, url: str, render: bool) -> str:
        params = {"api_key": self.api_key, "url": url, "country_code": "br"}
        if render:
            params["render"] = "true"
        resp = await self.http.request(SCRAPER_API_URL, params=params, timeout=self.timeout)
        if resp.status_code >= 400:
            raise TransientNetworkError(f"proxy returned HTTP {resp.status_code} for {url}")
        return resp.text

    async def fetch_html(self, url: str, adapter: MarketplaceAdapter) -> str:
        html = await self._fetch(url, render=False)
        if not adapter.looks_complete(html):
            logger.info("[Proxy] incomplete page for %s, retrying with render", url)
            html = await self._fetch(url, render=True)
        return html

    async def scrape(self, url: str, adapter: MarketplaceAdapter) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            raise ExternalServiceUnavailable("SCRAPER_API_KEY not configured")

        hit, cached = self.cache.get(url)
        if hit:
            logger.info("[Proxy] cache hit for %s (%s)", url, "ok" if cached else "failure")
            return cached

        try:
            html = await self.fetch_html(url, adapter)
        except TransientNetworkError:
            self.cache.set(url, None, self.failure_ttl)
            raise

        candidate = adapter.extract_html(html)
        if has_core_fields(candidate):
            self.cache.set(url, candidate, self.success_ttl)
            return candidate
        self.cache.set(url, None, self.failure_ttl)
        return None
