"""
Extraction strategies. Each one tries a single way of getting a product
candidate for a URL and reports the outcome as an Attempt; none of them
validates the candidate (the chain hands it to the quality gate).
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .adapters import adapter_shopee
from .adapters.adapter_generic import MarketplaceAdapter, has_core_fields
from .browser import BrowserFetcher
from .cache import StateStore
from .errors import AntiBotBlock
from .fetcher import HttpClient, cookie_header
from .normalizer import html_looks_blocked, is_gateway_url
from .parser_generic import from_payloads, merge_missing
from .proxy import ProxyFallback
from .resolver import Resolution
from .schema import ExtractOptions

logger = logging.getLogger(__name__)

NO_DATA = "no_data"
INVALID_IMAGE = "invalid_image"
REJECTED = "rejected"
BLOCKED = "blocked"
NETWORK = "network"
UNAVAILABLE = "unavailable"
ERROR = "error"


@dataclass
class Attempt:
    strategy: str
    candidate: Optional[Dict[str, Any]] = None
    failure: Optional[str] = None
    detail: str = ""

    @classmethod
    def found(cls, strategy: str, candidate: Dict[str, Any]) -> "Attempt":
        return cls(strategy, candidate=candidate)

    @classmethod
    def failed(cls, strategy: str, failure: str, detail: str = "") -> "Attempt":
        return cls(strategy, failure=failure, detail=detail)


@dataclass
class StrategyContext:
    resolution: Resolution
    adapter: MarketplaceAdapter
    options: ExtractOptions
    http: HttpClient
    state_store: StateStore
    browser: Optional[BrowserFetcher] = None
    proxy: Optional[ProxyFallback] = None

    @property
    def stored_cookies(self) -> Dict[str, str]:
        return self.state_store.cookies(self.adapter.marketplace, self.adapter.cookie_domain)


class Strategy:
    name = "strategy"

    async def attempt(self, url: str, ctx: StrategyContext) -> Attempt:
        raise NotImplementedError


class ShopeeApiStrategy(Strategy):
    name = "shopee-api"

    async def attempt(self, url, ctx):
        identity = ctx.resolution.identity
        if identity is None:
            return Attempt.failed(self.name, NO_DATA, "no shop/item ids in URL")
        try:
            candidate = await adapter_shopee.fetch_from_api(ctx.http, identity, ctx.stored_cookies)
        except AntiBotBlock as e:
            return Attempt.failed(self.name, BLOCKED, e.detail)
        if not candidate:
            return Attempt.failed(self.name, NO_DATA)
        return Attempt.found(self.name, candidate)


class HtmlStrategy(Strategy):
    name = "html"

    async def attempt(self, url, ctx):
        page = await ctx.http.get_html(url, cookie_header=cookie_header(ctx.stored_cookies))
        if is_gateway_url(page.url):
            return Attempt.failed(self.name, BLOCKED, f"redirected to gateway {page.url}")
        candidate = ctx.adapter.extract_html(page.html)
        if has_core_fields(candidate):
            return Attempt.found(self.name, candidate)
        if page.status_code in (403, 429) or html_looks_blocked(page.html):
            return Attempt.failed(self.name, BLOCKED, f"challenge page (HTTP {page.status_code})")
        return Attempt.failed(self.name, NO_DATA, f"HTTP {page.status_code}")


class BrowserStrategy(Strategy):
    name = "browser"

    async def attempt(self, url, ctx):
        if ctx.browser is None:
            return Attempt.failed(self.name, UNAVAILABLE, "browser automation disabled")
        page = await ctx.browser.render(url, ctx.adapter)
        if page.blocked:
            return Attempt.failed(self.name, BLOCKED, f"gated at {page.url}")
        # runtime state first, then intercepted API data, then the DOM
        candidate = from_payloads(page.states, ctx.adapter.profile)
        merge_missing(candidate, from_payloads(page.api_payloads, ctx.adapter.profile))
        if page.html:
            merge_missing(candidate, ctx.adapter.extract_html(page.html))
        if has_core_fields(candidate):
            return Attempt.found(self.name, candidate)
        return Attempt.failed(self.name, NO_DATA)


class ProxyStrategy(Strategy):
    name = "proxy"

    async def attempt(self, url, ctx):
        if ctx.proxy is None or not ctx.proxy.enabled:
            logger.info("[Proxy] no API key configured, skipping")
            return Attempt.failed(self.name, UNAVAILABLE, "proxy not configured")
        candidate = await ctx.proxy.scrape(url, ctx.adapter)
        if not candidate:
            return Attempt.failed(self.name, NO_DATA)
        return Attempt.found(self.name, candidate)
