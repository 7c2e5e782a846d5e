import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlparse, urlunparse

import tldextract

from .cache import StateStore
from .errors import TransientNetworkError
from .fetcher import HttpClient, cookie_header
from .normalizer import is_gateway_url
from .schema import Marketplace, MarketplaceIdentity

logger = logging.getLogger(__name__)

# Bundled public-suffix snapshot only; no network lookups.
_tld = tldextract.TLDExtract(suffix_list_urls=())

MARKETPLACE_DOMAINS = {
    "shopee.com.br": Marketplace.SHOPEE,
    "shopee.com": Marketplace.SHOPEE,
    "shp.ee": Marketplace.SHOPEE,
    "mercadolivre.com.br": Marketplace.MERCADO_LIVRE,
    "mercadolivre.com": Marketplace.MERCADO_LIVRE,
    "mercadolibre.com": Marketplace.MERCADO_LIVRE,
    "meli.la": Marketplace.MERCADO_LIVRE,
    "amazon.com.br": Marketplace.AMAZON,
    "amazon.com": Marketplace.AMAZON,
    "a.co": Marketplace.AMAZON,
    "amzn.to": Marketplace.AMAZON,
    "magazineluiza.com.br": Marketplace.MAGALU,
    "magazinevoce.com.br": Marketplace.MAGALU,
    "magalu.com": Marketplace.MAGALU,
    "magalu.com.br": Marketplace.MAGALU,
}

# Query parameters that carry an encoded destination URL.
WRAPPER_PARAMS = ("origin_link", "redir", "ssc", "url", "target")

_DOTTED_IDS = re.compile(r"i\.(\d+)\.(\d+)")
_SLASH_IDS = re.compile(r"/(?:product|opaanlp)/(\d+)/(\d+)")
_BARE_SLASH_IDS = re.compile(r"^/(?:[^/]+/)?(\d+)/(\d+)/?$")
_ASIN = re.compile(r"/(?:dp|gp/product|gp/aw/d|product)/([A-Z0-9]{10})", re.I)


def unwrap(url: str, depth: int = 3) -> str:
    """Follow destination URLs nested in query parameters (affiliate links, gateways)."""
    for _ in range(depth):
        qs = parse_qs(urlparse(url).query)
        inner = next(
            (qs[p][0] for p in WRAPPER_PARAMS if p in qs and qs[p][0].startswith("http")),
            None,
        )
        if not inner:
            break
        url = inner
    return url


def detect_marketplace(url: str) -> Optional[Marketplace]:
    for candidate in (url, unwrap(url)):
        ext = _tld(candidate)
        domain = ".".join(p for p in (ext.domain, ext.suffix) if p)
        if domain in MARKETPLACE_DOMAINS:
            return MARKETPLACE_DOMAINS[domain]
    return None


def strip_tracking(url: str) -> str:
    p = urlparse(url)
    return urlunparse((p.scheme, p.netloc, p.path, "", "", ""))


def extract_identity(url: str) -> Optional[MarketplaceIdentity]:
    """Shop/item pair from slash, dotted or gateway-wrapped Shopee URLs."""
    target = unwrap(url)
    if detect_marketplace(target) is not Marketplace.SHOPEE:
        return None
    path = urlparse(target).path
    for rx in (_DOTTED_IDS, _SLASH_IDS, _BARE_SLASH_IDS):
        m = rx.search(path)
        if m:
            return MarketplaceIdentity(shop_id=m.group(1), item_id=m.group(2))
    return None


def amazon_asin(url: str) -> Optional[str]:
    m = _ASIN.search(urlparse(url).path)
    return m.group(1).upper() if m else None


def normalize_magalu(url: str) -> str:
    p = urlparse(url)
    path = p.path.replace("/divulgador/oferta/", "/p/")
    return urlunparse(("https", p.netloc, path, "", "", ""))


def canonical_url(url: str, marketplace: Marketplace,
                  identity: Optional[MarketplaceIdentity] = None) -> str:
    if marketplace is Marketplace.SHOPEE and identity:
        return identity.canonical_url()
    if marketplace is Marketplace.AMAZON:
        asin = amazon_asin(url)
        if asin:
            return f"https://www.amazon.com.br/dp/{asin}"
    if marketplace is Marketplace.MAGALU:
        return normalize_magalu(url)
    return strip_tracking(url)


@dataclass
class Resolution:
    original_url: str
    resolved_url: str
    canonical_url: str
    marketplace: Marketplace
    identity: Optional[MarketplaceIdentity] = None
    gated: bool = False


BrowserResolve = Callable[[str, Marketplace], Awaitable[Optional[str]]]


class Resolver:
    """
    Turns a shared link into the URL the strategies work on. Never raises:
    when the network gives up, the input URL is used as is.
    """

    def __init__(self, http: HttpClient, state_store: StateStore,
                 browser_resolve: Optional[BrowserResolve] = None,
                 gateway_delay: float = 1.5):
        self.http = http
        self.state_store = state_store
        self.browser_resolve = browser_resolve
        self.gateway_delay = gateway_delay

    async def _follow(self, url: str, cookies: Optional[str] = None) -> str:
        try:
            page = await self.http.get_html(url, cookie_header=cookies)
            return page.url
        except TransientNetworkError as e:
            logger.warning("[Resolver] could not follow %s: %s", url, e)
            return url

    async def resolve(self, url: str, marketplace: Marketplace,
                      allow_browser: bool = True) -> Resolution:
        final = await self._follow(url)

        if is_gateway_url(final):
            logger.info("[Resolver] gateway hit for %s, retrying", url)
            await asyncio.sleep(self.gateway_delay)
            final = await self._follow(url)

        if is_gateway_url(final):
            cookies = self.state_store.cookies(marketplace)
            if cookies:
                logger.info("[Resolver] retrying with stored %s cookies", marketplace.value)
                final = await self._follow(url, cookie_header(cookies))

        if is_gateway_url(final) and allow_browser and self.browser_resolve:
            try:
                resolved = await self.browser_resolve(url, marketplace)
            except Exception as e:
                logger.warning("[Resolver] browser resolution failed for %s: %s", url, e)
                resolved = None
            if resolved and not is_gateway_url(resolved):
                final = resolved

        gated = is_gateway_url(final)
        if gated:
            target = unwrap(final)
            logger.warning("[Resolver] still gated, using wrapped target %s", target)
            final = target if target != final else url

        identity = extract_identity(final) or extract_identity(url)
        canonical = canonical_url(final, marketplace, identity)
        logger.info("[Resolver] %s -> %s", url, canonical)
        return Resolution(
            original_url=url,
            resolved_url=final,
            canonical_url=canonical,
            marketplace=marketplace,
            identity=identity,
            gated=gated,
        )
