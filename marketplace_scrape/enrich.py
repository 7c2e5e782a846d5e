import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .errors import TransientNetworkError
from .fetcher import HttpClient
from .prices import PRICE_CEILING, parse_price
from .schema import Marketplace

logger = logging.getLogger(__name__)

GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"
SERPAPI_URL = "https://serpapi.com/search.json"

_SNIPPET_PRICE = re.compile(r"R\$\s*[0-9\.\,]+")
_BRANDING = re.compile(
    r"(?:\s*[-|–—:]\s*|\s+)"
    r"(?:shopee(?:\s+brasil)?|mercado\s*livre|amazon(?:\.com)?(?:\.br)?|magalu|magazine\s*luiza)\s*$",
    re.I,
)
_SEPARATORS = re.compile(r"[\s\-|–—:_,/]+")


def normalize_title_for_match(title: Optional[str]) -> str:
    """Lowercase, strip marketplace branding suffix, collapse separators."""
    t = (title or "").strip().lower()
    t = _BRANDING.sub("", t)
    return _SEPARATORS.sub(" ", t).strip()


def _in_range(value: Optional[float]) -> Optional[float]:
    return value if value is not None and 0 < value <= PRICE_CEILING else None


def price_from_snippet(text: Optional[str]) -> Optional[float]:
    m = _SNIPPET_PRICE.search(text or "")
    return _in_range(parse_price(m.group(0))) if m else None


def _cse_structured_price(item: Dict[str, Any]) -> Optional[float]:
    pagemap = item.get("pagemap") or {}
    for meta in pagemap.get("metatags") or []:
        for key in ("product:price:amount", "og:price:amount", "twitter:data1"):
            price = _in_range(parse_price(meta.get(key)))
            if price is not None:
                return price
    for section in ("offer", "product", "aggregateoffer"):
        for entry in pagemap.get(section) or []:
            price = _in_range(parse_price(entry.get("price") or entry.get("lowprice")))
            if price is not None:
                return price
    return None


def _serpapi_structured_price(item: Dict[str, Any]) -> Optional[float]:
    for key in ("extracted_price", "price"):
        price = _in_range(parse_price(item.get(key)))
        if price is not None:
            return price
    rich = (item.get("rich_snippet") or {}).get("top") or {}
    detected = rich.get("detected_extensions") or {}
    price = _in_range(parse_price(detected.get("price")))
    if price is not None:
        return price
    for ext in rich.get("extensions") or []:
        price = price_from_snippet(ext)
        if price is not None:
            return price
    return None


class GoogleCseSearch:
    name = "google-cse"

    def __init__(self, http: HttpClient, api_key: Optional[str], cx: Optional[str]):
        self.http, self.api_key, self.cx = http, api_key, cx

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.cx)

    async def search(self, query: str) -> List[Dict[str, Any]]:
        payload = await self.http.get_json(GOOGLE_CSE_URL, params={
            "key": self.api_key, "cx": self.cx, "q": query, "num": 10, "gl": "br", "hl": "pt-BR",
        })
        return (payload.get("items") or []) if isinstance(payload, dict) else []

    def structured_price(self, item):
        return _cse_structured_price(item)


class SerpApiSearch:
    name = "serpapi"

    def __init__(self, http: HttpClient, api_key: Optional[str]):
        self.http, self.api_key = http, api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str) -> List[Dict[str, Any]]:
        payload = await self.http.get_json(SERPAPI_URL, params={
            "engine": "google", "q": query, "api_key": self.api_key,
            "gl": "br", "hl": "pt-br", "google_domain": "google.com.br",
        })
        if not isinstance(payload, dict):
            return []
        return (payload.get("shopping_results") or []) + (payload.get("organic_results") or [])

    def structured_price(self, item):
        return _serpapi_structured_price(item)


class PriceEnricher:
    """
    Looks a product up on search engines when its page had no price. Only
    results whose normalized title equals the product's are trusted.
    """

    def __init__(self, providers: Iterable):
        self.providers = [p for p in providers if p.enabled]

    @property
    def enabled(self) -> bool:
        return bool(self.providers)

    async def find_price(self, title: str, marketplace: Marketplace) -> Optional[float]:
        wanted = normalize_title_for_match(title)
        if not wanted:
            return None
        query = f"{title} {marketplace.display_name}"
        for provider in self.providers:
            try:
                items = await provider.search(query)
            except TransientNetworkError as e:
                logger.warning("[Price] %s search failed: %s", provider.name, e)
                continue
            for item in items:
                if not isinstance(item, dict):
                    continue
                if normalize_title_for_match(item.get("title")) != wanted:
                    continue
                price = provider.structured_price(item) or price_from_snippet(item.get("snippet"))
                if price is not None:
                    logger.info("[Price] %s found %.2f for %r", provider.name, price, title)
                    return price
        return None
