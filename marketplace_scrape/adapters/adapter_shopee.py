import logging
from typing import Any, Dict, Optional

from ..errors import AntiBotBlock, TransientNetworkError
from ..fetcher import HttpClient, cookie_header
from ..parser_generic import NodeProfile
from ..prices import scale_shopee_price
from ..schema import Marketplace, MarketplaceIdentity
from .adapter_generic import MarketplaceAdapter

logger = logging.getLogger(__name__)

IMAGE_CDN = "https://cf.shopee.com.br/file/"
API_BASE = "https://shopee.com.br"

# Tried in order. Each entry: (label, path, query builder)
API_VARIANTS = (
    ("v4-item", "/api/v4/item/get", lambda i: {"shopid": i.shop_id, "itemid": i.item_id}),
    ("v4-pdp", "/api/v4/pdp/get_pc", lambda i: {"shop_id": i.shop_id, "item_id": i.item_id}),
    ("v2-item", "/api/v2/item/get", lambda i: {"shopid": i.shop_id, "itemid": i.item_id}),
)

# Anti-crawler code: the next variant may still answer.
RETRY_NEXT_VARIANT = {90309999}


def image_from_hash(value: str) -> str:
    if value.startswith("http"):
        return value
    return IMAGE_CDN + value


SHOPEE_PROFILE = NodeProfile(
    name_keys=("name", "title"),
    price_keys=("price", "price_min"),
    image_keys=("image", "images"),
    original_price_keys=("price_before_discount", "price_min_before_discount", "price_max_before_discount"),
    description_keys=("description",),
    rating_keys=("item_rating", "rating_star"),
    review_keys=("cmt_count", "rating_count"),
    sold_keys=("historical_sold", "sold", "global_sold"),
    seller_keys=("shop_name", "account_name"),
    stock_keys=("stock", "normal_stock"),
    price_parser=scale_shopee_price,
    image_builder=image_from_hash,
)

ADAPTER = MarketplaceAdapter(
    marketplace=Marketplace.SHOPEE,
    home_url="https://shopee.com.br/",
    cookie_domain="shopee",
    profile=SHOPEE_PROFILE,
    selectors={
        "title": ["div[class*='product-briefing'] h1", "h1.vR6K3w", "._44qnta span", "h1"],
        "price": ["div[class*='product-briefing'] .IZPeQz", ".pqTWkA", "._3n5NQx"],
        "image_url": ["div[class*='product-briefing'] img@src", "picture img@src"],
        "rating": [".F9RHbS", "._1k47d8"],
        "sales_quantity": [".AcmPRb", "._22sp0A"],
    },
    markers=("application/ld+json", "og:title", "__NEXT_DATA__", "product-briefing"),
    api_patterns=("/api/v4/pdp/get_pc", "/api/v4/item/get", "/api/v2/item/get"),
    ready_selector="div[class*='product-briefing']",
)


def api_headers(identity: MarketplaceIdentity) -> Dict[str, str]:
    return {
        "Accept": "application/json",
        "X-Requested-With": "XMLHttpRequest",
        "X-Api-Source": "pc",
        "X-Shopee-Language": "pt-BR",
        "Origin": API_BASE,
        "Referer": identity.canonical_url(),
    }


async def fetch_from_api(http: HttpClient, identity: MarketplaceIdentity,
                         stored_cookies: Optional[Dict[str, str]] = None) -> Optional[Dict[str, Any]]:
    """
    Ask Shopee's internal item endpoints for the product. A landing visit
    first collects session cookies. Returns None when no variant answered
    with data; raises AntiBotBlock when every variant was refused by the
    anti-crawler.
    """
    cookies = dict(stored_cookies or {})
    try:
        landing = await http.get_html(identity.canonical_url(), cookie_header=cookie_header(cookies))
        cookies.update(landing.cookies)
    except TransientNetworkError as e:
        logger.info("[Shopee] landing visit failed, calling API without session: %s", e)

    refused = 0
    for label, path, params in API_VARIANTS:
        try:
            payload = await http.get_json(
                API_BASE + path,
                params=params(identity),
                headers=api_headers(identity),
                cookie_header=cookie_header(cookies),
                allow_error_status=True,
            )
        except TransientNetworkError as e:
            logger.info("[Shopee] %s failed: %s", label, e)
            continue
        if not isinstance(payload, dict):
            continue

        error = payload.get("error")
        if error in RETRY_NEXT_VARIANT:
            refused += 1
            logger.info("[Shopee] %s refused (error %s), trying next variant", label, error)
            continue
        if error not in (None, 0):
            logger.info("[Shopee] %s returned error %s, giving up on API", label, error)
            return None

        data = payload.get("data") or payload.get("item")
        if not data:
            continue
        candidate = ADAPTER.extract_payload(data)
        if candidate.get("title"):
            logger.info("[Shopee] %s answered for %s/%s", label, identity.shop_id, identity.item_id)
            return candidate

    if refused == len(API_VARIANTS):
        raise AntiBotBlock(Marketplace.SHOPEE.display_name, "all API variants refused")
    return None
