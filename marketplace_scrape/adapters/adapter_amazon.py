import json
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from ..schema import Marketplace
from .adapter_generic import MarketplaceAdapter


def _largest_dynamic_image(soup: BeautifulSoup) -> Optional[str]:
    # data-a-dynamic-image = {"<url>": [width, height], ...}
    el = soup.select_one("#landingImage[data-a-dynamic-image], #imgBlkFront[data-a-dynamic-image]")
    if el is None:
        return None
    try:
        images = json.loads(el["data-a-dynamic-image"])
    except (ValueError, KeyError):
        return None
    if not isinstance(images, dict) or not images:
        return None

    def area(item):
        size = item[1]
        if isinstance(size, list) and len(size) == 2:
            return size[0] * size[1]
        return 0

    return max(images.items(), key=area)[0]


class AmazonAdapter(MarketplaceAdapter):

    def extract_html(self, html: str) -> Dict[str, Any]:
        out = super().extract_html(html)
        image = _largest_dynamic_image(BeautifulSoup(html, "lxml"))
        if image:
            out["image_url"] = image
        return out


ADAPTER = AmazonAdapter(
    marketplace=Marketplace.AMAZON,
    home_url="https://www.amazon.com.br/",
    cookie_domain="amazon",
    selectors={
        "title": ["#productTitle", "#title", "h1"],
        "price": [
            "#corePrice_feature_div .a-offscreen",
            "#corePriceDisplay_desktop_feature_div .priceToPay .a-offscreen",
            ".priceToPay .a-offscreen",
            "#priceblock_dealprice",
            "#priceblock_ourprice",
        ],
        "original_price": [
            "#corePriceDisplay_desktop_feature_div .basisPrice .a-offscreen",
            ".a-price.a-text-price .a-offscreen",
        ],
        "image_url": ["#landingImage@data-old-hires", "#landingImage@src", "#imgBlkFront@src"],
        "description": ["#feature-bullets", "#productDescription"],
        "rating": ["#acrPopover@title", "span[data-hook='rating-out-of-text']"],
        "review_count": ["#acrCustomerReviewText"],
        "seller": ["#sellerProfileTriggerId", "#merchant-info a", "#bylineInfo"],
        "in_stock": ["#availability"],
    },
    markers=("productTitle", "application/ld+json", "data-a-dynamic-image"),
    ready_selector="#productTitle",
)
