from typing import Any, Dict

from bs4 import BeautifulSoup

from ..parser_generic import NodeProfile
from ..prices import parse_aria_price
from ..schema import Marketplace
from .adapter_generic import MarketplaceAdapter

# Price containers expose "1.234 reais com 56 centavos" in aria-label,
# which is the only place the cents are not split into another span.
PRICE_LABELS = [
    ".ui-pdp-price__second-line .andes-money-amount",
    ".poly-price__current .andes-money-amount",
    "[data-testid='price-part'] .andes-money-amount",
]
ORIGINAL_PRICE_LABELS = [
    ".ui-pdp-price__original-value",
    "s.andes-money-amount--previous",
    ".poly-price__comparison",
]


class MercadoLivreAdapter(MarketplaceAdapter):

    def extract_html(self, html: str) -> Dict[str, Any]:
        soup = BeautifulSoup(html, "lxml")
        out: Dict[str, Any] = {}
        for key, sels in (("price", PRICE_LABELS), ("original_price", ORIGINAL_PRICE_LABELS)):
            for sel in sels:
                el = soup.select_one(sel)
                value = parse_aria_price(el.get("aria-label")) if el else None
                if value is not None:
                    out[key] = value
                    break
        base = super().extract_html(html)
        # aria-label prices are more precise than the fraction spans
        base.update(out)
        return base


ADAPTER = MercadoLivreAdapter(
    marketplace=Marketplace.MERCADO_LIVRE,
    home_url="https://www.mercadolivre.com.br/",
    cookie_domain="mercadoli",
    profile=NodeProfile(
        name_keys=("title", "name"),
        price_keys=("price", "amount", "value"),
        image_keys=("pictures", "picture", "thumbnail", "image"),
        original_price_keys=("original_price", "originalPrice", "previous_price"),
        sold_keys=("sold_quantity", "soldQuantity"),
        seller_keys=("seller_name", "nickname", "seller"),
        stock_keys=("available_quantity", "availableQuantity"),
    ),
    selectors={
        "title": ["h1.ui-pdp-title", ".poly-component__title", "h1"],
        "price": [
            "meta[itemprop='price']@content",
            ".ui-pdp-price__second-line .andes-money-amount__fraction",
        ],
        "image_url": [
            "figure.ui-pdp-gallery__figure img@data-zoom",
            ".ui-pdp-gallery__figure img@src",
            "img.poly-component__picture@src",
        ],
        "description": [".ui-pdp-description__content"],
        "rating": [".ui-pdp-review__rating"],
        "review_count": [".ui-pdp-review__amount"],
        "sales_quantity": [".ui-pdp-header__subtitle"],
        "seller": [".ui-pdp-seller__link-trigger", ".ui-pdp-seller__header__title"],
        "in_stock": [".ui-pdp-stock-information__title"],
    },
    markers=("application/ld+json", "ui-pdp-title", "poly-card", "__PRELOADED_STATE__"),
    ready_selector="h1.ui-pdp-title",
)
