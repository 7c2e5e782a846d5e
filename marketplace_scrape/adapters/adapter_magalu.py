from ..parser_generic import NodeProfile
from ..schema import Marketplace
from .adapter_generic import MarketplaceAdapter

IMAGE_SIZE = "800x560"


def _sized_image(url: str) -> str:
    # Magalu image URLs are templates: https://a-static.mlcdn.com.br/{w}x{h}/...
    return url.replace("{w}x{h}", IMAGE_SIZE)


ADAPTER = MarketplaceAdapter(
    marketplace=Marketplace.MAGALU,
    home_url="https://www.magazineluiza.com.br/",
    cookie_domain="magazineluiza",
    profile=NodeProfile(
        name_keys=("title", "name"),
        price_keys=("bestPrice", "price", "fullPrice"),
        image_keys=("image", "images", "imageUrl"),
        original_price_keys=("originalPrice", "listPrice"),
        rating_keys=("rating", "ratingValue"),
        review_keys=("reviewCount", "count"),
        seller_keys=("sellerDescription", "seller"),
        stock_keys=("available", "inStock"),
        image_builder=_sized_image,
    ),
    selectors={
        "title": ["h1[data-testid='heading-product-title']", "h1"],
        "price": ["[data-testid='price-value']", "[data-testid='price-default']"],
        "original_price": ["[data-testid='price-original']"],
        "image_url": [
            "img[data-testid='image-selected-thumbnail']@src",
            "[data-testid='media-gallery-image']@src",
        ],
        "description": ["[data-testid='rich-content-container']"],
        "rating": ["[data-testid='review-totalizers-rating']"],
        "review_count": ["[data-testid='review-totalizers-count']"],
        "seller": ["[data-testid='link-seller-name']", "[data-testid='seller-info'] label"],
        "in_stock": ["[data-testid='unavailable-product']"],
    },
    blob_specs=("[data-product]@data-product",),
    markers=("__NEXT_DATA__", "heading-product-title", "application/ld+json"),
    ready_selector="h1[data-testid='heading-product-title']",
)
