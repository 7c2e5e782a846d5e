from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class Marketplace(str, Enum):
    SHOPEE = "SHOPEE"
    MERCADO_LIVRE = "MERCADO_LIVRE"
    AMAZON = "AMAZON"
    MAGALU = "MAGALU"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    Marketplace.SHOPEE: "Shopee",
    Marketplace.MERCADO_LIVRE: "Mercado Livre",
    Marketplace.AMAZON: "Amazon",
    Marketplace.MAGALU: "Magalu",
}


class ScrapeField(str, Enum):
    TITLE = "title"
    DESCRIPTION = "description"
    PRICE = "price"
    ORIGINAL_PRICE = "originalPrice"
    DISCOUNT_PERCENTAGE = "discountPercentage"
    IMAGE_URL = "imageUrl"
    MARKETPLACE = "marketplace"
    RATING = "rating"
    REVIEW_COUNT = "reviewCount"
    SALES_QUANTITY = "salesQuantity"
    SELLER = "seller"
    IN_STOCK = "inStock"


# Fields a caller may switch off to save extraction work.
OPTIONAL_FIELDS = {
    ScrapeField.DESCRIPTION: "description",
    ScrapeField.RATING: "rating",
    ScrapeField.REVIEW_COUNT: "review_count",
    ScrapeField.SALES_QUANTITY: "sales_quantity",
    ScrapeField.SELLER: "seller",
}


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


class ProductRecord(BaseModel):
    """Validated product data. Built only by ``normalizer.accept``."""

    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)

    title: str
    description: Optional[str] = None
    price: Optional[float] = None
    original_price: Optional[float] = None
    discount_percentage: Optional[int] = None
    image_url: HttpUrl
    product_url: str              # as supplied by the caller, never the resolved URL
    marketplace: Marketplace
    rating: Optional[float] = None
    review_count: Optional[int] = None
    sales_quantity: Optional[int] = None
    seller: Optional[str] = None
    in_stock: bool = True
    scraped_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MarketplaceIdentity(BaseModel):
    shop_id: str
    item_id: str

    def canonical_url(self) -> str:
        return f"https://shopee.com.br/product/{self.shop_id}/{self.item_id}"


class ExtractOptions(BaseModel):
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)

    original_url: Optional[str] = None
    user_id: Optional[str] = None
    telegram_user_id: Optional[int] = None
    origin: Optional[str] = None
    skip_browser_automation: bool = False
    fields: Optional[List[ScrapeField]] = None

    def wants(self, field: ScrapeField) -> bool:
        if not self.fields or field not in OPTIONAL_FIELDS:
            return True
        return field in self.fields

    def fields_key(self) -> str:
        return ",".join(sorted(f.value for f in self.fields)) if self.fields else "*"


class ExtractResult(BaseModel):
    success: bool
    data: Optional[ProductRecord] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, record: ProductRecord) -> "ExtractResult":
        return cls(success=True, data=record)

    @classmethod
    def fail(cls, error: str) -> "ExtractResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
