"""Billa online shop search API (flag-based pagination)."""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from urllib.parse import urlencode

from pydantic import BaseModel, Field, field_validator

from ..crawler import MerchantCrawler
from ..models import CatalogEntry, ParsedProduct, PriceObservation
from ..pagination import FlagPagination, PageCursor

SEARCH_URL = "https://shop.billa.at/api/search/full"
STORE_ID = "00-10"


class BillaCategory(str, Enum):
    VEGETABLES = "B2-1"
    BREAD = "B2-2"
    DRINKS = "B2-3"
    REFRIGERATED_GOODS = "B2-4"
    STAPLE = "B2-6"
    SWEETS = "B2-7"
    CARE_PRODUCTS = "B2-8"
    HOUSEHOLD = "B2-9"
    PET = "B2-A"


def _null_to_empty(value):
    return "" if value is None else value


class BillaPrice(BaseModel):
    normal: Decimal
    unit: str = ""

    @field_validator("unit", mode="before")
    @classmethod
    def null_unit(cls, v):
        return _null_to_empty(v)


class BillaProduct(ParsedProduct):
    online_shop_url: str = Field(alias="canonicalPath")
    article_id: str = Field(alias="articleId")
    name: str
    description: str = ""
    brand: str = ""
    grammage_badge: str = Field(default="", alias="grammageBadge")
    grammage_unit: str = Field(alias="grammageUnit")
    grammage_price_factor: float = Field(alias="grammagePriceFactor")
    grammage: str
    price: BillaPrice

    @field_validator("description", "brand", "grammage_badge", mode="before")
    @classmethod
    def null_text(cls, v):
        return _null_to_empty(v)

    @property
    def merchant_id(self) -> str:
        return self.article_id

    def to_catalog_entry(self) -> CatalogEntry:
        return CatalogEntry(
            merchant_id=self.article_id,
            name=self.name,
            description=self.description,
            brand=self.brand,
            online_shop_url=self.online_shop_url,
            badge=self.grammage_badge,
            unit=self.grammage_unit,
            grammage=self.grammage,
            price_factor=self.grammage_price_factor,
        )

    def to_price(self) -> PriceObservation:
        return PriceObservation(amount=self.price.normal, unit=self.price.unit)


class BillaCrawler(MerchantCrawler[BillaCategory, BillaProduct]):
    merchant = "billa"
    categories = BillaCategory
    product_model = BillaProduct
    items_key = "tiles"
    item_key = "data"
    page_size = 40
    pagination = FlagPagination("pagingInfo")

    def build_url(self, cursor: PageCursor) -> str:
        params = [
            ("category", cursor.category.value),
            ("includeSort[]", "rank"),
            ("page", cursor.page),
            ("sort", "rank"),
            ("storeId", STORE_ID),
            ("pageSize", cursor.page_size),
        ]
        return f"{SEARCH_URL}?{urlencode(params)}"
