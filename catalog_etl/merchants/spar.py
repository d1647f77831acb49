"""Spar FactFinder search API (counter-based pagination)."""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import List
from urllib.parse import urlencode

from pydantic import Field, field_validator

from ..crawler import MerchantCrawler
from ..models import CatalogEntry, ParsedProduct, PriceObservation
from ..pagination import CounterPagination, PageCursor

SEARCH_URL = "https://search-spar.spar-ics.com/fact-finder/rest/v4/search/products_lmos_at"


class SparCategory(str, Enum):
    VEGAN = "F17"
    VEGETABLES = "F1"
    REFRIGERATED_GOODS = "F2"
    MEATS = "F3"
    PANTRY = "F4"
    SWEETS = "F5"
    BREAD = "F6"
    DRINKS = "F7"
    FROZEN_GOODS = "F8"
    BABY = "F9"
    PET = "F10"
    BEAUTY = "F11"
    HOUSEHOLD = "F12"
    KITCHEN_UTENSILS = "F13"


class SparProduct(ParsedProduct):
    code_internal: str = Field(alias="code-internal")
    product_number: str = Field(alias="product-number")
    name: str
    title: str
    description: str = ""
    brand: List[str] = Field(default_factory=list)
    url: str
    price: Decimal
    sales_unit: str = Field(alias="sales-unit")
    price_per_unit: str = Field(default="", alias="price-per-unit")

    @field_validator("description", "price_per_unit", mode="before")
    @classmethod
    def null_text(cls, v):
        return "" if v is None else v

    @field_validator("brand", mode="before")
    @classmethod
    def null_brand(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @property
    def merchant_id(self) -> str:
        return self.code_internal

    def to_catalog_entry(self) -> CatalogEntry:
        return CatalogEntry(
            merchant_id=self.code_internal,
            name=self.name,
            description=self.description,
            brand=";".join(self.brand),
            online_shop_url=self.url,
            unit=self.sales_unit,
        )

    def to_price(self) -> PriceObservation:
        return PriceObservation(
            amount=self.price,
            unit=self.sales_unit,
            price_per_unit=self.price_per_unit,
        )


class SparCrawler(MerchantCrawler[SparCategory, SparProduct]):
    merchant = "spar"
    categories = SparCategory
    product_model = SparProduct
    items_key = "hits"
    item_key = "masterValues"
    page_size = 80
    pagination = CounterPagination("paging")

    def build_url(self, cursor: PageCursor) -> str:
        params = [
            ("query", "*"),
            ("q", "*"),
            ("page", cursor.page),
            ("hitsPerPage", cursor.page_size),
            ("filter", f"category-path:{cursor.category.value}"),
        ]
        return f"{SEARCH_URL}?{urlencode(params)}"
