"""Models shared across the ingestion pipeline."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CrawlSession(BaseModel):
    id: UUID
    created_at: datetime


class CatalogEntry(BaseModel):
    """Descriptive fields of a catalog product as stored on first sight."""

    merchant_id: str
    name: str
    description: str = ""
    brand: str = ""
    online_shop_url: str = ""
    badge: str = ""
    unit: str = ""
    grammage: str = ""
    price_factor: Optional[float] = None


class PriceObservation(BaseModel):
    amount: Decimal
    unit: str = ""
    price_per_unit: str = ""


class ParsedProduct(BaseModel, ABC):
    """Base for merchant product schemas decoded from a search page item."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    @abstractmethod
    def merchant_id(self) -> str:
        """Merchant-assigned product identifier."""

    @abstractmethod
    def to_catalog_entry(self) -> CatalogEntry:
        """Descriptive fields stored on first sight."""

    @abstractmethod
    def to_price(self) -> PriceObservation:
        """Price observed in this snapshot."""


P = TypeVar("P", bound=ParsedProduct)
C = TypeVar("C", bound=Enum)


@dataclass(frozen=True)
class TaggedProduct(Generic[P]):
    """A parsed product together with the snapshot it was read from."""

    product: P
    snapshot_id: UUID


@dataclass
class ExtractionResult(Generic[P]):
    products: List[TaggedProduct[P]] = field(default_factory=list)
    dropped: int = 0


@dataclass
class CategoryDownload(Generic[C, P]):
    """Accumulated result of one category's fetch loop."""

    category: C
    products: List[TaggedProduct[P]] = field(default_factory=list)
    pages_fetched: int = 0
    failed_pages: int = 0
    dropped: int = 0


@dataclass
class ReconcileStats:
    category: Any
    products_created: int = 0
    products_reused: int = 0
    prices_inserted: int = 0


@dataclass
class MerchantReport:
    """Outcome of both phases for one merchant."""

    merchant: str
    categories_downloaded: List[str] = field(default_factory=list)
    categories_failed: List[str] = field(default_factory=list)
    categories_reconciled: List[str] = field(default_factory=list)
    reconcile_failed: List[str] = field(default_factory=list)
    products_extracted: int = 0
    items_dropped: int = 0
    products_created: int = 0
    products_reused: int = 0
    prices_inserted: int = 0
    error: Optional[str] = None
    elapsed_sec: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and not self.categories_failed and not self.reconcile_failed


@dataclass
class CrawlReport:
    session: CrawlSession
    merchants: List[MerchantReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(report.ok for report in self.merchants)
