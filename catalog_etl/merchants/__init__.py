"""Merchant crawler variants."""

from typing import Dict, Type

from ..crawler import MerchantCrawler
from .billa import BillaCategory, BillaCrawler, BillaProduct
from .spar import SparCategory, SparCrawler, SparProduct

MERCHANTS: Dict[str, Type[MerchantCrawler]] = {
    BillaCrawler.merchant: BillaCrawler,
    SparCrawler.merchant: SparCrawler,
}


def get_crawler_class(merchant: str) -> Type[MerchantCrawler]:
    """Crawler class for a merchant slug."""
    if merchant not in MERCHANTS:
        raise ValueError(f"Unknown merchant: {merchant}. Available: {sorted(MERCHANTS)}")
    return MERCHANTS[merchant]


__all__ = [
    "MERCHANTS",
    "get_crawler_class",
    "BillaCategory",
    "BillaCrawler",
    "BillaProduct",
    "SparCategory",
    "SparCrawler",
    "SparProduct",
]
