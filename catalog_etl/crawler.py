"""Shared crawl pipeline for one merchant.

A merchant variant only declares its categories, product schema, URL layout
and pagination protocol; the fetch/persist/parse loop, category registration
and catalog reconciliation are implemented once here.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Dict, Generic, List, Optional, Type
from uuid import UUID

import httpx
import orjson

from .config import CrawlConfig
from .db import CatalogStore
from .extractor import extract_products
from .models import (
    C,
    CategoryDownload,
    MerchantReport,
    P,
    ReconcileStats,
)
from .pagination import PageCursor, Pagination
from .scheduler import BoundedTaskGroup

LOGGER = logging.getLogger(__name__)


class PageFetchError(RuntimeError):
    """Raised when a category keeps answering with non-200 responses."""


class PageLimitExceeded(RuntimeError):
    """Raised when a category never reports a terminal page."""


def category_text(category: Enum) -> str:
    """Persistent text key of a category: ``REFRIGERATED_GOODS`` -> ``RefrigeratedGoods``."""
    return "".join(part.capitalize() for part in category.name.split("_"))


class MerchantCrawler(ABC, Generic[C, P]):
    """Base class for merchant crawlers.

    Subclasses must define:
    - merchant: slug stored with every row
    - categories: Enum whose values are the API category codes
    - product_model: ParsedProduct subclass for one search item
    - items_key / item_key: where items sit in a page body
    - page_size, pagination
    - build_url()
    """

    merchant: ClassVar[str]
    categories: ClassVar[Type[Enum]]
    product_model: ClassVar[Type[Any]]
    items_key: ClassVar[str]
    item_key: ClassVar[str]
    page_size: ClassVar[int]
    pagination: ClassVar[Pagination]

    def __init__(
        self,
        store: CatalogStore,
        client: Optional[httpx.AsyncClient],
        config: CrawlConfig,
    ) -> None:
        self.store = store
        self.client = client
        self.config = config

    @abstractmethod
    def build_url(self, cursor: PageCursor) -> str:
        """Search URL for the cursor's category and page."""

    async def register_categories(self) -> Dict[C, UUID]:
        """Resolve every category to its persistent id.

        Runs sequentially before any task is spawned.
        """
        category_map: Dict[C, UUID] = {}
        for category in self.categories:
            category_map[category] = await self.store.get_or_create_category(
                self.merchant, category_text(category)
            )
        LOGGER.info("%s: %d categories registered", self.merchant, len(category_map))
        return category_map

    async def download_category(self, session_id: UUID, category: C) -> CategoryDownload[C, P]:
        """Fetch every page of a category.

        Each attempt leaves exactly one raw snapshot. A non-200 page is
        recorded and skipped; ``max_consecutive_failures`` of them in a row
        fail the category. Transport, decode and pagination errors fail the
        category at once and discard what was gathered.
        """
        cursor = PageCursor(category, page=1, page_size=self.page_size)
        download: CategoryDownload[C, P] = CategoryDownload(category=category)
        consecutive_failures = 0

        while True:
            attempts = download.pages_fetched + download.failed_pages
            if attempts >= self.config.max_pages:
                raise PageLimitExceeded(
                    f"{self.merchant} {category_text(category)}: no terminal page "
                    f"after {attempts} requests"
                )

            url = self.build_url(cursor)
            LOGGER.info("%s %s: page %d", self.merchant, category_text(category), cursor.page)

            try:
                response = await self.client.get(url)
            except httpx.RequestError as exc:
                await self.store.insert_error_snapshot(
                    session_id, self.merchant, url, f"{type(exc).__name__}: {exc}"
                )
                raise

            if response.status_code != 200:
                await self.store.insert_error_snapshot(
                    session_id,
                    self.merchant,
                    url,
                    f"HTTP {response.status_code}: {response.text}",
                    response.status_code,
                )
                download.failed_pages += 1
                consecutive_failures += 1
                LOGGER.warning(
                    "%s %s: page %d answered %d (%d consecutive)",
                    self.merchant,
                    category_text(category),
                    cursor.page,
                    response.status_code,
                    consecutive_failures,
                )
                if consecutive_failures >= self.config.max_consecutive_failures:
                    raise PageFetchError(
                        f"{self.merchant} {category_text(category)}: "
                        f"{consecutive_failures} consecutive failed pages, last status "
                        f"{response.status_code}"
                    )
                cursor.advance()
                continue

            text = response.text
            snapshot_id = await self.store.insert_snapshot(
                session_id, self.merchant, url, text, response.status_code
            )
            consecutive_failures = 0
            download.pages_fetched += 1

            body = orjson.loads(text)
            items = body.get(self.items_key) if isinstance(body, dict) else None
            extraction = extract_products(items, self.product_model, snapshot_id, self.item_key)
            download.products.extend(extraction.products)
            download.dropped += extraction.dropped

            if self.pagination.terminal(body):
                break
            cursor.advance()

        LOGGER.info(
            "%s %s: done, %d pages, %d products, %d dropped",
            self.merchant,
            category_text(category),
            download.pages_fetched,
            len(download.products),
            download.dropped,
        )
        return download

    async def reconcile(
        self,
        category_map: Dict[C, UUID],
        download: CategoryDownload[C, P],
    ) -> ReconcileStats:
        """Upsert catalog products and append one price per extracted item.

        Items are processed in order; the first failing row aborts the rest.
        Existing products are reused as they are.
        """
        category_id = category_map[download.category]
        stats = ReconcileStats(category=download.category)

        for tagged in download.products:
            product = tagged.product
            product_id = await self.store.find_product(self.merchant, product.merchant_id)
            if product_id is None:
                product_id, created = await self.store.insert_product(
                    self.merchant, product.to_catalog_entry(), category_id
                )
                if created:
                    stats.products_created += 1
                else:
                    stats.products_reused += 1
            else:
                stats.products_reused += 1

            await self.store.insert_price(product_id, tagged.snapshot_id, product.to_price())
            stats.prices_inserted += 1

        return stats

    async def run(self, session_id: UUID) -> MerchantReport:
        """Register categories, download all of them, then reconcile all of them."""
        started = time.monotonic()
        report = MerchantReport(merchant=self.merchant)
        category_map = await self.register_categories()

        fetch: BoundedTaskGroup[CategoryDownload[C, P]] = BoundedTaskGroup(
            self.config.fetch_concurrency, name=f"{self.merchant} fetch"
        )
        for category in self.categories:
            fetch.submit(
                category_text(category),
                lambda category=category: self.download_category(session_id, category),
            )

        downloads: List[CategoryDownload[C, P]] = []
        for outcome in await fetch.join():
            if outcome.ok:
                downloads.append(outcome.result)
                report.categories_downloaded.append(outcome.key)
                report.products_extracted += len(outcome.result.products)
                report.items_dropped += outcome.result.dropped
            else:
                report.categories_failed.append(outcome.key)

        LOGGER.info(
            "%s: %d products extracted, start with inserting into db",
            self.merchant,
            report.products_extracted,
        )

        insert: BoundedTaskGroup[ReconcileStats] = BoundedTaskGroup(
            self.config.insert_concurrency, name=f"{self.merchant} insert"
        )
        for download in downloads:
            insert.submit(
                category_text(download.category),
                lambda download=download: self.reconcile(category_map, download),
            )

        for outcome in await insert.join():
            if outcome.ok:
                report.categories_reconciled.append(outcome.key)
                report.products_created += outcome.result.products_created
                report.products_reused += outcome.result.products_reused
                report.prices_inserted += outcome.result.prices_inserted
            else:
                report.reconcile_failed.append(outcome.key)

        report.elapsed_sec = time.monotonic() - started
        LOGGER.info(
            "%s: took %.1fs, %d new products, %d prices",
            self.merchant,
            report.elapsed_sec,
            report.products_created,
            report.prices_inserted,
        )
        return report
