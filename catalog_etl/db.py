"""Persistent store operations for crawl sessions, snapshots and the catalog.

All tables are shared by every merchant and keyed by a ``merchant`` slug.
The DDL lives in ``db/schema.sql``.
"""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

import asyncpg
from asyncpg import Pool

from .config import CrawlConfig
from .models import CatalogEntry, CrawlSession, PriceObservation

LOGGER = logging.getLogger(__name__)


async def create_pool(config: CrawlConfig) -> Pool:
    """Open the connection pool shared by every task of a run."""
    pool = await asyncpg.create_pool(
        config.dsn,
        min_size=config.pool_min_size,
        max_size=config.pool_max_size,
    )
    LOGGER.info(
        "Connection pool ready (min=%d, max=%d)",
        config.pool_min_size,
        config.pool_max_size,
    )
    return pool


class CatalogStore:
    """Thin async wrapper around the catalog tables.

    Every call borrows a connection from the pool for one statement, so
    writes are committed individually. When more tasks than connections are
    active, callers wait in ``pool.acquire()``.
    """

    def __init__(self, pool: Pool) -> None:
        self.pool = pool

    async def create_crawl_session(self) -> CrawlSession:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "INSERT INTO crawl_session DEFAULT VALUES RETURNING id, created_at"
            )
        return CrawlSession(id=row["id"], created_at=row["created_at"])

    async def get_or_create_category(self, merchant: str, text: str) -> UUID:
        """Return the id for a category text, inserting it on first use."""
        async with self.pool.acquire() as conn:
            category_id = await conn.fetchval(
                "SELECT id FROM category WHERE merchant = $1 AND text = $2",
                merchant,
                text,
            )
            if category_id is not None:
                return category_id
            category_id = await conn.fetchval(
                """
                INSERT INTO category (merchant, text) VALUES ($1, $2)
                ON CONFLICT (merchant, text) DO NOTHING
                RETURNING id
                """,
                merchant,
                text,
            )
            if category_id is None:
                # Lost the race to another registrar
                category_id = await conn.fetchval(
                    "SELECT id FROM category WHERE merchant = $1 AND text = $2",
                    merchant,
                    text,
                )
        return category_id

    async def insert_snapshot(
        self,
        session_id: UUID,
        merchant: str,
        url: str,
        raw: str,
        status_code: int,
    ) -> UUID:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                """
                INSERT INTO raw_snapshot (crawl_session_id, merchant, url, raw, status_code)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id
                """,
                session_id,
                merchant,
                url,
                raw,
                status_code,
            )

    async def insert_error_snapshot(
        self,
        session_id: UUID,
        merchant: str,
        url: str,
        error: str,
        status_code: Optional[int] = None,
    ) -> UUID:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                """
                INSERT INTO raw_snapshot (crawl_session_id, merchant, url, error, status_code)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id
                """,
                session_id,
                merchant,
                url,
                error,
                status_code,
            )

    async def find_product(self, merchant: str, merchant_id: str) -> Optional[UUID]:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT id FROM catalog_product WHERE merchant = $1 AND merchant_id = $2",
                merchant,
                merchant_id,
            )

    async def insert_product(
        self,
        merchant: str,
        entry: CatalogEntry,
        category_id: UUID,
    ) -> tuple[UUID, bool]:
        """Insert a catalog product unless the merchant id already exists.

        Returns
        -------
        tuple
            ``(product_id, created)``; ``created`` is False when a concurrent
            writer inserted the row first. Existing rows are never updated.
        """
        async with self.pool.acquire() as conn:
            product_id = await conn.fetchval(
                """
                INSERT INTO catalog_product (
                    merchant, merchant_id, name, description, brand,
                    online_shop_url, badge, unit, grammage, price_factor, category_id
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                ON CONFLICT (merchant, merchant_id) DO NOTHING
                RETURNING id
                """,
                merchant,
                entry.merchant_id,
                entry.name,
                entry.description,
                entry.brand,
                entry.online_shop_url,
                entry.badge,
                entry.unit,
                entry.grammage,
                entry.price_factor,
                category_id,
            )
            if product_id is not None:
                return product_id, True
            product_id = await conn.fetchval(
                "SELECT id FROM catalog_product WHERE merchant = $1 AND merchant_id = $2",
                merchant,
                entry.merchant_id,
            )
        return product_id, False

    async def insert_price(
        self,
        product_id: UUID,
        snapshot_id: UUID,
        price: PriceObservation,
    ) -> UUID:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                """
                INSERT INTO price_record (product_id, snapshot_id, amount, unit, price_per_unit)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id
                """,
                product_id,
                snapshot_id,
                price.amount,
                price.unit,
                price.price_per_unit,
            )

    async def close(self) -> None:
        await self.pool.close()
