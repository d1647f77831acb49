import asyncio
from datetime import datetime, timezone
from uuid import uuid4

import httpx
import pytest

from catalog_etl.config import CrawlConfig
from catalog_etl.models import CrawlSession


class FakeStore:
    """In-memory stand-in for CatalogStore with the same coroutine API."""

    def __init__(self):
        self.sessions = []
        self.categories = {}
        self.snapshots = []
        self.products = {}
        self.prices = []
        self.fail_price_for = set()
        self.fail_categories = False

    async def create_crawl_session(self):
        await asyncio.sleep(0)
        session = CrawlSession(id=uuid4(), created_at=datetime.now(timezone.utc))
        self.sessions.append(session)
        return session

    async def get_or_create_category(self, merchant, text):
        await asyncio.sleep(0)
        if self.fail_categories:
            raise RuntimeError("category table unavailable")
        return self.categories.setdefault((merchant, text), uuid4())

    async def insert_snapshot(self, session_id, merchant, url, raw, status_code):
        await asyncio.sleep(0)
        snapshot_id = uuid4()
        self.snapshots.append(
            {
                "id": snapshot_id,
                "session_id": session_id,
                "merchant": merchant,
                "url": url,
                "raw": raw,
                "error": None,
                "status_code": status_code,
            }
        )
        return snapshot_id

    async def insert_error_snapshot(self, session_id, merchant, url, error, status_code=None):
        await asyncio.sleep(0)
        snapshot_id = uuid4()
        self.snapshots.append(
            {
                "id": snapshot_id,
                "session_id": session_id,
                "merchant": merchant,
                "url": url,
                "raw": None,
                "error": error,
                "status_code": status_code,
            }
        )
        return snapshot_id

    async def find_product(self, merchant, merchant_id):
        await asyncio.sleep(0)
        row = self.products.get((merchant, merchant_id))
        return row["id"] if row else None

    async def insert_product(self, merchant, entry, category_id):
        await asyncio.sleep(0)
        key = (merchant, entry.merchant_id)
        if key in self.products:
            return self.products[key]["id"], False
        row = {"id": uuid4(), "entry": entry, "category_id": category_id}
        self.products[key] = row
        return row["id"], True

    async def insert_price(self, product_id, snapshot_id, price):
        await asyncio.sleep(0)
        if product_id in self.fail_price_for:
            raise RuntimeError("price insert failed")
        price_id = uuid4()
        self.prices.append(
            {"id": price_id, "product_id": product_id, "snapshot_id": snapshot_id, "price": price}
        )
        return price_id

    async def close(self):
        pass


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def config():
    return CrawlConfig(dsn="postgresql://test@localhost/test")


@pytest.fixture
def make_client():
    """Build an AsyncClient whose responses come from ``handler(request)``."""

    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
