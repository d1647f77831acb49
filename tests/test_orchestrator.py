import asyncio
from enum import Enum

import httpx
import orjson

from catalog_etl.merchants import BillaCrawler, SparCrawler
from catalog_etl.orchestrator import CrawlOrchestrator
from payloads import billa_item, billa_page, spar_item, spar_page


class VegetablesOnly(str, Enum):
    VEGETABLES = "B2-1"


class VegetablesCrawler(BillaCrawler):
    categories = VegetablesOnly


def _json(payload, status=200):
    return httpx.Response(status, content=orjson.dumps(payload))


def _run(store, config, client, crawlers):
    async def main():
        async with client:
            return await CrawlOrchestrator(config, store, client).run(crawlers)

    return asyncio.run(main())


def test_vegetables_end_to_end(store, config, make_client):
    def handler(request):
        if request.url.params["page"] == "1":
            return _json(billa_page([billa_item("V1"), billa_item("V2")], is_last=False, page=1))
        return _json(billa_page([billa_item("V3")], is_last=True, page=2))

    report = _run(store, config, make_client(handler), [VegetablesCrawler])

    assert len(store.sessions) == 1
    assert len(store.snapshots) == 2
    assert all(s["session_id"] == report.session.id for s in store.snapshots)
    assert len(store.prices) == 3
    assert len(store.products) == 3
    assert list(store.categories) == [("billa", "Vegetables")]
    merchant = report.merchants[0]
    assert merchant.ok
    assert merchant.categories_downloaded == ["Vegetables"]
    assert merchant.products_created == 3
    assert merchant.prices_inserted == 3


def test_repeated_merchant_id_across_pages(store, config, make_client):
    def handler(request):
        if request.url.params["page"] == "1":
            return _json(billa_page([billa_item("V1"), billa_item("V2")], is_last=False, page=1))
        return _json(billa_page([billa_item("V1")], is_last=True, page=2))

    report = _run(store, config, make_client(handler), [VegetablesCrawler])

    assert len(store.prices) == 3
    assert len(store.products) == 2
    assert report.merchants[0].products_created == 2
    assert report.merchants[0].products_reused == 1


def test_rerun_reuses_categories_and_products(store, config, make_client):
    def handler(request):
        return _json(billa_page([billa_item("V1")], is_last=True))

    _run(store, config, make_client(handler), [VegetablesCrawler])
    category_ids = dict(store.categories)
    second = _run(store, config, make_client(handler), [VegetablesCrawler])

    assert store.categories == category_ids
    assert len(store.sessions) == 2
    assert len(store.products) == 1
    assert len(store.prices) == 2
    assert second.merchants[0].products_created == 0
    assert second.merchants[0].products_reused == 1


class InstrumentedCrawler(BillaCrawler):
    active = 0
    peak = 0
    events = []

    async def download_category(self, session_id, category):
        cls = type(self)
        cls.active += 1
        cls.peak = max(cls.peak, cls.active)
        try:
            await asyncio.sleep(0.01)
            return await super().download_category(session_id, category)
        finally:
            cls.active -= 1
            cls.events.append(("fetched", category))

    async def reconcile(self, category_map, download):
        type(self).events.append(("reconcile", download.category))
        return await super().reconcile(category_map, download)


def test_fetch_phase_is_bounded_and_precedes_inserts(store, config, make_client):
    def handler(request):
        code = request.url.params["category"]
        return _json(billa_page([billa_item(f"{code}-1")], is_last=True))

    report = _run(store, config, make_client(handler), [InstrumentedCrawler])

    events = InstrumentedCrawler.events
    assert InstrumentedCrawler.peak == config.fetch_concurrency == 3
    assert len(report.merchants[0].categories_downloaded) == 9
    first_reconcile = next(i for i, (kind, _) in enumerate(events) if kind == "reconcile")
    assert all(kind == "fetched" for kind, _ in events[:first_reconcile])
    assert sum(1 for kind, _ in events[:first_reconcile] if kind == "fetched") == 9


def test_failed_category_does_not_affect_others(store, config, make_client):
    def handler(request):
        code = request.url.params["category"]
        if code == "B2-3":
            raise httpx.ReadTimeout("timed out", request=request)
        return _json(billa_page([billa_item(f"{code}-1")], is_last=True))

    report = _run(store, config, make_client(handler), [BillaCrawler])

    merchant = report.merchants[0]
    assert merchant.categories_failed == ["Drinks"]
    assert len(merchant.categories_downloaded) == 8
    assert len(merchant.categories_reconciled) == 8
    assert not merchant.ok
    assert len(store.snapshots) == 9
    assert len(store.prices) == 8


class BrokenRegistryCrawler(BillaCrawler):
    async def register_categories(self):
        raise RuntimeError("category table locked")


def test_merchant_setup_failure_is_reported_and_next_merchant_runs(store, config, make_client):
    def handler(request):
        page = int(request.url.params["page"])
        return _json(spar_page([spar_item(f"S{page}")], current=1, count=1))

    report = _run(store, config, make_client(handler), [BrokenRegistryCrawler, SparCrawler])

    broken, spar = report.merchants
    assert broken.error == "category table locked"
    assert spar.ok
    assert len(spar.categories_downloaded) == 14
    assert not report.ok
