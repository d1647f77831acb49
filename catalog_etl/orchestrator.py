"""Top-level crawl run: one session, merchants crawled one after another."""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Type

import httpx

from .config import CrawlConfig
from .crawler import MerchantCrawler
from .db import CatalogStore, create_pool
from .http import build_client
from .models import CrawlReport, MerchantReport

LOGGER = logging.getLogger(__name__)


class CrawlOrchestrator:
    """Create the crawl session and run each merchant's two-phase crawl.

    Setup errors (store unreachable, session not created) propagate to the
    caller. Anything that goes wrong inside a merchant's run ends up in its
    ``MerchantReport`` and the next merchant still runs.
    """

    def __init__(
        self,
        config: CrawlConfig,
        store: CatalogStore,
        client: httpx.AsyncClient,
    ) -> None:
        self.config = config
        self.store = store
        self.client = client

    async def run(self, crawlers: Iterable[Type[MerchantCrawler]]) -> CrawlReport:
        session = await self.store.create_crawl_session()
        LOGGER.info("crawl id: %s", session.id)
        report = CrawlReport(session=session)

        for crawler_cls in crawlers:
            crawler = crawler_cls(self.store, self.client, self.config)
            LOGGER.info("Starting %s crawl", crawler.merchant)
            try:
                merchant_report = await crawler.run(session.id)
            except Exception as exc:
                LOGGER.error("%s crawl aborted: %s", crawler.merchant, exc, exc_info=True)
                merchant_report = MerchantReport(merchant=crawler.merchant, error=str(exc))
            report.merchants.append(merchant_report)

        return report


async def run_crawl(
    config: CrawlConfig,
    crawlers: Iterable[Type[MerchantCrawler]],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CrawlReport:
    """Open the pool and HTTP client, run the crawl, and release both."""
    pool = await create_pool(config)
    store = CatalogStore(pool)
    try:
        async with build_client(config.http_timeout, transport=transport) as client:
            return await CrawlOrchestrator(config, store, client).run(crawlers)
    finally:
        await store.close()
