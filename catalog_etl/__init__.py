"""Grocery catalog ingestion.

Crawls merchant search APIs page by page, archives every raw response and
reconciles the extracted products and prices into a persistent catalog:
- Page cursors with flag- or counter-based terminal pages
- Bounded two-phase concurrency (download, then insert)
- Idempotent catalog upserts with append-only price history
"""

from .config import ConfigError, CrawlConfig
from .crawler import MerchantCrawler, PageFetchError, PageLimitExceeded
from .db import CatalogStore
from .orchestrator import CrawlOrchestrator, run_crawl
from .scheduler import BoundedTaskGroup, TaskOutcome

__all__ = [
    "ConfigError",
    "CrawlConfig",
    "MerchantCrawler",
    "PageFetchError",
    "PageLimitExceeded",
    "CatalogStore",
    "CrawlOrchestrator",
    "run_crawl",
    "BoundedTaskGroup",
    "TaskOutcome",
]
