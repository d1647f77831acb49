"""CLI for catalog crawls.

Usage:
    catalog-etl crawl --merchant all
    catalog-etl crawl --merchant billa --config crawl.yaml
    catalog-etl categories --merchant spar
"""
from __future__ import annotations

import asyncio
import logging
import sys
from typing import List, Optional, Type

import click

from .config import ConfigError, CrawlConfig
from .crawler import MerchantCrawler, category_text
from .db import CatalogStore, create_pool
from .merchants import MERCHANTS, get_crawler_class
from .models import CrawlReport
from .orchestrator import run_crawl

LOGGER = logging.getLogger(__name__)

MERCHANT_CHOICES = sorted(MERCHANTS) + ["all"]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _load_config(config_path: Optional[str]) -> CrawlConfig:
    config = CrawlConfig.from_env()
    if config_path:
        config = CrawlConfig.from_yaml(config_path, base=config)
    return config


def _selected(merchant: str) -> List[Type[MerchantCrawler]]:
    if merchant == "all":
        return [MERCHANTS[name] for name in sorted(MERCHANTS)]
    return [get_crawler_class(merchant)]


def _print_report(report: CrawlReport) -> None:
    click.echo(f"\nCrawl session {report.session.id}")
    for merchant in report.merchants:
        if merchant.error:
            click.echo(f"  {merchant.merchant}: aborted ({merchant.error})")
            continue
        click.echo(
            f"  {merchant.merchant}: "
            f"{len(merchant.categories_downloaded)} categories downloaded, "
            f"{len(merchant.categories_failed)} failed, "
            f"{merchant.products_extracted} products ({merchant.items_dropped} dropped), "
            f"{merchant.products_created} new, {merchant.products_reused} reused, "
            f"{merchant.prices_inserted} prices, "
            f"{merchant.elapsed_sec:.1f}s"
        )
        for name in merchant.categories_failed:
            click.echo(f"    fetch failed: {name}")
        for name in merchant.reconcile_failed:
            click.echo(f"    insert failed: {name}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Catalog crawl CLI."""
    _setup_logging(verbose)


@cli.command()
@click.option(
    "--merchant",
    "-m",
    type=click.Choice(MERCHANT_CHOICES),
    default="all",
    help="Merchant to crawl",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file overriding environment settings",
)
def crawl(merchant: str, config_path: Optional[str]) -> None:
    """Download, archive and reconcile merchant catalogs."""
    try:
        config = _load_config(config_path)
        report = asyncio.run(run_crawl(config, _selected(merchant)))
    except ConfigError as exc:
        LOGGER.error("Configuration error: %s", exc)
        sys.exit(1)
    except Exception as exc:
        LOGGER.error("Crawl failed: %s", exc, exc_info=True)
        sys.exit(1)

    _print_report(report)


@cli.command()
@click.option(
    "--merchant",
    "-m",
    type=click.Choice(MERCHANT_CHOICES),
    default="all",
    help="Merchant whose categories to register",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file overriding environment settings",
)
def categories(merchant: str, config_path: Optional[str]) -> None:
    """Register merchant categories and print their ids."""

    async def _register(config: CrawlConfig) -> None:
        store = CatalogStore(await create_pool(config))
        try:
            for crawler_cls in _selected(merchant):
                crawler = crawler_cls(store, None, config)
                category_map = await crawler.register_categories()
                for category, category_id in category_map.items():
                    click.echo(f"{crawler.merchant}\t{category_text(category)}\t{category.value}\t{category_id}")
        finally:
            await store.close()

    try:
        asyncio.run(_register(_load_config(config_path)))
    except ConfigError as exc:
        LOGGER.error("Configuration error: %s", exc)
        sys.exit(1)
    except Exception as exc:
        LOGGER.error("Category registration failed: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
