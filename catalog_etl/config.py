"""Runtime configuration for crawl runs."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


class ConfigError(RuntimeError):
    """Raised when the crawl cannot be configured."""


def _dsn_from_env() -> Optional[str]:
    """Resolve the store DSN.

    Priority:
    1. CATALOG_DSN
    2. DATABASE_URL
    3. Individual components: PG_USER, PG_PASS, PG_HOST, PG_PORT, PG_DB
    """
    dsn = os.getenv("CATALOG_DSN") or os.getenv("DATABASE_URL")
    if dsn:
        return dsn

    user = os.getenv("PG_USER")
    password = os.getenv("PG_PASS")
    host = os.getenv("PG_HOST", "localhost")
    port = os.getenv("PG_PORT", "5432")
    database = os.getenv("PG_DB")
    if not all([user, password, database]):
        return None
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


@dataclass(frozen=True)
class CrawlConfig:
    """Crawl configuration.

    ``insert_concurrency`` may exceed ``pool_max_size``: insert tasks then
    wait for a free connection instead of failing.
    """

    dsn: str
    fetch_concurrency: int = 3
    insert_concurrency: int = 20
    pool_min_size: int = 1
    pool_max_size: int = 5
    http_timeout: float = 30.0
    max_pages: int = 500  # Guard against a terminal page that never arrives
    max_consecutive_failures: int = 3

    def __post_init__(self) -> None:
        if not self.dsn:
            raise ConfigError("store DSN is empty")
        for name in (
            "fetch_concurrency",
            "insert_concurrency",
            "pool_max_size",
            "max_pages",
            "max_consecutive_failures",
        ):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be >= 1")
        if self.pool_min_size < 0 or self.pool_min_size > self.pool_max_size:
            raise ConfigError("pool_min_size must be between 0 and pool_max_size")

    @classmethod
    def from_env(cls, env_file: Optional[str | Path] = None) -> "CrawlConfig":
        """Build configuration from environment variables (and ``.env``)."""
        load_dotenv(env_file)
        dsn = _dsn_from_env()
        if not dsn:
            raise ConfigError(
                "Database credentials not configured. "
                "Set CATALOG_DSN, DATABASE_URL or (PG_USER, PG_PASS, PG_DB)."
            )
        return cls(
            dsn=dsn,
            fetch_concurrency=_env_int("CATALOG_FETCH_CONCURRENCY", 3),
            insert_concurrency=_env_int("CATALOG_INSERT_CONCURRENCY", 20),
            pool_min_size=_env_int("CATALOG_POOL_MIN_SIZE", 1),
            pool_max_size=_env_int("CATALOG_POOL_MAX_SIZE", 5),
            http_timeout=_env_float("CATALOG_HTTP_TIMEOUT", 30.0),
            max_pages=_env_int("CATALOG_MAX_PAGES", 500),
            max_consecutive_failures=_env_int("CATALOG_MAX_CONSECUTIVE_FAILURES", 3),
        )

    def with_overrides(self, overrides: Dict[str, Any]) -> "CrawlConfig":
        """Return a copy with known keys replaced; unknown keys are an error."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    @classmethod
    def from_yaml(cls, path: str | Path, base: Optional["CrawlConfig"] = None) -> "CrawlConfig":
        """Read a YAML mapping of config keys, overlaying ``base`` if given."""
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ConfigError("config file must contain a mapping")
        if base is None:
            if "dsn" not in data:
                raise ConfigError("config file must define dsn when no base config is given")
            return cls(dsn=data["dsn"]).with_overrides(data)
        return base.with_overrides(data)
