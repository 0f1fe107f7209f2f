"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        polymarket: dict[str, Any] | None = None,
        subgraph: dict[str, Any] | None = None,
        http: dict[str, Any] | None = None,
        cache: dict[str, Any] | None = None,
        markets: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.polymarket = polymarket or {}
        self.subgraph = subgraph or {}
        self.http = http or {}
        self.cache = cache or {}
        self.markets = markets or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            polymarket=raw.get("polymarket"),
            subgraph=raw.get("subgraph"),
            http=raw.get("http"),
            cache=raw.get("cache"),
            markets=raw.get("markets"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def gamma_api_base(self) -> str:
        return self.polymarket.get("gamma_api_base", "https://gamma-api.polymarket.com")

    @property
    def clob_api_base(self) -> str:
        return self.polymarket.get("clob_api_base", "https://clob.polymarket.com")

    @property
    def data_api_base(self) -> str:
        return self.polymarket.get("data_api_base", "https://data-api.polymarket.com")

    @property
    def profile_api_base(self) -> str:
        return self.polymarket.get("profile_api_base", "https://polymarket.com/api")

    @property
    def pnl_api_base(self) -> str:
        return self.polymarket.get("pnl_api_base", "https://user-pnl-api.polymarket.com")

    @property
    def orders_subgraph_url(self) -> str:
        return self.subgraph.get(
            "orders_url",
            "https://api.goldsky.com/api/public/project_cl6mb8i9h0003e201j6li0diw/subgraphs/orderbook-subgraph/0.0.1/gn",
        )

    @property
    def open_interest_subgraph_url(self) -> str:
        return self.subgraph.get(
            "open_interest_url",
            "https://api.goldsky.com/api/public/project_cl6mb8i9h0003e201j6li0diw/subgraphs/oi-subgraph/0.0.6/gn",
        )

    @property
    def subgraph_batch_size(self) -> int:
        return int(self.subgraph.get("batch_size", 200))

    @property
    def http_timeout_sec(self) -> float:
        return float(self.http.get("timeout_sec", 15.0))

    @property
    def cache_backend(self) -> str:
        return str(self.cache.get("backend", "memory")).lower()

    @property
    def cache_ttl_sec(self) -> float:
        return float(self.cache.get("ttl_sec", 300))

    @property
    def cache_max_entries(self) -> int:
        return int(self.cache.get("max_entries", 50))

    @property
    def cache_db_path(self) -> str:
        return self.cache.get("db_path", "data/polyterm-cache.duckdb")

    @property
    def default_market_limit(self) -> int:
        return int(self.markets.get("default_limit", 200))

    @property
    def max_market_limit(self) -> int:
        return int(self.markets.get("max_limit", 500))

    @property
    def stats_sample_size(self) -> int:
        return int(self.markets.get("stats_sample_size", 500))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
