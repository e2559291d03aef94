"""Configuration loader.

Reads environment variables and `.env` to configure the service.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv

from .utils import ConfigError

# Load variables from a .env file if present (project root).
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: Optional[float]) -> Optional[float]:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


# ---- Retailer endpoints ------------------------------------------------------

# TODO: read the endpoint map from https://www.bestbuy.ca/config.ashx at startup.
AVAILABILITY_API_URL: str = _get_env(
    "AVAILABILITY_API_URL", "https://www.bestbuy.ca/ecomm-api/availability/products"
)
PRODUCT_API_URL: str = _get_env("PRODUCT_API_URL", "https://www.bestbuy.ca/api/v2/json/product")
SKU_COLLECTION_API_URL: str = _get_env(
    "SKU_COLLECTION_API_URL", "https://www.bestbuy.ca/api/v2/json/sku-collections"
)
SEARCH_API_URL: str = _get_env("SEARCH_API_URL", "https://www.bestbuy.ca/api/v2/json/search")

# Collections are only read one page deep.
COLLECTION_PAGE_SIZE: int = _parse_int(_get_env("COLLECTION_PAGE_SIZE"), 100)

# The retailer rejects requests without a browser-looking User-Agent.
USER_AGENT: str = _get_env(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/89.0.4389.105 Safari/537.36",
)

# Optional per-request timeout in seconds. Unset means no timeout.
HTTP_TIMEOUT_SECONDS: Optional[float] = _parse_float(_get_env("HTTP_TIMEOUT_SECONDS"), None)

# ---- Notifications -----------------------------------------------------------

PUSH_API_URL: str = _get_env("PUSH_API_URL", "https://api.pushbullet.com/v2/pushes")
PUSH_TITLE: str = "Product in stock"

# ---- Runtime -----------------------------------------------------------------

# Logging level: DEBUG, INFO, WARNING, ERROR.
LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO")

DEFAULT_POLL_INTERVAL_SECONDS = 60


@dataclass
class Settings:
    """Per-run settings: the push token and the SKU sources to watch."""

    token: str = ""
    sku_ids: str = ""
    collection_id: str = ""
    search_query: str = ""
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    mode: str = "daemon"  # "daemon" or "once"


def load_settings(**overrides: object) -> Settings:
    """Build Settings from the environment, then apply non-empty overrides.

    Overrides normally come from command line flags, so a flag beats the
    matching environment variable only when it was actually given.
    """
    settings = Settings(
        token=(_get_env("TOKEN", "") or "").strip(),
        sku_ids=(_get_env("SKU_IDS", "") or "").strip(),
        collection_id=(_get_env("COLLECTION_ID", "") or "").strip(),
        search_query=(_get_env("SEARCH_QUERY", "") or "").strip(),
        poll_interval_seconds=_parse_int(
            _get_env("POLL_INTERVAL_SECONDS"), DEFAULT_POLL_INTERVAL_SECONDS
        ),
        mode=(_get_env("MODE", "daemon") or "daemon").strip().lower(),
    )
    for name, value in overrides.items():
        if not hasattr(settings, name):
            raise TypeError(f"unknown setting {name!r}")
        if value is None or value == "":
            continue
        setattr(settings, name, value)
    return settings


# ---- Validation --------------------------------------------------------------

def validate(settings: Settings) -> None:
    """Validate required configuration parameters."""
    if not settings.token:
        raise ConfigError("pushbullet api token missing (set TOKEN or pass --token)")
    if settings.poll_interval_seconds <= 0:
        raise ConfigError(
            f"poll interval must be positive, got {settings.poll_interval_seconds}"
        )
    if settings.mode not in ("daemon", "once"):
        raise ConfigError(f"MODE must be 'daemon' or 'once', got {settings.mode!r}")


__all__ = [
    # Endpoints
    "AVAILABILITY_API_URL",
    "PRODUCT_API_URL",
    "SKU_COLLECTION_API_URL",
    "SEARCH_API_URL",
    "COLLECTION_PAGE_SIZE",
    "USER_AGENT",
    "HTTP_TIMEOUT_SECONDS",
    # Notifications
    "PUSH_API_URL",
    "PUSH_TITLE",
    # Runtime
    "LOG_LEVEL",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "Settings",
    "load_settings",
    "validate",
]
