from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence

import requests

from .config import (
    AVAILABILITY_API_URL,
    COLLECTION_PAGE_SIZE,
    HTTP_TIMEOUT_SECONDS,
    PRODUCT_API_URL,
    SEARCH_API_URL,
    SKU_COLLECTION_API_URL,
    USER_AGENT,
)
from .utils import DecodeError, MonitorError, fetch_json, get_http_session

logger = logging.getLogger(__name__)

# "|" percent-encoded; the availability endpoint wants skus=123%7C456.
SKU_SEPARATOR = "%7C"


@dataclass(frozen=True)
class AvailabilityRecord:
    sku: str
    pickup_purchasable: bool
    shipping_purchasable: bool

    @property
    def purchasable(self) -> bool:
        # Pickup may only be possible at some far-away store; still counts.
        return self.pickup_purchasable or self.shipping_purchasable

    @classmethod
    def from_json(cls, url: str, item: Any) -> "AvailabilityRecord":
        item = _require_object(url, item, "availability entry")
        return cls(
            sku=_require_sku(url, item),
            pickup_purchasable=_require_purchasable(url, item, "pickup"),
            shipping_purchasable=_require_purchasable(url, item, "shipping"),
        )


@dataclass(frozen=True)
class Product:
    sku: str
    name: str
    sale_price: Decimal
    product_url: str

    @classmethod
    def from_json(cls, url: str, data: Any) -> "Product":
        data = _require_object(url, data, "product")
        return cls(
            sku=_require_sku(url, data),
            name=_require_str(url, data, "name"),
            sale_price=_require_decimal(url, data, "salePrice"),
            product_url=_require_str(url, data, "productUrl"),
        )


# ---------------------------
# Schema validation helpers
# ---------------------------

def _require_object(url: str, value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise DecodeError(url, f"expected {what} object, got {type(value).__name__}")
    return value


def _require_field(url: str, data: Dict[str, Any], key: str) -> Any:
    if key not in data or data[key] is None:
        raise DecodeError(url, f"missing required field {key!r}")
    return data[key]


def _require_str(url: str, data: Dict[str, Any], key: str) -> str:
    value = _require_field(url, data, key)
    if not isinstance(value, str):
        raise DecodeError(url, f"field {key!r} should be a string, got {type(value).__name__}")
    return value


def _require_sku(url: str, data: Dict[str, Any]) -> str:
    value = _require_field(url, data, "sku")
    # Some responses number SKUs; they are opaque strings to us either way.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str) or not value:
        raise DecodeError(url, f"field 'sku' should be a non-empty string, got {value!r}")
    return value


def _require_decimal(url: str, data: Dict[str, Any], key: str) -> Decimal:
    value = _require_field(url, data, key)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise DecodeError(url, f"field {key!r} should be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise DecodeError(url, f"field {key!r} is not a number: {value!r}") from e


def _require_purchasable(url: str, data: Dict[str, Any], channel: str) -> bool:
    sub = _require_object(url, _require_field(url, data, channel), channel)
    value = _require_field(url, sub, "purchasable")
    if not isinstance(value, bool):
        raise DecodeError(url, f"field '{channel}.purchasable' should be a boolean, got {value!r}")
    return value


def _require_list(url: str, data: Any, key: str) -> List[Any]:
    data = _require_object(url, data, "response")
    value = _require_field(url, data, key)
    if not isinstance(value, list):
        raise DecodeError(url, f"field {key!r} should be a list, got {type(value).__name__}")
    return value


# ---------------------------
# URL builders
# ---------------------------

def build_availability_url(skus: Sequence[str], base_url: str = AVAILABILITY_API_URL) -> str:
    # No chunking: a very large watch set produces a very long URL.
    return f"{base_url}?skus={SKU_SEPARATOR.join(skus)}"


def build_product_url(sku: str, base_url: str = PRODUCT_API_URL) -> str:
    return f"{base_url.rstrip('/')}/{sku}"


def build_collection_url(
    collection_id: str,
    base_url: str = SKU_COLLECTION_API_URL,
    page_size: int = COLLECTION_PAGE_SIZE,
) -> str:
    return f"{base_url.rstrip('/')}/{collection_id}?pageSize={page_size}"


def build_search_url(query: str, base_url: str = SEARCH_API_URL) -> str:
    """Append a pre-encoded query string verbatim.

    Queries copied from the website's address bar already start with "?",
    e.g. ``?path=category%253AComputers%2B%2526%2BTablets``.
    """
    if query.startswith("?"):
        return base_url + query
    return f"{base_url}?{query}"


# ---------------------------
# Response parsers
# ---------------------------

def parse_availabilities(url: str, data: Any) -> List[AvailabilityRecord]:
    return [AvailabilityRecord.from_json(url, item) for item in _require_list(url, data, "availabilities")]


def parse_product_skus(url: str, data: Any) -> List[str]:
    skus: List[str] = []
    for item in _require_list(url, data, "products"):
        skus.append(_require_sku(url, _require_object(url, item, "product")))
    return skus


# ---------------------------
# Operations
# ---------------------------

def _get_json(session: Optional[requests.Session], url: str, context: str) -> Any:
    close_session = False
    if session is None:
        session = get_http_session(USER_AGENT)
        close_session = True
    try:
        return fetch_json(session, url, timeout=HTTP_TIMEOUT_SECONDS)
    except MonitorError as e:
        raise e.tagged(context) from e
    finally:
        if close_session:
            session.close()


def parse_sku_list(sku_ids: str) -> List[str]:
    """Split an explicit comma separated SKU list. No network involved."""
    return [s.strip() for s in (sku_ids or "").split(",") if s.strip()]


def fetch_skus_from_collection(
    collection_id: str,
    session: Optional[requests.Session] = None,
) -> List[str]:
    """Return the SKUs of the first page of a SKU collection."""
    url = build_collection_url(collection_id)
    data = _get_json(session, url, "collection")
    try:
        return parse_product_skus(url, data)
    except DecodeError as e:
        raise e.tagged("collection") from e


def fetch_skus_from_search(
    query: str,
    session: Optional[requests.Session] = None,
) -> List[str]:
    """Return the SKUs listed by a search results query."""
    url = build_search_url(query)
    data = _get_json(session, url, "search")
    try:
        return parse_product_skus(url, data)
    except DecodeError as e:
        raise e.tagged("search") from e


def fetch_available_skus(
    skus: Iterable[str],
    session: Optional[requests.Session] = None,
) -> List[str]:
    """Return the subset of ``skus`` purchasable for pickup or shipping.

    SKUs missing from the response (e.g. delisted) are silently dropped.
    """
    skus = list(skus)
    if not skus:
        return []

    url = build_availability_url(skus)
    data = _get_json(session, url, "availability")
    try:
        records = parse_availabilities(url, data)
    except DecodeError as e:
        raise e.tagged("availability") from e

    logger.debug("Availability returned %d of %d requested SKUs", len(records), len(skus))
    return [r.sku for r in records if r.purchasable]


def fetch_product(sku: str, session: Optional[requests.Session] = None) -> Product:
    url = build_product_url(sku)
    data = _get_json(session, url, "product")
    try:
        return Product.from_json(url, data)
    except DecodeError as e:
        raise e.tagged("product") from e


__all__ = [
    "AvailabilityRecord",
    "Product",
    "build_availability_url",
    "build_product_url",
    "build_collection_url",
    "build_search_url",
    "parse_availabilities",
    "parse_product_skus",
    "parse_sku_list",
    "fetch_skus_from_collection",
    "fetch_skus_from_search",
    "fetch_available_skus",
    "fetch_product",
]
