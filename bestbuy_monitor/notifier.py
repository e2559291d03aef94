"""Pushbullet notifier.

Sends one "link" push per in-stock product.  A push that the service
rejects (non-2xx) raises NotifyError so it is logged apart from network
failures.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

import requests

from .bestbuy import Product
from .config import HTTP_TIMEOUT_SECONDS, PUSH_API_URL, PUSH_TITLE, USER_AGENT
from .utils import NotifyError, TransportError, get_http_session

logger = logging.getLogger(__name__)


def build_payload(product: Product) -> Dict[str, str]:
    return {
        "type": "link",
        "title": PUSH_TITLE,
        "body": f"{product.name}: ${product.sale_price}",
        "url": product.product_url,
    }


def push(
    payload: Dict[str, str],
    token: str,
    api_url: str = PUSH_API_URL,
    session: Optional[requests.Session] = None,
) -> None:
    close_session = False
    if session is None:
        session = get_http_session(USER_AGENT)
        close_session = True

    headers = {
        "Access-Token": token,
        "Content-Type": "application/json",
    }
    try:
        try:
            resp = session.post(api_url, json=payload, headers=headers, timeout=HTTP_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise TransportError(api_url, e, context="notify") from e

        if not 200 <= resp.status_code < 300:
            raise NotifyError(resp.status_code, (resp.text or "")[:500], context="notify")
    finally:
        if close_session:
            session.close()


def notify(
    product: Product,
    token: str,
    session: Optional[requests.Session] = None,
) -> None:
    logger.info("Sending push for %s (sku=%s)", product.name, product.sku)
    push(build_payload(product), token, session=session)


__all__ = ["build_payload", "push", "notify"]
