from __future__ import annotations

from decimal import Decimal

import pytest
import requests

from bestbuy_monitor import config, notifier
from bestbuy_monitor.bestbuy import Product
from bestbuy_monitor.utils import NotifyError, TransportError
from conftest import DummyResponse, DummySession

WIDGET = Product(sku="1", name="Widget", sale_price=Decimal("19.99"), product_url="http://x/y")


def test_build_payload():
    payload = notifier.build_payload(WIDGET)

    assert payload["type"] == "link"
    assert payload["title"] == "Product in stock"
    assert "Widget" in payload["body"]
    assert "19.99" in payload["body"]
    assert payload["url"] == "http://x/y"


def test_notify_posts_json_with_access_token():
    session = DummySession({config.PUSH_API_URL: DummyResponse(b"{}", 200)})

    notifier.notify(WIDGET, "secret-token", session=session)

    ((method, url, kwargs),) = session.calls
    assert method == "POST"
    assert url == config.PUSH_API_URL
    assert kwargs["headers"]["Access-Token"] == "secret-token"
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["json"] == notifier.build_payload(WIDGET)


def test_push_non_2xx_raises_notify_error():
    session = DummySession({config.PUSH_API_URL: DummyResponse(b'{"error": "invalid token"}', 401)})

    with pytest.raises(NotifyError) as exc_info:
        notifier.notify(WIDGET, "bad", session=session)

    assert exc_info.value.status_code == 401
    assert "invalid token" in exc_info.value.body
    assert exc_info.value.context == "notify"


def test_push_transport_failure_raises_transport_error():
    session = DummySession({config.PUSH_API_URL: requests.ConnectionError("refused")})

    with pytest.raises(TransportError) as exc_info:
        notifier.notify(WIDGET, "token", session=session)

    assert exc_info.value.url == config.PUSH_API_URL
    assert str(exc_info.value).startswith("notify: ")


def test_push_closes_session_it_created(monkeypatch):
    session = DummySession({"https://push.test": DummyResponse(b"{}", 200)})
    monkeypatch.setattr(notifier, "get_http_session", lambda user_agent: session)

    notifier.push({"type": "link"}, "token", api_url="https://push.test")

    assert session.closed
