"""Helper utilities.

This module centralises the HTTP plumbing shared by the retailer client
and the notifier: a configured session, BOM stripping, JSON fetching and
the error types raised along the way.  No call is ever retried.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

# Some retailer responses start with a UTF-8 byte order mark.
UTF8_BOM = b"\xef\xbb\xbf"


class MonitorError(Exception):
    """Base class for every error raised by the monitor.

    ``context`` names the operation that failed ("collection", "search",
    "availability", "product", "notify") and is prefixed to the message.
    """

    def __init__(self, message: str, *, context: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def tagged(self, context: str) -> "MonitorError":
        """Return a copy of this error carrying ``context``."""
        err = copy.copy(self)
        err.context = context
        return err

    def __reduce__(self):
        # Subclass constructors take structured arguments, not the message.
        return (_rebuild_error, (type(self), self.args), dict(self.__dict__))

    def __str__(self) -> str:
        if self.context:
            return f"{self.context}: {self.message}"
        return self.message


def _rebuild_error(cls: type, args: tuple) -> MonitorError:
    err = cls.__new__(cls, *args)
    err.args = args
    return err


class ConfigError(MonitorError):
    """Raised when required configuration is missing or invalid."""


class TransportError(MonitorError):
    """Raised when a request never produced a response."""

    def __init__(self, url: str, cause: BaseException, *, context: Optional[str] = None) -> None:
        super().__init__(f"requesting {url}: {cause}", context=context)
        self.url = url
        self.cause = cause


class DecodeError(MonitorError):
    """Raised when a response body is not the JSON we expected."""

    def __init__(self, url: str, detail: str, *, context: Optional[str] = None) -> None:
        super().__init__(f"decoding {url}: {detail}", context=context)
        self.url = url
        self.detail = detail


class NotifyError(MonitorError):
    """Raised when the push service answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str, *, context: Optional[str] = None) -> None:
        super().__init__(f"push rejected with status {status_code}: {body}", context=context)
        self.status_code = status_code
        self.body = body


def get_http_session(user_agent: str) -> requests.Session:
    """Return a new HTTP session sending ``user_agent`` on every request.

    Caller is responsible for closing the session.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": "application/json, text/javascript, */*; q=0.01",
        }
    )
    return session


def strip_bom(body: bytes) -> bytes:
    if body.startswith(UTF8_BOM):
        return body[len(UTF8_BOM):]
    return body


def _snippet(body: bytes, limit: int = 200) -> str:
    text = body[:limit].decode("utf-8", errors="replace")
    return text + ("..." if len(body) > limit else "")


def decode_json(url: str, body: bytes, status_code: Optional[int] = None) -> Any:
    """Decode a raw response body, tolerating a leading BOM."""
    body = strip_bom(body)
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        status = f"status {status_code}, " if status_code is not None else ""
        raise DecodeError(url, f"{e} ({status}body {_snippet(body)!r})") from e


def fetch_json(session: requests.Session, url: str, *, timeout: Optional[float] = None) -> Any:
    """GET ``url`` once and return its decoded JSON body.

    The status code is not checked here; an error page simply fails to
    decode, or fails the caller's schema validation.
    """
    logger.debug("GET %s", url)
    try:
        resp = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise TransportError(url, e) from e
    return decode_json(url, resp.content, resp.status_code)


__all__ = [
    "UTF8_BOM",
    "MonitorError",
    "ConfigError",
    "TransportError",
    "DecodeError",
    "NotifyError",
    "get_http_session",
    "strip_bom",
    "decode_json",
    "fetch_json",
]
