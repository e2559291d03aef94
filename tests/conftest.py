import json
import sys
from pathlib import Path

import pytest

# Add repository root to sys.path to allow importing 'bestbuy_monitor'
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class DummyResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200):
        self.content = content
        self.status_code = status_code

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class DummySession:
    """Answers GET/POST from a url -> response (or exception) map."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.closed = False

    def _answer(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if url not in self.routes:
            raise AssertionError(f"unexpected {method} {url}")
        answer = self.routes[url]
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def get(self, url, **kwargs):
        return self._answer("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._answer("POST", url, **kwargs)

    def close(self):
        self.closed = True


def json_response(data, status_code: int = 200, bom: bool = False) -> DummyResponse:
    body = json.dumps(data).encode("utf-8")
    if bom:
        body = b"\xef\xbb\xbf" + body
    return DummyResponse(body, status_code)


@pytest.fixture
def make_session():
    return DummySession
