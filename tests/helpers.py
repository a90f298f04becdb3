"""Test doubles shared across the suite."""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

import requests

from scripts.posture.cancellation import CancellationToken

RUN_START = datetime(2026, 1, 31, 8, 0, 0, tzinfo=timezone.utc)
FIXED_CLOCK = 1_800_000_000.0


def make_response(
    status: int = 200,
    body: Any = None,
    headers: Optional[dict[str, str]] = None,
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = b"" if body is None else json.dumps(body).encode("utf-8")
    resp._content_consumed = True
    resp.encoding = "utf-8"
    resp.headers.update(headers or {})
    return resp


class FakeSession:
    """Stands in for requests.Session, replaying queued responses in order.

    A queued exception is raised; a queued callable is called for its response.
    """

    def __init__(self, *responses: Any) -> None:
        self.responses = deque(responses)
        self.requests: list[dict[str, Any]] = []
        self.posts: list[dict[str, Any]] = []
        self.closed = False

    def _next(self) -> requests.Response:
        item = self.responses.popleft()
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item()
        return item

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append(
            {"method": method, "url": url, "headers": dict(headers or {}), "timeout": timeout}
        )
        return self._next()

    def post(self, url, data=None, headers=None, timeout=None, **kwargs):
        self.posts.append({"url": url, "data": dict(data or {}), "headers": headers})
        return self._next()

    def close(self) -> None:
        self.closed = True


class RecordingToken(CancellationToken):
    """Records backoff waits instead of sleeping."""

    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float] = []

    def wait(self, seconds: float) -> None:
        self.raise_if_cancelled()
        self.waits.append(seconds)
