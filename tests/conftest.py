"""Pytest configuration and fixtures for nessus-client tests.

This file provides:
- RecordingHandler: httpx.MockTransport handler that records every request
- TrackingStream: response stream that counts close() calls
- Fixtures: a Client wired to a recording handler (no sockets involved)
"""

from __future__ import annotations

from typing import Any, Callable, Generator, Iterator

import httpx
import pytest

from nessus_client.client import Client
from nessus_client.models import ClientConfig, RequestDefaults

SERVER_URL = "https://nessus.test:8834"
ACCESS_KEY = "a1b2c3"
SECRET_KEY = "d4e5f6"

# Fixed platform so User-Agent assertions don't depend on the test machine
TEST_DEFAULTS = RequestDefaults(platform="linux-x86_64")


class TrackingStream(httpx.SyncByteStream):
    """Response body stream that records how many times it was closed."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.close_calls = 0

    def __iter__(self) -> Iterator[bytes]:
        yield self._data

    def close(self) -> None:
        self.close_calls += 1


class RecordingHandler:
    """MockTransport handler that records requests and returns a canned response.

    Usage:
        handler = RecordingHandler(json_body={"scans": []})
        client = make_client(handler)
        client.request("GET", "/scans")
        assert handler.requests[0].url.path == "/scans"
    """

    def __init__(
        self,
        status_code: int = 200,
        json_body: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | list[tuple[str, str]] | None = None,
        respond: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        self.requests: list[httpx.Request] = []
        self._status_code = status_code
        self._json_body = json_body
        self._content = content
        self._headers = headers or {}
        self._respond = respond

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._respond is not None:
            return self._respond(request)
        if self._content is not None:
            return httpx.Response(self._status_code, headers=self._headers, content=self._content)
        if self._json_body is not None:
            return httpx.Response(self._status_code, headers=self._headers, json=self._json_body)
        return httpx.Response(self._status_code, headers=self._headers)

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "no request was sent"
        return self.requests[-1]


def make_config(**overrides: Any) -> ClientConfig:
    """Create a ClientConfig pointing at the test server with test keys."""
    fields: dict[str, Any] = {
        "server_url": SERVER_URL,
        "access_key": ACCESS_KEY,
        "secret_key": SECRET_KEY,
    }
    fields.update(overrides)
    return ClientConfig(**fields)


def make_client(handler: Callable[[httpx.Request], httpx.Response], **overrides: Any) -> Client:
    """Create a Client that sends through httpx.MockTransport(handler)."""
    return Client(
        make_config(**overrides),
        transport=httpx.MockTransport(handler),
        defaults=TEST_DEFAULTS,
    )


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler(json_body={"ok": True})


@pytest.fixture
def client(handler: RecordingHandler) -> Generator[Client, None, None]:
    c = make_client(handler)
    try:
        yield c
    finally:
        c.close()
