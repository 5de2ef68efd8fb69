"""Shared fixtures for the proxy tests.

The upstream is replaced by ``httpx.MockTransport`` so every outbound
request is recorded and no network I/O happens.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Tuple, Union

import httpx
import pytest
from starlette.requests import Request

from core.config import Settings

FIXED_NOW = datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
FIXED_TIMESTAMP = "2023-11-14T22:13:20Z"


def make_settings(**overrides: Any) -> Settings:
    """Build settings without reading the environment's .env file."""
    values: dict = {
        "upstream_url": "https://upstream.example.com/root",
        "api_key": "key-id",
        "api_secret": "secret-value",
        "request_timeout": 1.0,
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


class MockUpstream:
    """In-process fake upstream that records every request it receives."""

    def __init__(
        self,
        *,
        status_code: int = 200,
        body: bytes = b"upstream-ok",
        headers: Optional[List[Tuple[Union[str, bytes], Union[str, bytes]]]] = None,
        error: Optional[Callable[[httpx.Request], Exception]] = None,
        delay: Optional[float] = None,
    ) -> None:
        self.requests: List[httpx.Request] = []
        self.status_code = status_code
        self.body = body
        self.headers = headers or []
        self.error = error
        self.delay = delay

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay is not None:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error(request)
        return httpx.Response(self.status_code, content=self.body, headers=self.headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def calls(self) -> int:
        return len(self.requests)


def make_request(
    method: str = "POST",
    path: str = "/mcp",
    body: bytes = b"",
    headers: Optional[List[Tuple[bytes, bytes]]] = None,
    query_string: bytes = b"",
    client: Optional[Tuple[str, int]] = ("192.0.2.10", 52000),
) -> Tuple[Request, asyncio.Event]:
    """Build an inbound Starlette request plus an event that disconnects it."""
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": query_string,
        "root_path": "",
        "headers": headers if headers is not None else [(b"host", b"proxy.local")],
        "client": client,
        "server": ("proxy.local", 8080),
    }
    messages = [{"type": "http.request", "body": body, "more_body": False}]
    disconnected = asyncio.Event()

    async def receive() -> dict:
        if messages:
            return messages.pop(0)
        await disconnected.wait()
        return {"type": "http.disconnect"}

    return Request(scope, receive), disconnected


@pytest.fixture
def settings() -> Settings:
    return make_settings(session_value="session-123")


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()
