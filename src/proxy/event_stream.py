"""Local keep-alive event stream.

MCP clients open ``GET /mcp`` expecting a server-sent event stream. When the
upstream offers none, the proxy answers locally with SSE comment lines so the
client can complete its handshake. The upstream is never contacted.
"""

import asyncio
import time
from typing import AsyncIterator, Optional

from starlette.responses import Response
from starlette.types import Receive, Scope, Send
import structlog
from structlog.types import FilteringBoundLogger

from core.monitoring import event_streams_active
from models.proxy import ProxyOutcome

EVENT_STREAM_PATH = "/mcp"
HEARTBEAT_INTERVAL = 25.0

OPEN_COMMENT = b":ok\n\n"
KEEPALIVE_COMMENT = b":keepalive\n\n"

logger = structlog.get_logger(__name__)


def is_event_stream_path(path: str) -> bool:
    """Check for the canonical MCP GET endpoint, ignoring one trailing slash."""
    trimmed = path[:-1] if path.endswith("/") else path
    if not trimmed:
        return False
    return trimmed == EVENT_STREAM_PATH


class EventStreamResponder:
    """Produces the heartbeat stream until the request is closed."""

    def __init__(self, interval: float = HEARTBEAT_INTERVAL) -> None:
        """Initialize the responder.

        Args:
            interval: Seconds between keep-alive comments.
        """
        self.interval = interval

    async def stream(
        self,
        closed: asyncio.Event,
        log: Optional[FilteringBoundLogger] = None,
    ) -> AsyncIterator[bytes]:
        """Yield an opening comment, then a keep-alive every ``interval``.

        Each wait races the heartbeat timer against ``closed``, so the
        stream ends as soon as the event is set. The close event carries the
        lifetime of the stream as ``duration``.

        Args:
            closed: Set when the client disconnects.
            log: Logger bound to the request. Defaults to the module logger.

        Yields:
            bytes: SSE comment frames.
        """
        log = log or logger
        start = time.monotonic()
        yield OPEN_COMMENT
        log.info("Event stream opened", outcome=ProxyOutcome.EVENT_STREAM.value)

        try:
            while not closed.is_set():
                try:
                    await asyncio.wait_for(closed.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_COMMENT
        finally:
            duration = time.monotonic() - start
            log.info(
                "Event stream closed",
                outcome=ProxyOutcome.EVENT_STREAM.value,
                status_code=200,
                duration=f"{duration:.4f}s",
            )


class EventStreamResponse(Response):
    """ASGI response that drives an ``EventStreamResponder``.

    The response owns the ``receive`` channel for its lifetime and turns
    ``http.disconnect`` into the responder's ``closed`` event. Server
    shutdown cancels the task, which ends the stream the same way.
    """

    def __init__(
        self,
        responder: Optional[EventStreamResponder] = None,
        log: Optional[FilteringBoundLogger] = None,
    ) -> None:
        self.responder = responder or EventStreamResponder()
        self.log = log
        self.status_code = 200
        self.background = None
        self.init_headers({
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        })

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        closed = asyncio.Event()

        async def watch_disconnect() -> None:
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    closed.set()
                    return

        watcher = asyncio.ensure_future(watch_disconnect())
        event_streams_active.inc()
        try:
            await send({
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            })
            async for chunk in self.responder.stream(closed, self.log):
                await send({"type": "http.response.body", "body": chunk, "more_body": True})
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        finally:
            watcher.cancel()
            event_streams_active.dec()
