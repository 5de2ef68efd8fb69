"""Forwarding engine.

This module rewrites an inbound request for the upstream MCP server, signs
it and performs exactly one outbound call over a shared connection pool.
No retries are attempted at any step.
"""

import asyncio
from typing import Optional

import httpx
from starlette.datastructures import MutableHeaders
from starlette.requests import ClientDisconnect, Request

from auth.signer import Signer
from core.base import BaseService
from core.config import Settings
from core.exceptions import BadGatewayError, GatewayTimeoutError, SigningError

from .event_stream import EventStreamResponder
from .headers import augment_forwarded_headers, copy_headers, strip_hop_by_hop
from .url import resolve_upstream_url

MAX_KEEPALIVE_CONNECTIONS = 100
KEEPALIVE_EXPIRY = 90.0


class ProxyService(BaseService):
    """Forwards local MCP requests to the upstream and injects auth headers.

    The service owns the pooled ``httpx.AsyncClient``, which is created on
    startup and closed on shutdown. The client is safe for concurrent use,
    so requests share it without further locking.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        signer: Optional[Signer] = None,
        event_stream: Optional[EventStreamResponder] = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Application settings.
            transport: Transport override for the outbound client (tests use
                ``httpx.MockTransport``).
            signer: Signer override. Defaults to one built from settings.
            event_stream: Responder for the local keep-alive stream.
        """
        super().__init__("ProxyService")
        self.settings = settings
        self.signer = signer or Signer(settings.api_key, settings.api_secret)
        self.event_stream = event_stream or EventStreamResponder()
        self.timeout = httpx.Timeout(settings.request_timeout)
        self.client: Optional[httpx.AsyncClient] = None
        self._transport = transport

    async def startup(self) -> None:
        """Create the pooled outbound client."""
        await super().startup()
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            limits=httpx.Limits(
                max_connections=None,
                max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
                keepalive_expiry=KEEPALIVE_EXPIRY,
            ),
            verify=not self.settings.upstream_insecure,
            follow_redirects=False,
            trust_env=True,
            transport=self._transport,
        )

    async def shutdown(self) -> None:
        """Close the pooled outbound client."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None
        await super().shutdown()

    async def forward(self, request: Request) -> httpx.Response:
        """Clone the inbound request, sign it and send it upstream.

        The returned response is streamed. The caller must close it.

        Args:
            request: Inbound request.

        Returns:
            httpx.Response: Upstream response with an unread body.

        Raises:
            GatewayTimeoutError: The upstream timed out or the client went away.
            BadGatewayError: Any other failure before a response arrived.
        """
        if self.client is None:
            raise RuntimeError("ProxyService has not been started")

        method = request.method

        try:
            body = await request.body()
        except ClientDisconnect as exc:
            raise BadGatewayError("read request body failed", method=method, cause=exc)

        try:
            target = resolve_upstream_url(
                self.settings.upstream_url,
                request.url.path,
                raw_path=request.scope.get("raw_path", b"").decode("latin-1"),
                query=request.scope.get("query_string", b"").decode("latin-1"),
                fragment=request.url.fragment,
            )
        except (httpx.InvalidURL, ValueError) as exc:
            raise BadGatewayError("build upstream request failed", method=method, cause=exc)

        headers = MutableHeaders()
        copy_headers(headers, request.headers)
        strip_hop_by_hop(headers)
        augment_forwarded_headers(headers, request)

        if self.settings.session_value:
            # Lets the upstream associate the call with an authenticated user.
            headers[self.settings.session_header] = self.settings.session_value

        headers["host"] = target.netloc.decode("ascii")

        outbound = httpx.Request(
            method,
            target,
            headers=headers.raw,
            content=body,
            extensions={"timeout": self.timeout.as_dict()},
        )

        try:
            self.signer.attach_signature(outbound)
        except SigningError as exc:
            raise BadGatewayError(
                "sign request failed", method=method, target_url=str(target), cause=exc
            )

        self.logger.debug("Forwarding request", method=method, url=str(target), body_size=len(body))

        try:
            response = await self._send(request, outbound)
        except httpx.TimeoutException as exc:
            raise GatewayTimeoutError(
                "upstream request timed out", method=method, target_url=str(target), cause=exc
            )
        except httpx.HTTPError as exc:
            raise BadGatewayError(
                "perform upstream request failed", method=method, target_url=str(target), cause=exc
            )

        self.logger.debug(
            "Upstream responded",
            method=method,
            url=str(target),
            status_code=response.status_code,
        )
        return response

    async def _send(self, request: Request, outbound: httpx.Request) -> httpx.Response:
        """Send ``outbound`` once, giving up if the inbound client disconnects first."""
        upstream = asyncio.ensure_future(self.client.send(outbound, stream=True))
        disconnect = asyncio.ensure_future(_wait_for_disconnect(request))
        try:
            done, _ = await asyncio.wait(
                {upstream, disconnect}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            disconnect.cancel()
            if not upstream.done():
                upstream.cancel()

        if upstream not in done:
            raise GatewayTimeoutError(
                "client disconnected before the upstream responded",
                method=outbound.method,
                target_url=str(outbound.url),
                cause=disconnect.exception(),
            )
        return upstream.result()


async def _wait_for_disconnect(request: Request) -> None:
    # Only valid once the body has been read; later messages are disconnects.
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return
