"""Tests for the forwarding engine."""

import asyncio

import httpx
import pytest
from structlog.testing import capture_logs

from auth.signer import Signer, compute_signature
from core.exceptions import BadGatewayError, GatewayTimeoutError, SigningError
from proxy.headers import HOP_BY_HOP_HEADERS
from proxy.service import ProxyService

from conftest import FIXED_NOW, FIXED_TIMESTAMP, MockUpstream, make_request, make_settings


def _service(settings, upstream: MockUpstream, **kwargs) -> ProxyService:
    kwargs.setdefault(
        "signer", Signer(settings.api_key, settings.api_secret, clock=lambda: FIXED_NOW)
    )
    return ProxyService(settings, transport=upstream.transport, **kwargs)


class TestForward:
    @pytest.mark.asyncio
    async def test_rewrites_and_signs_request(self, settings, upstream) -> None:
        request, _ = make_request(
            "POST",
            "/mcp",
            body=b'{"jsonrpc":"2.0","id":1,"method":"ping"}',
            headers=[
                (b"host", b"localhost:8080"),
                (b"content-type", b"application/json"),
                (b"connection", b"keep-alive"),
                (b"proxy-authorization", b"Basic abc"),
                (b"te", b"trailers"),
            ],
            query_string=b"trace=1",
        )

        async with _service(settings, upstream) as service:
            response = await service.forward(request)
            await response.aclose()

        assert response.status_code == 200
        assert upstream.calls == 1
        sent = upstream.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == "https://upstream.example.com/mcp?trace=1"
        assert sent.content == b'{"jsonrpc":"2.0","id":1,"method":"ping"}'
        assert sent.headers["host"] == "upstream.example.com"
        assert sent.headers["content-type"] == "application/json"
        assert sent.headers["x-session-id"] == "session-123"
        assert sent.headers["x-forwarded-for"] == "192.0.2.10"
        assert sent.headers["x-forwarded-proto"] == "http"
        assert sent.headers["x-forwarded-host"] == "localhost:8080"
        assert sent.headers["x-api-key-id"] == "key-id"
        assert sent.headers["x-timestamp"] == FIXED_TIMESTAMP
        assert sent.headers["x-signature"] == compute_signature(
            "secret-value", "POST", "/mcp", FIXED_TIMESTAMP
        )
        for name in HOP_BY_HOP_HEADERS:
            assert name not in sent.headers

    @pytest.mark.asyncio
    async def test_session_header_overrides_client_value(self, settings, upstream) -> None:
        request, _ = make_request(
            headers=[(b"host", b"localhost"), (b"x-session-id", b"client-chosen")]
        )

        async with _service(settings, upstream) as service:
            response = await service.forward(request)
            await response.aclose()

        assert upstream.requests[0].headers.get_list("x-session-id") == ["session-123"]

    @pytest.mark.asyncio
    async def test_custom_session_header_name(self, upstream) -> None:
        settings = make_settings(session_header="x-user-session", session_value="abc")
        request, _ = make_request()

        async with _service(settings, upstream) as service:
            response = await service.forward(request)
            await response.aclose()

        sent = upstream.requests[0]
        assert sent.headers["x-user-session"] == "abc"
        assert "x-session-id" not in sent.headers

    @pytest.mark.asyncio
    async def test_empty_session_value_adds_no_header(self, upstream) -> None:
        settings = make_settings(session_value="")
        request, _ = make_request()

        async with _service(settings, upstream) as service:
            response = await service.forward(request)
            await response.aclose()

        assert "x-session-id" not in upstream.requests[0].headers

    @pytest.mark.asyncio
    async def test_client_signature_headers_are_replaced(self, settings, upstream) -> None:
        request, _ = make_request(
            headers=[(b"host", b"localhost"), (b"x-signature", b"forged")]
        )

        async with _service(settings, upstream) as service:
            response = await service.forward(request)
            await response.aclose()

        assert upstream.requests[0].headers.get_list("x-signature") == [
            compute_signature("secret-value", "POST", "/mcp", FIXED_TIMESTAMP)
        ]

    @pytest.mark.asyncio
    async def test_non_post_methods_are_forwarded(self, settings, upstream) -> None:
        request, _ = make_request("DELETE", "/mcp")

        async with _service(settings, upstream) as service:
            response = await service.forward(request)
            await response.aclose()

        sent = upstream.requests[0]
        assert sent.method == "DELETE"
        assert sent.headers["x-signature"] == compute_signature(
            "secret-value", "DELETE", "/mcp", FIXED_TIMESTAMP
        )

    @pytest.mark.asyncio
    async def test_upstream_error_status_is_returned_not_raised(self, settings) -> None:
        upstream = MockUpstream(status_code=500, body=b"boom")
        request, _ = make_request()

        async with _service(settings, upstream) as service:
            response = await service.forward(request)
            body = await response.aread()
            await response.aclose()

        assert response.status_code == 500
        assert body == b"boom"


class TestForwardFailures:
    @pytest.mark.asyncio
    async def test_timeout_maps_to_gateway_timeout(self, settings) -> None:
        upstream = MockUpstream(error=lambda req: httpx.ReadTimeout("timed out", request=req))
        request, _ = make_request()

        async with _service(settings, upstream) as service:
            with pytest.raises(GatewayTimeoutError) as exc_info:
                await service.forward(request)

        assert exc_info.value.status_code == 504
        assert isinstance(exc_info.value.cause, httpx.ReadTimeout)
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_bad_gateway(self, settings) -> None:
        upstream = MockUpstream(error=lambda req: httpx.ConnectError("refused", request=req))
        request, _ = make_request()

        async with _service(settings, upstream) as service:
            with pytest.raises(BadGatewayError) as exc_info:
                await service.forward(request)

        assert exc_info.value.status_code == 502
        assert exc_info.value.target_url == "https://upstream.example.com/mcp"
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_signing_failure_never_reaches_upstream(self, settings, upstream) -> None:
        request, _ = make_request()

        async with _service(settings, upstream, signer=Signer("", "secret-value")) as service:
            with pytest.raises(BadGatewayError) as exc_info:
                await service.forward(request)

        assert isinstance(exc_info.value.cause, SigningError)
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_client_disconnect_abandons_upstream_call(self, settings) -> None:
        upstream = MockUpstream(delay=5.0)
        request, disconnected = make_request()

        async with _service(settings, upstream) as service:
            forwarding = asyncio.ensure_future(service.forward(request))
            await asyncio.sleep(0.05)
            disconnected.set()

            with pytest.raises(GatewayTimeoutError):
                await asyncio.wait_for(forwarding, timeout=1.0)

        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_forward_requires_startup(self, settings, upstream) -> None:
        request, _ = make_request()
        service = _service(settings, upstream)

        with pytest.raises(RuntimeError):
            await service.forward(request)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_client_is_closed_on_shutdown(self, settings, upstream) -> None:
        service = _service(settings, upstream)

        async with service:
            client = service.client
            assert client is not None
            assert client.follow_redirects is False

        assert service.client is None
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_lifecycle_is_logged_with_service_name(self, settings, upstream) -> None:
        with capture_logs() as logs:
            service = _service(settings, upstream)
            async with service:
                pass

        lifecycle = [
            (entry["event"], entry["service"])
            for entry in logs
            if entry["event"] in ("Service starting", "Service stopped")
        ]
        assert lifecycle == [
            ("Service starting", "ProxyService"),
            ("Service stopped", "ProxyService"),
        ]
