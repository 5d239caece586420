from __future__ import annotations

import asyncio

import httpx
import pytest

from action.errors import ConfigurationError, DeliveryError
from common.web import WebSink


HOOK = "https://hooks.example.com/notify"


def _sink(handler, method: str = "POST", **kwargs) -> WebSink:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebSink(method, HOOK, client=client, **kwargs)


def test_sends_rendered_text_as_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    asyncio.run(_sink(handler, method="post").sink("T\nL"))

    assert len(seen) == 1
    req = seen[0]
    assert req.method == "POST"
    assert str(req.url) == HOOK
    assert req.content == "T\nL".encode("utf-8")
    assert req.headers["content-type"] == "text/plain; charset=utf-8"


def test_custom_content_type():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    asyncio.run(_sink(handler, method="PUT", content_type="application/json").sink('{"a":1}'))
    assert seen[0].method == "PUT"
    assert seen[0].headers["content-type"] == "application/json"


def test_single_attempt_and_http_error_raises_delivery_error():
    calls = {"count": 0}

    def handler(_: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(DeliveryError):
        asyncio.run(_sink(handler).sink("x"))
    assert calls["count"] == 1


def test_network_error_raises_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(DeliveryError):
        asyncio.run(_sink(handler).sink("x"))


def test_context_manager_closes_owned_client_only():
    async def run():
        async with WebSink("POST", HOOK) as owned:
            pass
        shared = httpx.AsyncClient(transport=httpx.MockTransport(lambda _: httpx.Response(200)))
        async with WebSink("POST", HOOK, client=shared) as borrowed:
            await borrowed.sink("x")
        shared_closed = shared.is_closed
        await shared.aclose()
        return owned._client.is_closed, shared_closed

    owned_closed, shared_closed = asyncio.run(run())
    assert owned_closed is True
    assert shared_closed is False


def test_unknown_method_is_configuration_error():
    with pytest.raises(ConfigurationError):
        _sink(lambda _: httpx.Response(200), method="FETCH")
