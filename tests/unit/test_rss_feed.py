from __future__ import annotations

import asyncio
from typing import List, Tuple

import httpx
import pytest

from action.errors import ConfigurationError, TransportError
from common.rss import RSS_LAST_LINK, RssFeed


FEED_URL = "https://news.example.com/rss"


def _rss(items: List[Tuple[str, str]]) -> bytes:
    body = "".join(
        f"<item><title>{title}</title><link>{link}</link><description>About {title}</description></item>"
        for title, link in items
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>News</title><link>https://news.example.com/</link>'
        f"<description>Latest</description>{body}</channel></rss>"
    ).encode("utf-8")


FIVE = [(f"R{i}", f"https://news.example.com/{i}") for i in range(1, 6)]  # newest first


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _ok(items=FIVE):
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == FEED_URL
        return httpx.Response(200, content=_rss(items), headers={"Content-Type": "application/rss+xml"})

    return handler


def _run(feed: RssFeed, state: dict):
    return asyncio.run(feed.feed(state))


def test_stops_at_cursor_and_moves_it_to_newest():
    state = {RSS_LAST_LINK: "https://news.example.com/3"}
    records = _run(RssFeed(FEED_URL, 10, client=_client(_ok())), state)

    assert [r["title"] for r in records] == ["R1", "R2"]
    assert state[RSS_LAST_LINK] == "https://news.example.com/1"


def test_first_run_returns_up_to_count():
    state: dict[str, str] = {}
    records = _run(RssFeed(FEED_URL, 3, client=_client(_ok())), state)

    assert [r["link"] for r in records] == [link for _, link in FIVE[:3]]
    assert state[RSS_LAST_LINK] == "https://news.example.com/1"


def test_record_fields():
    records = _run(RssFeed(FEED_URL, 1, client=_client(_ok())), {})
    rec = records[0]
    assert rec["title"] == "R1"
    assert rec["link"] == "https://news.example.com/1"
    assert rec["description"] == "About R1"
    assert rec["author"] == ""


def test_nothing_new_keeps_cursor():
    state = {RSS_LAST_LINK: "https://news.example.com/1"}
    assert _run(RssFeed(FEED_URL, 10, client=_client(_ok())), state) == []
    assert state == {RSS_LAST_LINK: "https://news.example.com/1"}


def test_empty_channel_keeps_cursor():
    state = {RSS_LAST_LINK: "https://news.example.com/9"}
    assert _run(RssFeed(FEED_URL, 10, client=_client(_ok(items=[]))), state) == []
    assert state == {RSS_LAST_LINK: "https://news.example.com/9"}


def test_http_error_raises_transport_error_without_touching_state():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    state = {RSS_LAST_LINK: "x"}
    with pytest.raises(TransportError):
        _run(RssFeed(FEED_URL, 10, client=_client(handler)), state)
    assert state == {RSS_LAST_LINK: "x"}


def test_network_error_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        _run(RssFeed(FEED_URL, 10, client=_client(handler)), {})


def test_unparsable_document_raises_transport_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html><body>not a feed")

    with pytest.raises(TransportError):
        _run(RssFeed(FEED_URL, 10, client=_client(handler)), {})


@pytest.mark.parametrize("url,count", [("", 10), (FEED_URL, 0)])
def test_invalid_options(url: str, count: int):
    with pytest.raises(ConfigurationError):
        RssFeed(url, count, client=_client(_ok()))


def test_context_manager_closes_owned_client():
    async def run():
        async with RssFeed(FEED_URL, 5) as feed:
            pass
        return feed._client.is_closed

    assert asyncio.run(run()) is True
