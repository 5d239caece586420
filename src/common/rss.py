from __future__ import annotations

import logging
from typing import Any, List, Optional

import feedparser
import httpx

from action.contracts import Record
from action.errors import ConfigurationError, TransportError
from state.models import State


logger = logging.getLogger(__name__)

# Cursor: link of the newest item delivered so far.
RSS_LAST_LINK = "rss_last_link"


def _entry_record(entry: Any) -> Record:
    return Record(
        title=entry.get("title", ""),
        link=entry.get("link", ""),
        description=entry.get("description", entry.get("summary", "")),
    )


class RssFeed:
    """
    RSS/Atom feed yielding items not seen on previous runs.

    Notes
    - Items are taken in document order (newest first) up to `count`.
    - Reading stops at the item whose link equals the stored cursor.
    - The cursor moves to the link of the newest returned item; with nothing new
      it is left as it was.
    - Fields: `title`, `link`, `description`.
    """

    def __init__(
        self,
        url: str,
        count: int,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not url:
            raise ConfigurationError("url is required")
        if count <= 0:
            raise ConfigurationError("count must be > 0")
        self.url = url
        self.count = count
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RssFeed":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def feed(self, state: State) -> List[Record]:
        entries = await self._fetch_entries()

        last_link = state.get(RSS_LAST_LINK)
        latest_link: Optional[str] = None
        news: List[Record] = []
        for entry in entries[: self.count]:
            link = entry.get("link")
            if last_link is not None and link == last_link:
                break
            if latest_link is None and link:
                latest_link = link
            news.append(_entry_record(entry))

        if latest_link is not None:
            state[RSS_LAST_LINK] = latest_link
            logger.debug("RSS cursor for %s moved to %s", self.url, latest_link)
        return news

    # --------------- Internal ---------------
    async def _fetch_entries(self) -> List[Any]:
        try:
            resp = await self._client.get(self.url)
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to fetch {self.url}: {exc}") from exc
        if resp.status_code >= 400:
            raise TransportError(f"HTTP {resp.status_code} from {self.url}")

        parsed = feedparser.parse(resp.content)
        if parsed.get("bozo") and not parsed.entries:
            reason = parsed.get("bozo_exception")
            raise TransportError(f"Failed to parse feed from {self.url}: {reason}")
        return list(parsed.entries)

    def __repr__(self) -> str:
        return f"RssFeed(url={self.url!r}, count={self.count})"


__all__ = ["RSS_LAST_LINK", "RssFeed"]
