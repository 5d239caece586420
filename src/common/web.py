from __future__ import annotations

from typing import Optional

import httpx

from action.errors import ConfigurationError, DeliveryError


DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"

_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}


class WebSink:
    """
    Delivers rendered text as the body of a single HTTP request.

    Notes
    - One attempt per record, no retry.
    - Transport failures and HTTP status >= 400 raise DeliveryError.
    """

    def __init__(
        self,
        method: str,
        url: str,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        normalized = method.strip().upper()
        if normalized not in _METHODS:
            raise ConfigurationError(f"Unsupported HTTP method: {method!r}")
        if not url:
            raise ConfigurationError("url is required")
        self.method = normalized
        self.url = url
        self.content_type = content_type
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "WebSink":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def sink(self, rendered: str) -> None:
        try:
            resp = await self._client.request(
                self.method,
                self.url,
                content=rendered.encode("utf-8"),
                headers={"Content-Type": self.content_type},
            )
        except httpx.HTTPError as exc:
            raise DeliveryError(f"{self.method} {self.url} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise DeliveryError(f"HTTP {resp.status_code} from {self.url}: {resp.text[:200]}")

    def __repr__(self) -> str:
        return f"WebSink(method={self.method!r}, url={self.url!r})"


__all__ = ["DEFAULT_CONTENT_TYPE", "WebSink"]
