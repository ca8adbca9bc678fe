"""HTTP transport used by Twirp client stubs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Protocol, runtime_checkable

import httpx

from twirpy.errors import TwirpError


@dataclass(slots=True)
class TransportResponse:
    """Status, headers (lower-cased keys) and raw body of an HTTP reply."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.headers = {str(k).lower(): str(v) for k, v in self.headers.items()}


@runtime_checkable
class Transport(Protocol):
    """Sends one HTTP request. Cancelling the awaiting task aborts the call."""

    async def send(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: bytes,
        *,
        timeout: float | None = None,
    ) -> TransportResponse:
        ...


class HttpxTransport:
    """Transport backed by httpx.AsyncClient.

    Pass an existing client to share its connection pool; otherwise one is
    created lazily and closed by aclose().
    """

    def __init__(self, client: httpx.AsyncClient | None = None, *, timeout: float | None = 30.0):
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: bytes,
        *,
        timeout: float | None = None,
    ) -> TransportResponse:
        client = self._get_client()
        request_timeout = timeout if timeout is not None else self._timeout
        try:
            resp = await client.request(method, url, headers=dict(headers), content=body, timeout=request_timeout)
        except httpx.TimeoutException as exc:
            raise TwirpError.deadline_exceeded(
                f"twirp call timed out: {method} {url}",
                {"timeout": request_timeout},
            ) from exc
        except httpx.RequestError as exc:
            raise TwirpError.unavailable(f"twirp call failed: {method} {url}: {exc}") from exc
        return TransportResponse(resp.status_code, dict(resp.headers), resp.content)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
