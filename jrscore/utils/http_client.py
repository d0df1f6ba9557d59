"""
jrscore/utils/http_client.py

WHAT THIS FILE IS FOR
---------------------
A thin, explicitly-managed handle around one `httpx.AsyncClient`
shared by the outbound components (Gemini scorer, Data API store).

It exists to:
- Own the connection pool lifecycle (open at startup, close at shutdown)
- Let the process entry point inject ONE client into every component
- Allow tests to swap the transport (httpx.MockTransport)

LIFECYCLE
---------
    http = HttpClient(timeout_seconds=15)
    http.open()
    ...                  # components call http.client
    await http.close()

`client` raises if the handle was never opened or was already closed, so a
component cannot silently create its own connection pool.

WHAT THIS FILE IS NOT FOR
-------------------------
No retries, no logging, no payload interpretation. Those belong to the
components that know what the call means (GeminiScorer, DataApiStore).
"""

from __future__ import annotations

from typing import Optional

import httpx


class HttpClient:
    """
    Lifecycle owner for a shared `httpx.AsyncClient`.

    TIMEOUT SEMANTICS
    -----------------
    `timeout_seconds` is the client-wide default. Callers may pass a
    per-request `timeout=` to httpx; the scorer additionally races the
    whole call against its own deadline.
    """

    def __init__(
        self,
        timeout_seconds: float = 15.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._client.is_closed

    @property
    def client(self) -> httpx.AsyncClient:
        if not self.is_open:
            raise RuntimeError("HttpClient is not open; call open() at startup")
        assert self._client is not None
        return self._client

    def open(self) -> "HttpClient":
        if self.is_open:
            return self
        self._client = httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )
        return self

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "HttpClient":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
