# DenoBridge - Supervised Deno HTTP workers
# Copyright (C) 2026 DenoBridge Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of DenoBridge, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""
Local RPC client: plain HTTP/1.1 over the worker's Unix domain socket.

Every call targets ``/`` on a synthetic authority; the URL the script
should see travels in the ``X-Deno-Worker-URL`` header and the bootstrap
script rebuilds the request from it.  ``Host`` and ``Connection`` belong
to the socket transport, so caller values for them are carried under
``X-Deno-Worker-Host`` / ``X-Deno-Worker-Connection`` instead.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Union

import httpx

from denobridge.exceptions import ResponseParseError, TransportError

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────
WORKER_BASE_URL = "http://deno-worker"
WORKER_PATH = "/"

URL_HEADER = "X-Deno-Worker-URL"
HOST_HEADER = "X-Deno-Worker-Host"
CONNECTION_HEADER = "X-Deno-Worker-Connection"

_RENAMED_HEADERS = {
    "host": HOST_HEADER,
    "connection": CONNECTION_HEADER,
}

# httpx adds these to every request unless removed from the client
_CLIENT_DEFAULT_HEADERS = ("User-Agent", "Accept", "Accept-Encoding")

HeadersArg = Union[Mapping[str, str], Iterable[tuple[str, str]], None]
BodyArg = Union[str, bytes, None]


def rewrite_headers(headers: HeadersArg) -> list[tuple[str, str]]:
    """Rename transport-owned headers; pass everything else through."""
    if headers is None:
        return []
    items = headers.items() if isinstance(headers, Mapping) else headers
    rewritten: list[tuple[str, str]] = []
    for key, value in items:
        rewritten.append((_RENAMED_HEADERS.get(key.lower(), key), value))
    return rewritten


class RPCClient:
    """
    HTTP client bound to one worker socket.

    A single ``httpx.AsyncClient`` is shared by all callers; it pools and
    reuses connections on its own and is safe for concurrent use.  No
    request timeout and no retries: both are the caller's business.
    """

    def __init__(
        self,
        socket_path: Path,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.socket_path = socket_path
        if transport is None:
            transport = httpx.AsyncHTTPTransport(uds=str(socket_path))
        self._client = httpx.AsyncClient(
            transport=transport,
            base_url=WORKER_BASE_URL,
            timeout=None,
        )
        # Only caller headers (plus transport-owned Host/Connection) reach the script
        for name in _CLIENT_DEFAULT_HEADERS:
            self._client.headers.pop(name, None)

    def build_request(
        self,
        url: str,
        method: str = "GET",
        headers: HeadersArg = None,
        body: BodyArg = None,
    ) -> httpx.Request:
        request_headers = [(URL_HEADER, url), *rewrite_headers(headers)]
        return self._client.build_request(
            method.upper(),
            WORKER_PATH,
            headers=request_headers,
            content=body,
        )

    async def _send(self, request: httpx.Request, *, stream: bool = False) -> httpx.Response:
        try:
            return await self._client.send(request, stream=stream)
        except httpx.TransportError as e:
            logger.debug("Worker request failed socket=%s: %s", self.socket_path, e)
            raise TransportError(f"Worker request failed: {e}") from e

    async def warm_request(self) -> None:
        """One round trip without a worker URL, forcing the bridge to answer once."""
        response = await self._send(self._client.build_request("GET", WORKER_PATH))
        logger.debug(
            "Warm-up response from %s: %s", self.socket_path, response.status_code
        )

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: HeadersArg = None,
        body: BodyArg = None,
    ) -> httpx.Response:
        """
        Send a request to the worker and return the fully read response.

        Args:
            url: URL the script's handler sees as ``req.url``
            method: HTTP method
            headers: Request headers (mapping or pairs)
            body: Optional request body

        Raises:
            TransportError: If the round trip over the socket failed
        """
        return await self._send(self.build_request(url, method, headers, body))

    @asynccontextmanager
    async def stream(
        self,
        url: str,
        method: str = "GET",
        headers: HeadersArg = None,
        body: BodyArg = None,
    ) -> AsyncIterator[httpx.Response]:
        """Like :meth:`request`, but yields the response before its body is read."""
        response = await self._send(
            self.build_request(url, method, headers, body), stream=True
        )
        try:
            yield response
        except httpx.TransportError as e:
            # Worker died mid-body
            raise TransportError(f"Worker stream failed: {e}") from e
        finally:
            await response.aclose()

    async def json_request(
        self,
        url: str,
        method: str = "GET",
        headers: HeadersArg = None,
        body: BodyArg = None,
    ) -> Any:
        """Send a request and decode the response body as JSON.

        Raises:
            TransportError: If the round trip over the socket failed
            ResponseParseError: If the body is not valid JSON
        """
        response = await self.request(url, method, headers, body)
        try:
            return response.json()
        except ValueError as e:
            raise ResponseParseError(
                f"Failed to parse response (status {response.status_code}): {e}"
            ) from e

    async def aclose(self) -> None:
        """Close pooled connections."""
        await self._client.aclose()
        logger.debug("RPC client closed for %s", self.socket_path)
