"""HTTP transport for OpenAI-compatible chat-completions endpoints.

The engine only needs two operations: post a JSON body and get a JSON body
back, or post a JSON body and get a byte stream back.  ``HttpxTransport``
implements both over ``httpx.AsyncClient``; tests and embedders can supply
any object satisfying the ``Transport`` protocol instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

import httpx

from chatwire.errors import TransportError

_logger = logging.getLogger(__name__)

_COMPLETIONS_PATH = "chat/completions"
_ERROR_BODY_LIMIT = 500


@dataclass
class SingleResponse:
    body: bytes
    content_type: str


async def _noop() -> None:
    return None


@dataclass
class StreamResponse:
    """An open response body.  Whoever consumes ``chunks`` must ``aclose()``."""

    content_type: str
    chunks: AsyncIterator[bytes]
    close: Callable[[], Awaitable[None]] = _noop

    async def aclose(self) -> None:
        await self.close()


class Transport(Protocol):
    async def send_single(self, payload: dict[str, Any]) -> SingleResponse:
        ...

    async def send_streaming(self, payload: dict[str, Any]) -> StreamResponse:
        ...

    async def close(self) -> None:
        ...


def _error_from_status(resp: httpx.Response, body: bytes) -> TransportError:
    snippet = body[:_ERROR_BODY_LIMIT].decode("utf-8", errors="replace")
    return TransportError(
        f"HTTP {resp.status_code} from {resp.request.url}: {snippet}",
        status_code=resp.status_code,
    )


class HttpxTransport:
    """Async transport backed by ``httpx``.

    Parameters
    ----------
    base_url:
        API root, e.g. ``https://openrouter.ai/api/v1``.
    api_key:
        Bearer credential, sent verbatim.
    timeout:
        Overall request timeout in seconds.
    client:
        Optional pre-built ``httpx.AsyncClient`` (mainly for tests).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 120,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=30, read=300),
        )
        if client is not None:
            self._client.headers.update(headers)

    async def send_single(self, payload: dict[str, Any]) -> SingleResponse:
        try:
            resp = await self._client.post(
                _COMPLETIONS_PATH,
                json=payload,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise _error_from_status(resp, resp.content)
        return SingleResponse(
            body=resp.content,
            content_type=resp.headers.get("content-type", ""),
        )

    async def send_streaming(self, payload: dict[str, Any]) -> StreamResponse:
        request = self._client.build_request(
            "POST",
            _COMPLETIONS_PATH,
            json=payload,
            headers={"Accept": "application/json, text/event-stream"},
        )
        try:
            resp = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {type(e).__name__}: {e}") from e

        if not resp.is_success:
            try:
                body = await resp.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await resp.aclose()
            raise _error_from_status(resp, body)

        return StreamResponse(
            content_type=resp.headers.get("content-type", ""),
            chunks=self._iter_body(resp),
            close=resp.aclose,
        )

    @staticmethod
    async def _iter_body(resp: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in resp.aiter_bytes():
                yield chunk
        except httpx.StreamClosed:
            # Closing the body is how a reader is unwound: treat it as EOF
            _logger.debug("Response stream closed by consumer")
        except httpx.HTTPError as e:
            raise TransportError(f"Stream read failed: {type(e).__name__}: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()
