"""Upstream transport built on httpx.

The transport performs exactly one HTTP exchange per call. Every HTTP status
is a normal result; only network level problems raise.
"""

import asyncio
import logging
import ssl
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

import httpx

from egressgate.builder import OutboundRequestConfig
from egressgate.tls import TlsOptions, create_ssl_context

logger = logging.getLogger("egressgate")

HeaderValue = Union[str, list[str]]


@dataclass(frozen=True)
class UpstreamResponse:
    """Raw upstream result: status line, headers and fully buffered bytes."""

    status: int
    status_text: str
    headers: dict[str, HeaderValue] = field(default_factory=dict)
    content: bytes = b""


class TransportError(Exception):
    """Raised when the upstream exchange could not be completed."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class Transport(Protocol):
    async def send(self, outbound: OutboundRequestConfig) -> UpstreamResponse:
        ...


def collect_headers(headers: httpx.Headers) -> dict[str, HeaderValue]:
    """Convert response headers to a plain mapping.

    Names keep the casing the upstream first used; repeated headers collapse
    into a list of values.
    """
    collected: dict[str, HeaderValue] = {}
    names: dict[str, str] = {}
    for raw_name, raw_value in headers.raw:
        name = raw_name.decode(headers.encoding)
        value = raw_value.decode(headers.encoding)
        name = names.setdefault(name.lower(), name)
        existing = collected.get(name)
        if existing is None:
            collected[name] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            collected[name] = [existing, value]
    return collected


def _body_kwargs(body: Any) -> dict[str, Any]:
    if body is None:
        return {}
    if isinstance(body, (str, bytes, bytearray)):
        return {"content": bytes(body) if isinstance(body, bytearray) else body}
    # Structured data is serialized as JSON, like the common HTTP clients do.
    return {"json": body}


async def _read_limited(response: httpx.Response, limit: int) -> bytes:
    chunks = []
    received = 0
    async for chunk in response.aiter_bytes():
        received += len(chunk)
        if received > limit:
            raise TransportError(f"maxContentLength size of {limit} exceeded")
        chunks.append(chunk)
    return b"".join(chunks)


class HttpxTransport:
    """Transport that opens a fresh httpx client for every call.

    Redirects are not followed: a 3xx goes back to the caller as-is, so an
    upstream cannot steer the gateway to a host outside the allow-list.
    """

    def __init__(self):
        # Contexts without client certificates are read-only once built and
        # are shared by every call.
        self._verified_context = create_ssl_context(TlsOptions())
        self._unverified_context = create_ssl_context(TlsOptions(reject_unauthorized=False))

    async def _ssl_context(self, tls: TlsOptions) -> ssl.SSLContext:
        if not tls.mutual:
            return self._verified_context if tls.reject_unauthorized else self._unverified_context
        try:
            return await asyncio.to_thread(create_ssl_context, tls)
        except ssl.SSLError as e:
            raise TransportError(f"Invalid client certificate: {e}")

    async def send(self, outbound: OutboundRequestConfig) -> UpstreamResponse:
        """Execute the outbound request and buffer the response.

        The resolved timeout bounds the whole exchange, from connecting to
        reading the last body byte.

        Args:
            outbound: Fully built outbound request

        Returns:
            UpstreamResponse with status, headers and raw body bytes

        Raises:
            TransportError: On DNS, connection, TLS, timeout or size failures
        """
        ssl_context = await self._ssl_context(outbound.tls)

        try:
            return await asyncio.wait_for(
                self._exchange(outbound, ssl_context), timeout=outbound.timeout_seconds
            )

        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(f"Request timeout after {outbound.timeout_ms}ms")
            raise TransportError(f"timeout of {outbound.timeout_ms}ms exceeded", timed_out=True)

        except httpx.RequestError as e:
            logger.error(f"Network error: {type(e).__name__}: {e}")
            raise TransportError(str(e) or type(e).__name__)

    async def _exchange(
        self, outbound: OutboundRequestConfig, ssl_context: ssl.SSLContext
    ) -> UpstreamResponse:
        async with httpx.AsyncClient(
            verify=ssl_context,
            timeout=outbound.timeout_seconds,
            follow_redirects=False,
        ) as client:
            request = client.build_request(
                outbound.method,
                outbound.url,
                headers=outbound.headers,
                params=outbound.params,
                **_body_kwargs(outbound.body),
            )
            if len(request.content) > outbound.max_body_length:
                raise TransportError("Request body larger than maxBodyLength limit")

            response = await client.send(request, stream=True)
            try:
                content = await _read_limited(response, outbound.max_response_bytes)
            finally:
                await response.aclose()

        return UpstreamResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=collect_headers(response.headers),
            content=content,
        )
