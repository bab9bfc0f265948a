"""Transport protocol and implementations.

The store never talks to the network itself; it hands a
``TransportDescriptor`` to a ``Transport`` and gets back the raw status,
headers and body text.  Response bodies are never parsed here.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from repost.constants import DEFAULT_TIMEOUT_SECONDS
from repost.domain.builder import MultipartField, TransportDescriptor
from repost.models import HttpResponse

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a request cannot be completed (DNS, connect, timeout...)."""


@dataclass
class TransportResponse:
    status: int
    status_text: str
    headers: dict[str, str] = field(default_factory=dict)
    body_text: str = ""


class Transport(Protocol):
    """Protocol that all network backends must satisfy."""

    async def execute(self, descriptor: TransportDescriptor) -> TransportResponse:
        """Send the request. Raises on any network failure."""
        ...


class HttpxTransport:
    """Transport backed by ``httpx.AsyncClient``.

    A shared client may be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise a client is opened per request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        follow_redirects: bool = True,
        verify: bool = True,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._follow_redirects = follow_redirects
        self._verify = verify

    async def execute(self, descriptor: TransportDescriptor) -> TransportResponse:
        try:
            if self._client is not None:
                response = await self._send(self._client, descriptor)
            else:
                async with httpx.AsyncClient(
                    timeout=self._timeout,
                    follow_redirects=self._follow_redirects,
                    verify=self._verify,
                ) as client:
                    response = await self._send(client, descriptor)
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            # httpx rejects some malformed URLs with a plain ValueError subclass.
            raise TransportError(f"Invalid request: {exc}") from exc

        return TransportResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            body_text=response.text,
        )

    async def _send(
        self, client: httpx.AsyncClient, descriptor: TransportDescriptor
    ) -> httpx.Response:
        body = descriptor.body
        if isinstance(body, list):
            return await client.request(
                descriptor.method,
                descriptor.url,
                headers=descriptor.headers,
                files=_multipart_files(body),
            )
        return await client.request(
            descriptor.method,
            descriptor.url,
            headers=descriptor.headers,
            content=body.encode("utf-8") if body is not None else None,
        )


def _multipart_files(fields: list[MultipartField]) -> list[tuple[str, tuple]]:
    """Encode every field as a multipart part; text fields get no filename."""
    files: list[tuple[str, tuple]] = []
    for f in fields:
        if f.is_file:
            files.append((f.key, (f.file_name or f.key, f.file)))
        else:
            files.append((f.key, (None, f.value)))
    return files


async def dispatch(transport: Transport, descriptor: TransportDescriptor) -> HttpResponse:
    """Execute descriptor and normalise the result into an ``HttpResponse``.

    Duration is wall-clock milliseconds around the transport call; size is
    the length of the body text.  Exceptions from the transport propagate.
    """
    start = time.perf_counter()
    result = await transport.execute(descriptor)
    duration = int((time.perf_counter() - start) * 1000)
    logger.debug("%s %s -> %s in %d ms", descriptor.method, descriptor.url, result.status, duration)
    return HttpResponse(
        status=result.status,
        status_text=result.status_text,
        headers=result.headers,
        body=result.body_text,
        size=len(result.body_text),
        duration=duration,
        url=descriptor.url,
    )
