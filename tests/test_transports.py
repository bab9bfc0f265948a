"""Tests for the httpx transport and dispatch, using httpx.MockTransport."""

import httpx
import pytest

from repost.domain.builder import MultipartField, TransportDescriptor
from repost.transports import HttpxTransport, TransportError, TransportResponse, dispatch


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpxTransport:
    async def test_sends_method_url_headers_and_body(self):
        """
        Given a POST descriptor with a text body
        When execute is called
        Then the server sees the same method, URL, headers and body
        """
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, content=b"created", headers={"X-Trace": "t1"})

        async with _client(handler) as client:
            transport = HttpxTransport(client=client)
            result = await transport.execute(
                TransportDescriptor(
                    method="POST",
                    url="https://api.test/items?x=1",
                    headers={"Content-Type": "application/json"},
                    body='{"a": 1}',
                )
            )

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.test/items?x=1"
        assert request.headers["content-type"] == "application/json"
        assert request.content == b'{"a": 1}'
        assert result.status == 201
        assert result.status_text == "Created"
        assert result.headers["x-trace"] == "t1"
        assert result.body_text == "created"

    async def test_multipart_fields_are_encoded(self):
        """
        Given a descriptor whose body is a list of multipart fields
        When execute is called
        Then the request is multipart with a filename only on the file part
        """
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        descriptor = TransportDescriptor(
            method="POST",
            url="https://api.test/upload",
            body=[
                MultipartField(key="name", value="ada"),
                MultipartField(key="doc", file=b"payload", file_name="doc.txt"),
            ],
        )
        async with _client(handler) as client:
            await HttpxTransport(client=client).execute(descriptor)

        request = seen[0]
        body = request.content
        assert request.headers["content-type"].startswith("multipart/form-data; boundary=")
        assert b'name="name"\r\n\r\nada' in body
        assert b'name="doc"; filename="doc.txt"' in body
        assert b"payload" in body

    async def test_network_error_becomes_transport_error(self):
        """
        Given a server that cannot be reached
        When execute is called
        Then a TransportError is raised
        """

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(TransportError, match="connection refused"):
                await HttpxTransport(client=client).execute(
                    TransportDescriptor(method="GET", url="https://down.test/")
                )


class _StaticTransport:
    def __init__(self, response: TransportResponse) -> None:
        self.response = response
        self.calls: list[TransportDescriptor] = []

    async def execute(self, descriptor: TransportDescriptor) -> TransportResponse:
        self.calls.append(descriptor)
        return self.response


class TestDispatch:
    async def test_normalises_transport_response(self):
        """
        Given a transport returning a fixed response
        When dispatch is called
        Then an HttpResponse with size, duration and URL is returned
        """
        transport = _StaticTransport(
            TransportResponse(status=200, status_text="OK", headers={"a": "b"}, body_text="héllo")
        )
        descriptor = TransportDescriptor(method="GET", url="https://api.test/")

        response = await dispatch(transport, descriptor)

        assert response.status == 200
        assert response.status_text == "OK"
        assert response.headers == {"a": "b"}
        assert response.body == "héllo"
        assert response.size == 5
        assert response.duration >= 0
        assert response.url == "https://api.test/"
        assert transport.calls == [descriptor]
