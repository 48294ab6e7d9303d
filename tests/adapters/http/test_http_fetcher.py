import httpx
import pytest

from conftest import ChunkedBody, bytes_response
from relprobe.adapters.http_fetch import HttpFetcher
from relprobe.internal.config import Settings
from relprobe.internal.errors import NetworkError

URL = "https://releases.example.test/tool/1.0/tool-1.0-linux-x86_64.tar.gz"


@pytest.mark.asyncio
async def test_open_streams_body_in_chunks(artifact_server):
    payload = bytes(range(256)) * 40
    artifact_server.add("/tool/1.0/tool-1.0-linux-x86_64.tar.gz", payload)

    async with artifact_server.client() as client:
        fetcher = HttpFetcher(client=client, settings=Settings(chunk_size=1000))
        async with fetcher.open(URL) as body:
            chunks = [chunk async for chunk in body]

    assert body.status_code == 200
    assert body.content_length == len(payload)
    assert b"".join(chunks) == payload
    assert len(chunks) > 1
    assert all(len(chunk) <= 1000 for chunk in chunks)


@pytest.mark.asyncio
async def test_open_requests_identity_encoding(artifact_server):
    artifact_server.add("/tool/1.0/tool-1.0-linux-x86_64.tar.gz", b"payload")

    async with artifact_server.client() as client:
        async with HttpFetcher(client=client).open(URL) as body:
            [chunk async for chunk in body]

    assert artifact_server.requests[0].headers["Accept-Encoding"] == "identity"


@pytest.mark.asyncio
async def test_body_is_not_content_decoded(artifact_server):
    """The bytes handed out are the bytes served, even if they claim an encoding."""
    served = b"\x1f\x8b pretend this is gzip"
    artifact_server.add(
        "/tool/1.0/tool-1.0-linux-x86_64.tar.gz",
        bytes_response(served, headers={"Content-Encoding": "gzip"}),
    )

    async with artifact_server.client() as client:
        async with HttpFetcher(client=client).open(URL) as body:
            received = b"".join([chunk async for chunk in body])

    assert received == served


@pytest.mark.asyncio
async def test_open_follows_redirects(artifact_server):
    artifact_server.add(
        "/tool/1.0/tool-1.0-linux-x86_64.tar.gz",
        httpx.Response(302, headers={"Location": "https://cdn.example.test/blob/abc"}),
    )
    artifact_server.add("/blob/abc", b"redirected payload")

    async with artifact_server.client() as client:
        async with HttpFetcher(client=client).open(URL) as body:
            received = b"".join([chunk async for chunk in body])

    assert received == b"redirected payload"


@pytest.mark.asyncio
async def test_error_status_raises_network_error(artifact_server):
    async with artifact_server.client() as client:
        with pytest.raises(NetworkError) as exc_info:
            async with HttpFetcher(client=client).open(URL):
                pytest.fail("body must not be yielded for a 404")

    error = exc_info.value
    assert error.url == URL
    assert error.status_code == 404
    assert "404 Not Found" in str(error)


@pytest.mark.asyncio
async def test_transport_error_raises_network_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as client:
        with pytest.raises(NetworkError) as exc_info:
            async with HttpFetcher(client=client).open(URL):
                pass

    assert exc_info.value.url == URL
    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_error_while_reading_body_raises_network_error(artifact_server):
    async def broken_body():
        yield b"first part"
        raise httpx.ReadError("connection reset")

    artifact_server.add("/tool/1.0/tool-1.0-linux-x86_64.tar.gz", httpx.Response(200, content=broken_body()))

    async with artifact_server.client() as client:
        with pytest.raises(NetworkError, match="connection reset"):
            async with HttpFetcher(client=client).open(URL) as body:
                async for _ in body:
                    pass


@pytest.mark.asyncio
async def test_shared_client_is_left_open(artifact_server):
    artifact_server.add("/tool/1.0/tool-1.0-linux-x86_64.tar.gz", b"payload")

    async with artifact_server.client() as client:
        fetcher = HttpFetcher(client=client)
        for _ in range(2):
            async with fetcher.open(URL) as body:
                [chunk async for chunk in body]
        assert not client.is_closed


@pytest.mark.asyncio
async def test_body_without_length_streams_raw_chunks(artifact_server):
    """A body of unknown length is still read lazily, straight off the wire."""
    payload = bytes(range(256)) * 8
    artifact_server.add(
        "/tool/1.0/tool-1.0-linux-x86_64.tar.gz",
        httpx.Response(200, stream=ChunkedBody(payload, chunk_size=300)),
    )

    async with artifact_server.client() as client:
        async with HttpFetcher(client=client).open(URL) as body:
            assert body.content_length is None
            chunks = [chunk async for chunk in body]

    assert b"".join(chunks) == payload
