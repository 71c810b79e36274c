from pathlib import Path

import httpx
import pytest

from improvmix.errors import SourceError
from improvmix.sources import decode_data_url, is_data_url, read_source


def test_is_data_url() -> None:
    assert is_data_url("data:audio/mpeg;base64,AAAA")
    assert is_data_url("DATA:audio/wav;base64,AAAA")
    assert not is_data_url("https://example.test/a.mp3")
    assert not is_data_url(b"data:")


def test_decode_base64_data_url() -> None:
    assert decode_data_url("data:audio/mpeg;base64,aGVsbG8=") == b"hello"
    assert decode_data_url("data:audio/mpeg;base64,aGVs\nbG8=") == b"hello"


def test_decode_percent_encoded_data_url() -> None:
    assert decode_data_url("data:text/plain,hi%20there") == b"hi there"


@pytest.mark.parametrize(
    "source",
    [
        "data:audio/mpeg;base64,not*base64!",
        "data:audio/mpeg;base64",
        "https://example.test/a.mp3",
    ],
)
def test_decode_data_url_rejects_malformed(source: str) -> None:
    with pytest.raises(SourceError):
        decode_data_url(source)


@pytest.mark.asyncio
async def test_read_source_passes_bytes_through() -> None:
    assert await read_source(b"\x01\x02") == b"\x01\x02"


@pytest.mark.asyncio
async def test_read_source_reads_local_files(tmp_path: Path) -> None:
    path = tmp_path / "take.webm"
    path.write_bytes(b"recorded")

    assert await read_source(path) == b"recorded"
    assert await read_source(str(path)) == b"recorded"
    assert await read_source(path.as_uri()) == b"recorded"


@pytest.mark.asyncio
async def test_read_source_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SourceError):
        await read_source(tmp_path / "missing.wav")


@pytest.mark.asyncio
async def test_read_source_fetches_http() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        return httpx.Response(200, content=b"audio-bytes")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        data = await read_source("http://example.test/layer.mp3", client=client)

    assert data == b"audio-bytes"


@pytest.mark.asyncio
async def test_read_source_http_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(SourceError, match="HTTP 503"):
            await read_source("https://example.test/layer.mp3", client=client)


@pytest.mark.asyncio
async def test_read_source_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(SourceError, match="refused"):
            await read_source("https://example.test/layer.mp3", client=client)


@pytest.mark.asyncio
async def test_read_source_rejects_unknown_scheme() -> None:
    with pytest.raises(SourceError, match="ftp"):
        await read_source("ftp://example.test/layer.mp3")
