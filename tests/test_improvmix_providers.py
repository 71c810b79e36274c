import json

import httpx
import pytest

from improvmix.errors import InvalidConfigError, LayerGenerationError
from improvmix.providers.layer_api import HttpLayerProvider


def _client(handler):  # type: ignore[no-untyped-def]
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_generate_posts_layer_request() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"success": True, "audioUrl": "data:audio/mpeg;base64,AAAA", "bpm": 90},
        )

    async with _client(handler) as client:
        provider = HttpLayerProvider("http://app.test/", client=client)
        source = await provider.generate("bass", "doo-wop", 90)

    assert source == "data:audio/mpeg;base64,AAAA"
    assert captured["url"] == "http://app.test/api/generate-layer"
    assert captured["body"] == {"layerType": "bass", "genre": "doo-wop", "bpm": 90}


@pytest.mark.asyncio
async def test_generate_reports_endpoint_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"success": False, "error": "quota exceeded"})

    async with _client(handler) as client:
        provider = HttpLayerProvider("http://app.test", client=client)
        with pytest.raises(LayerGenerationError, match="quota exceeded"):
            await provider.generate("harmony", "gospel", 100)


@pytest.mark.asyncio
async def test_generate_rejects_non_json() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    async with _client(handler) as client:
        provider = HttpLayerProvider("http://app.test", client=client)
        with pytest.raises(LayerGenerationError, match="HTTP 502"):
            await provider.generate("rhythm", "pop", 110)


@pytest.mark.asyncio
async def test_generate_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(handler) as client:
        provider = HttpLayerProvider("http://app.test", client=client)
        with pytest.raises(LayerGenerationError, match="timed out"):
            await provider.generate("bass", "jazz", 120)


@pytest.mark.asyncio
async def test_generate_rejects_user_layer() -> None:
    provider = HttpLayerProvider("http://app.test")

    with pytest.raises(InvalidConfigError):
        await provider.generate("user", "jazz", 120)  # type: ignore[arg-type]
