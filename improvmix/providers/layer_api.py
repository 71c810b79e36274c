from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidConfigError, LayerGenerationError
from ..layers import GENERATED_LAYER_TYPES, LayerType

_LOGGER = logging.getLogger("improvmix.providers.layer_api")
_GENERATE_PATH = "/api/generate-layer"
_DEFAULT_TIMEOUT = 120.0


class LayerProvider(Protocol):
    async def generate(self, layer_type: LayerType, genre: str, bpm: int) -> str:
        """Return an audio source (URL or data URL) for a new backing layer."""
        ...


class GenerateLayerRequest(BaseModel):
    layer_type: LayerType = Field(serialization_alias="layerType")
    genre: str
    bpm: int

    model_config = ConfigDict(frozen=True, extra="forbid")


class GenerateLayerResponse(BaseModel):
    success: bool
    audio_url: str | None = Field(default=None, alias="audioUrl")
    error: str | None = None

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class HttpLayerProvider:
    """Client for the app's generate-layer endpoint.

    The endpoint composes a short loop for one layer and answers with
    ``{"success": true, "audioUrl": "data:audio/mpeg;base64,..."}``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def generate(self, layer_type: LayerType, genre: str, bpm: int) -> str:
        if layer_type not in GENERATED_LAYER_TYPES:
            raise InvalidConfigError(
                f"Invalid layer type {layer_type!r}. Must be bass, harmony, or rhythm"
            )
        request = GenerateLayerRequest(layer_type=layer_type, genre=genre, bpm=bpm)
        payload = request.model_dump(by_alias=True)
        url = f"{self.base_url}{_GENERATE_PATH}"
        _LOGGER.info("Generating %s layer: genre=%s bpm=%d", layer_type, genre, bpm)
        try:
            response = await self._post(url, payload)
        except httpx.HTTPError as exc:
            raise LayerGenerationError(f"Generate-layer request failed: {exc}") from exc

        try:
            body = GenerateLayerResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise LayerGenerationError(
                f"Generate-layer returned an invalid response (HTTP {response.status_code})"
            ) from exc

        if not body.success or not body.audio_url:
            message = body.error or f"HTTP {response.status_code}"
            raise LayerGenerationError(f"Failed to generate {layer_type}: {message}")
        return body.audio_url

    async def _post(self, url: str, payload: dict[str, object]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=payload, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, json=payload)
