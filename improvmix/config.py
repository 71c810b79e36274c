from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .audio import SAMPLE_RATE
from .errors import InvalidConfigError

_LOGGER = logging.getLogger("improvmix.config")

OutputMode = Literal["device", "offline"]

_ENV_PREFIX = "IMPROVMIX_"
_ENV_FIELDS = (
    "sample_rate",
    "channels",
    "block_size",
    "output",
    "device",
    "fetch_timeout",
)


class MixerSettings(BaseModel):
    """Audio context and source acquisition settings for a TrackMixer.

    ``output="offline"`` builds a context without a sound card; the caller
    drives rendering itself (tests, offline bounces).
    """

    sample_rate: int = Field(default=SAMPLE_RATE, ge=8_000, le=192_000)
    channels: int = Field(default=2, ge=1, le=8)
    block_size: int = Field(default=1024, ge=16, le=16_384)
    output: OutputMode = "device"
    device: int | str | None = None
    fetch_timeout: float = Field(default=30.0, gt=0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("device", mode="before")
    @classmethod
    def _coerce_device(cls, value: Any) -> Any:
        match value:
            case str() as text if text.strip().isdigit():
                return int(text.strip())
            case str() as text if not text.strip():
                return None
            case _:
                return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MixerSettings":
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for field in _ENV_FIELDS:
            raw = env.get(f"{_ENV_PREFIX}{field.upper()}")
            if raw is not None:
                values[field] = raw
        if values:
            _LOGGER.debug("Mixer settings from environment: %s", values)
        return cls.parse(values)

    @classmethod
    def parse(cls, values: Mapping[str, Any]) -> "MixerSettings":
        try:
            return cls.model_validate(dict(values))
        except ValidationError as exc:
            raise InvalidConfigError(f"Invalid mixer settings: {exc}") from exc

    def offline(self) -> "MixerSettings":
        return self.model_copy(update={"output": "offline"})
