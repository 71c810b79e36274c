from __future__ import annotations

import io
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Callable, cast

import numpy as np
import soundfile as sf  # type: ignore[import]
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, model_validator

from .errors import DecodeError, InvalidConfigError

FloatArray = NDArray[np.float32]
AudioNumbers = NDArray[np.floating[Any]] | Sequence[float] | FloatArray

SAMPLE_RATE = 44_100

_LOGGER = logging.getLogger("improvmix.audio")


def remix_channels(samples: FloatArray, channels: int) -> FloatArray:
    """Map a ``(frames, n)`` array onto ``channels`` output channels."""

    current = samples.shape[1]
    if current == channels:
        return samples
    if current == 1:
        return np.repeat(samples, channels, axis=1)
    if channels == 1:
        return samples.mean(axis=1, keepdims=True, dtype=np.float32)
    if current > channels:
        return np.ascontiguousarray(samples[:, :channels])
    padded = np.zeros((samples.shape[0], channels), dtype=np.float32)
    padded[:, :current] = samples
    return padded


def ensure_audio_contract(
    audio: AudioNumbers,
    *,
    channels: int | None = None,
) -> FloatArray:
    """Coerce samples to float32 ``(frames, channels)`` clipped to [-1, 1]."""

    array: FloatArray = np.asarray(audio, dtype=np.float32)
    if array.ndim == 1:
        array = array.reshape(-1, 1)
    elif array.ndim != 2:
        raise InvalidConfigError(f"audio must be 1-D or 2-D, got {array.ndim} dimensions")
    if channels is not None:
        array = remix_channels(array, channels)
    if array.size == 0:
        return array.copy()
    return np.clip(array, -1.0, 1.0)


def resample(samples: FloatArray, source_rate: int, target_rate: int) -> FloatArray:
    """Linear-interpolation resample of a ``(frames, channels)`` array."""

    if source_rate == target_rate or samples.shape[0] == 0:
        return samples
    frames = samples.shape[0]
    target_frames = max(1, int(round(frames * target_rate / source_rate)))
    positions = np.arange(target_frames, dtype=np.float64) * (source_rate / target_rate)
    source_index = np.arange(frames, dtype=np.float64)
    out = np.empty((target_frames, samples.shape[1]), dtype=np.float32)
    for channel in range(samples.shape[1]):
        out[:, channel] = np.interp(positions, source_index, samples[:, channel])
    return out


class AudioBuffer(BaseModel):
    """Decoded, immutable audio held in memory at the context sample rate."""

    samples: FloatArray
    sample_rate: int = SAMPLE_RATE

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    @model_validator(mode="after")
    def _normalize(self) -> "AudioBuffer":
        normalized = ensure_audio_contract(self.samples)
        normalized.setflags(write=False)
        object.__setattr__(self, "samples", normalized)
        return self

    @property
    def length(self) -> int:
        return int(self.samples.shape[0])

    @property
    def number_of_channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.length / self.sample_rate


def decode_audio(
    data: bytes,
    *,
    sample_rate: int = SAMPLE_RATE,
    channels: int = 2,
) -> AudioBuffer:
    """Decode an encoded file (wav, flac, ogg, mp3, ...) into an AudioBuffer.

    The result is resampled to ``sample_rate`` and mixed to ``channels``.
    """

    if not data:
        raise DecodeError("No audio data to decode")
    try:
        decoded, source_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except (sf.LibsndfileError, RuntimeError, TypeError, ValueError) as exc:
        raise DecodeError(f"Unable to decode audio: {exc}") from exc
    samples = cast(FloatArray, np.asarray(decoded, dtype=np.float32))
    if samples.shape[0] == 0:
        raise DecodeError("Decoded audio contains no frames")
    samples = resample(samples, int(source_rate), sample_rate)
    samples = remix_channels(samples, channels)
    _LOGGER.debug(
        "Decoded %d bytes: %d frames @ %d Hz -> %d Hz, %d channel(s)",
        len(data),
        samples.shape[0],
        source_rate,
        sample_rate,
        channels,
    )
    return AudioBuffer(samples=samples, sample_rate=sample_rate)


def _looks_like_samples(sequence: Sequence[object]) -> bool:
    match sequence:
        case []:
            return False
        case [int() | float() | np.floating(), *_]:
            return True
        case _:
            return False


def write_wav(
    path: str | Path,
    audio_or_blocks: AudioNumbers | Iterable[AudioNumbers],
    *,
    sample_rate: int = SAMPLE_RATE,
) -> Path:
    """Write a full array or an iterator of rendered blocks to a wav file."""

    target = Path(path)
    match audio_or_blocks:
        case np.ndarray():
            normalized = ensure_audio_contract(audio_or_blocks)
            write_fn = cast(Callable[..., None], getattr(sf, "write"))
            write_fn(target, normalized, sample_rate, subtype="FLOAT")
            return target
        case str() | bytes():
            raise InvalidConfigError("audio must be samples or an iterable of blocks")
        case Sequence() as sequence if _looks_like_samples(sequence):
            return write_wav(
                target,
                np.asarray(sequence, dtype=np.float32),
                sample_rate=sample_rate,
            )
        case Iterable():
            pass
        case _:
            raise InvalidConfigError("audio must be samples or an iterable of blocks")

    blocks = iter(cast(Iterable[AudioNumbers], audio_or_blocks))
    first = next(blocks, None)
    if first is None:
        raise InvalidConfigError("audio contains no blocks")
    head = ensure_audio_contract(first)
    with sf.SoundFile(
        target,
        mode="w",
        samplerate=sample_rate,
        channels=head.shape[1],
        subtype="FLOAT",
    ) as handle:
        handle.write(head)
        for block in blocks:
            handle.write(ensure_audio_contract(block, channels=head.shape[1]))
    return target
