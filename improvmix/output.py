from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from .audio import FloatArray
from .config import MixerSettings
from .errors import PlaybackError
from .graph import AudioContext, SinkFactory

_LOGGER = logging.getLogger("improvmix.output")


class OutputDevice(BaseModel):
    index: int
    name: str
    max_output_channels: int
    default_sample_rate: float
    is_default: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")


def _load_sounddevice() -> Any | None:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        # OSError: the module imports but PortAudio itself is missing.
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        return None
    return sd_module


def _resolve_sounddevice() -> Any:
    sd = _load_sounddevice()
    if sd is None:
        raise PlaybackError(
            "Device output requires sounddevice and PortAudio. "
            "Install sounddevice (or use output='offline')."
        )
    return sd


class DeviceSink:
    """Feeds a sounddevice OutputStream from an audio context's render call."""

    def __init__(
        self,
        render: Callable[[int], FloatArray],
        *,
        sample_rate: int,
        channels: int,
        block_size: int,
        device: int | str | None = None,
    ) -> None:
        self._render = render
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self.device = device
        self._stream: Any | None = None

    @property
    def active(self) -> bool:
        return self._stream is not None and bool(getattr(self._stream, "active", False))

    def start(self) -> None:
        sd = _resolve_sounddevice()
        if self._stream is None:
            try:
                self._stream = sd.OutputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="float32",
                    blocksize=self.block_size,
                    device=self.device,
                    callback=self._callback,
                )
            except Exception as exc:
                raise PlaybackError(f"Unable to open output device: {exc}") from exc
        try:
            self._stream.start()
        except Exception as exc:
            raise PlaybackError(f"Unable to start output stream: {exc}") from exc
        _LOGGER.info(
            "Output stream started (%d Hz, %d ch, device=%s)",
            self.sample_rate,
            self.channels,
            self.device if self.device is not None else "default",
        )

    def stop(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
        except Exception as exc:
            raise PlaybackError(f"Unable to stop output stream: {exc}") from exc

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.close()
        except Exception as exc:
            raise PlaybackError(f"Unable to close output stream: {exc}") from exc

    def _callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        _ = time_info
        if status:
            _LOGGER.debug("Output stream status: %s", status)
        outdata[:] = self._render(frames)


def device_sink_factory(settings: MixerSettings) -> SinkFactory:
    def _factory(context: AudioContext) -> DeviceSink:
        return DeviceSink(
            context.render,
            sample_rate=context.sample_rate,
            channels=context.channels,
            block_size=context.block_size,
            device=settings.device,
        )

    return _factory


def create_context(settings: MixerSettings) -> AudioContext:
    sink_factory = device_sink_factory(settings) if settings.output == "device" else None
    return AudioContext(
        sample_rate=settings.sample_rate,
        channels=settings.channels,
        block_size=settings.block_size,
        sink_factory=sink_factory,
    )


def list_output_devices() -> list[OutputDevice]:
    sd = _resolve_sounddevice()
    try:
        devices = sd.query_devices()
        default_output = sd.default.device[1]
    except Exception as exc:
        raise PlaybackError(f"Unable to query audio devices: {exc}") from exc
    found: list[OutputDevice] = []
    for index, info in enumerate(devices):
        channels = int(info.get("max_output_channels", 0))
        if channels <= 0:
            continue
        found.append(
            OutputDevice(
                index=index,
                name=str(info.get("name", f"device {index}")),
                max_output_channels=channels,
                default_sample_rate=float(info.get("default_samplerate", 0.0)),
                is_default=index == default_output,
            )
        )
    return found
