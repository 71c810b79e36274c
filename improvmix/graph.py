"""Pull-rendered audio graph: a context, gain stages and buffer sources.

Nodes are wired ``BufferSourceNode -> GainNode -> ... -> destination``. Each
call to :meth:`AudioContext.render` pulls one block from the destination,
which recursively sums its inputs. All mutation and rendering share the
context's re-entrant lock, so the graph can be rendered from an audio
callback thread while the event loop rewires it.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Literal, Protocol

import numpy as np

from .audio import SAMPLE_RATE, AudioBuffer, FloatArray
from .errors import InvalidStateError, PlaybackError

_LOGGER = logging.getLogger("improvmix.graph")

ContextState = Literal["suspended", "running", "closed"]


class Sink(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


SinkFactory = Callable[["AudioContext"], Sink]


class AudioNode:
    def __init__(self, context: AudioContext) -> None:
        self.context = context
        self._inputs: list[AudioNode] = []
        self._outputs: list[AudioNode] = []

    def connect(self, destination: AudioNode) -> AudioNode:
        if destination.context is not self.context:
            raise InvalidStateError("Cannot connect nodes from different contexts")
        with self.context.hold():
            if destination not in self._outputs:
                self._outputs.append(destination)
                destination._inputs.append(self)
        return destination

    def disconnect(self) -> None:
        with self.context.hold():
            for destination in self._outputs:
                if self in destination._inputs:
                    destination._inputs.remove(self)
            self._outputs.clear()

    @property
    def connected(self) -> bool:
        return bool(self._outputs)

    def _pull(self, start: int, frames: int) -> FloatArray:
        block = np.zeros((frames, self.context.channels), dtype=np.float32)
        for node in list(self._inputs):
            node._mix_into(block, start, frames)
        return block

    def _mix_into(self, block: FloatArray, start: int, frames: int) -> None:
        block += self._pull(start, frames)


class AudioDestinationNode(AudioNode):
    """Terminal node; whatever reaches it is what the sink plays."""


class GainNode(AudioNode):
    def __init__(self, context: AudioContext, gain: float = 1.0) -> None:
        super().__init__(context)
        self._gain = float(gain)

    @property
    def gain(self) -> float:
        return self._gain

    @gain.setter
    def gain(self, value: float) -> None:
        with self.context.hold():
            self._gain = float(value)

    def _mix_into(self, block: FloatArray, start: int, frames: int) -> None:
        if self._gain == 0.0 or not self._inputs:
            # Sources still advance so that unmuting keeps them in phase.
            self._pull(start, frames)
            return
        block += self._pull(start, frames) * np.float32(self._gain)


class BufferSourceNode(AudioNode):
    """One-shot playback of an AudioBuffer.

    A source can be started once and stopped once. Natural end (non-looping)
    fires ``on_ended`` from the render path; an explicit ``stop()`` does not.
    """

    def __init__(self, context: AudioContext) -> None:
        super().__init__(context)
        self.buffer: AudioBuffer | None = None
        self.loop = False
        self.on_ended: Callable[[BufferSourceNode], None] | None = None
        self._start_frame: int | None = None
        self._ended = False

    @property
    def started(self) -> bool:
        return self._start_frame is not None

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def start_frame(self) -> int | None:
        return self._start_frame

    @property
    def start_time(self) -> float | None:
        if self._start_frame is None:
            return None
        return self._start_frame / self.context.sample_rate

    def start(self, when: float = 0.0) -> None:
        with self.context.hold():
            if self.context.state == "closed":
                raise InvalidStateError("Cannot start a source on a closed context")
            if self._start_frame is not None:
                raise InvalidStateError("Source has already been started")
            requested = int(round(max(when, 0.0) * self.context.sample_rate))
            self._start_frame = max(requested, self.context.current_frame)

    def stop(self) -> None:
        with self.context.hold():
            if self._start_frame is None:
                raise InvalidStateError("Source has not been started")
            if self._ended:
                raise InvalidStateError("Source has already stopped")
            self._ended = True
            self.disconnect()

    def _finish(self) -> None:
        self._ended = True
        self.disconnect()
        callback = self.on_ended
        if callback is None:
            return
        try:
            callback(self)
        except Exception as exc:
            _LOGGER.warning("on_ended callback failed: %s", exc, exc_info=True)

    def _pull(self, start: int, frames: int) -> FloatArray:
        block = np.zeros((frames, self.context.channels), dtype=np.float32)
        if self.buffer is None or self._start_frame is None or self._ended:
            return block
        first = max(self._start_frame - start, 0)
        if first >= frames:
            return block
        data = self.buffer.samples
        length = data.shape[0]
        if length == 0:
            self._finish()
            return block
        position = start + first - self._start_frame
        count = frames - first
        if self.loop:
            index = np.arange(position, position + count) % length
            block[first:] = data[index]
            return block
        available = max(0, min(count, length - position))
        if available:
            block[first : first + available] = data[position : position + available]
        if position + count >= length:
            self._finish()
        return block


class AudioContext:
    """Owns the sample clock, the destination node and an optional sink.

    Without a sink the context is offline: callers drive :meth:`render`
    themselves. The clock only advances while the context is running.
    """

    def __init__(
        self,
        *,
        sample_rate: int = SAMPLE_RATE,
        channels: int = 2,
        block_size: int = 1024,
        sink_factory: SinkFactory | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self._lock = threading.RLock()
        self._state: ContextState = "suspended"
        self._frame = 0
        self.destination = AudioDestinationNode(self)
        self._sink: Sink | None = sink_factory(self) if sink_factory is not None else None
        self._sink_started = False

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def current_frame(self) -> int:
        return self._frame

    @property
    def current_time(self) -> float:
        return self._frame / self.sample_rate

    @property
    def offline(self) -> bool:
        return self._sink is None

    @contextmanager
    def hold(self) -> Iterator[None]:
        with self._lock:
            yield

    def create_gain(self, gain: float = 1.0) -> GainNode:
        self._ensure_open()
        return GainNode(self, gain)

    def create_buffer_source(self) -> BufferSourceNode:
        self._ensure_open()
        return BufferSourceNode(self)

    async def resume(self) -> None:
        self._ensure_open()
        if self._state == "running":
            return
        if self._sink is not None and not self._sink_started:
            try:
                await asyncio.to_thread(self._sink.start)
            except PlaybackError as exc:
                _LOGGER.warning("Audio output unavailable; context stays suspended: %s", exc)
                return
            self._sink_started = True
        with self.hold():
            self._state = "running"
        _LOGGER.debug("Audio context running at %d Hz", self.sample_rate)

    async def suspend(self) -> None:
        self._ensure_open()
        with self.hold():
            self._state = "suspended"

    def close(self) -> None:
        if self._state == "closed":
            return
        with self.hold():
            self._state = "closed"
            self.destination._inputs.clear()
        if self._sink is not None:
            try:
                if self._sink_started:
                    self._sink.stop()
                self._sink.close()
            except PlaybackError as exc:
                _LOGGER.warning("Failed to close audio output: %s", exc, exc_info=True)
            self._sink_started = False
        _LOGGER.debug("Audio context closed at %.3fs", self.current_time)

    def render(self, frames: int | None = None) -> FloatArray:
        count = self.block_size if frames is None else frames
        with self.hold():
            if self._state != "running" or count <= 0:
                return np.zeros((max(count, 0), self.channels), dtype=np.float32)
            block = self.destination._pull(self._frame, count)
            self._frame += count
        return np.clip(block, -1.0, 1.0)

    def render_seconds(self, seconds: float) -> Iterator[FloatArray]:
        remaining = int(round(seconds * self.sample_rate))
        while remaining > 0:
            count = min(self.block_size, remaining)
            yield self.render(count)
            remaining -= count

    def _ensure_open(self) -> None:
        if self._state == "closed":
            raise InvalidStateError("Audio context is closed")
