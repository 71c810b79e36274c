from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass

import httpx

from .audio import AudioBuffer, decode_audio
from .config import MixerSettings
from .errors import InvalidStateError
from .graph import AudioContext, BufferSourceNode, GainNode
from .logging_utils import log_exception
from .output import create_context
from .sources import AudioSource, is_data_url, read_source

_LOGGER = logging.getLogger("improvmix.mixer")


@dataclass(slots=True, eq=False)
class Track:
    """One independently controllable layer of the mix.

    ``gain`` is created once per load and survives play/stop cycles;
    ``source`` is the live playback connection and is ``None`` while idle.
    """

    id: str
    buffer: AudioBuffer
    gain: GainNode
    source: BufferSourceNode | None = None

    @property
    def is_playing(self) -> bool:
        return self.source is not None and not self.source.ended


class TrackMixer:
    """Loads layers into decoded buffers and plays them in sync.

    Create one per session and pass it to whatever needs it; call
    :meth:`dispose` when the session ends.
    """

    def __init__(
        self,
        settings: MixerSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or MixerSettings()
        self._http_client = http_client
        self._context: AudioContext | None = None
        self._master: GainNode | None = None
        self._tracks: dict[str, Track] = {}
        self._init_lock = asyncio.Lock()
        self._load_locks: dict[str, asyncio.Lock] = {}

    @property
    def context(self) -> AudioContext | None:
        return self._context

    @property
    def master_gain(self) -> GainNode | None:
        return self._master

    @property
    def track_ids(self) -> list[str]:
        return list(self._tracks)

    def get_track(self, track_id: str) -> Track | None:
        return self._tracks.get(track_id)

    def is_playing(self, track_id: str) -> bool:
        track = self._tracks.get(track_id)
        return track is not None and track.is_playing

    def get_track_volume(self, track_id: str) -> float | None:
        track = self._tracks.get(track_id)
        return None if track is None else track.gain.gain

    async def initialize(self) -> None:
        async with self._init_lock:
            if self._context is None:
                context = create_context(self.settings)
                master = context.create_gain()
                master.connect(context.destination)
                self._context = context
                self._master = master
                _LOGGER.debug(
                    "Created %s audio context (%d Hz, %d ch)",
                    "offline" if context.offline else "device",
                    context.sample_rate,
                    context.channels,
                )
            if self._context.state == "suspended":
                await self._context.resume()

    async def load_track(self, track_id: str, source: AudioSource) -> AudioBuffer | None:
        """Decode ``source`` and install it as the track ``track_id``.

        Returns the decoded buffer, or ``None`` when the source could not be
        read or decoded; failures are logged and never raised. Concurrent
        loads of one id are applied in call order.
        """

        if self._context is None:
            await self.initialize()
        lock = self._load_locks.setdefault(track_id, asyncio.Lock())
        async with lock:
            try:
                buffer = await self._decode_source(source)
            except Exception as exc:
                _LOGGER.warning(
                    "Failed to load track %s from %s: %s",
                    track_id,
                    _describe_source(source),
                    exc,
                    exc_info=True,
                )
                log_exception(f"load track {track_id}", exc)
                return None
            context, master = self._context, self._master
            if context is None or master is None or context.state == "closed":
                _LOGGER.warning("Mixer disposed while loading track %s; discarding it", track_id)
                return None
            with context.hold():
                self._discard(track_id)
                gain = context.create_gain()
                gain.connect(master)
                self._tracks[track_id] = Track(id=track_id, buffer=buffer, gain=gain)
        _LOGGER.info("Loaded track %s (%.2fs)", track_id, buffer.duration)
        return buffer

    def set_track_volume(self, track_id: str, volume: float) -> None:
        track = self._tracks.get(track_id)
        if track is None:
            return
        track.gain.gain = max(0.0, min(1.0, float(volume)))

    def set_track_muted(self, track_id: str, muted: bool) -> None:
        # Unmuting restores full gain, not the pre-mute volume.
        track = self._tracks.get(track_id)
        if track is None:
            return
        track.gain.gain = 0.0 if muted else 1.0

    def play_track(self, track_id: str, loop: bool = False) -> None:
        track = self._tracks.get(track_id)
        context = self._context
        if track is None or context is None or context.state == "closed":
            return
        with context.hold():
            self._start_source(context, track, when=0.0, loop=loop)

    def stop_track(self, track_id: str) -> None:
        track = self._tracks.get(track_id)
        if track is None or track.source is None:
            return
        source, track.source = track.source, None
        try:
            source.stop()
        except InvalidStateError:
            _LOGGER.debug("Track %s was already stopped", track_id)

    def play_all_tracks(self, loop: bool = False) -> None:
        context = self._context
        if context is None or context.state == "closed":
            return
        with context.hold():
            start_time = context.current_time
            for track in self._tracks.values():
                self._start_source(context, track, when=start_time, loop=loop)
        _LOGGER.debug("Started %d track(s) at %.3fs", len(self._tracks), start_time)

    def stop_all_tracks(self) -> None:
        for track_id in list(self._tracks):
            self.stop_track(track_id)

    def remove_track(self, track_id: str) -> None:
        lock = self._load_locks.get(track_id)
        if lock is not None and not lock.locked():
            del self._load_locks[track_id]
        context = self._context
        if context is None:
            self._tracks.pop(track_id, None)
            return
        with context.hold():
            self._discard(track_id)

    def remove_tracks(self, track_ids: Iterable[str]) -> None:
        for track_id in list(track_ids):
            self.remove_track(track_id)

    def dispose(self) -> None:
        context, master = self._context, self._master
        if context is None:
            self._tracks.clear()
            return
        with context.hold():
            self.stop_all_tracks()
            for track in self._tracks.values():
                track.gain.disconnect()
            self._tracks.clear()
            if master is not None:
                master.disconnect()
        context.close()
        self._context = None
        self._master = None
        self._load_locks.clear()
        _LOGGER.debug("Mixer disposed")

    async def _decode_source(self, source: AudioSource) -> AudioBuffer:
        data = await read_source(
            source,
            client=self._http_client,
            timeout=self.settings.fetch_timeout,
        )
        return await asyncio.to_thread(
            decode_audio,
            data,
            sample_rate=self.settings.sample_rate,
            channels=self.settings.channels,
        )

    def _start_source(
        self,
        context: AudioContext,
        track: Track,
        *,
        when: float,
        loop: bool,
    ) -> None:
        self.stop_track(track.id)
        source = context.create_buffer_source()
        source.buffer = track.buffer
        source.loop = loop
        source.connect(track.gain)
        source.on_ended = lambda node: _clear_if_current(track, node)
        source.start(when)
        track.source = source

    def _discard(self, track_id: str) -> None:
        if track_id not in self._tracks:
            return
        self.stop_track(track_id)
        track = self._tracks.pop(track_id)
        track.gain.disconnect()


def _clear_if_current(track: Track, node: BufferSourceNode) -> None:
    if track.source is node:
        track.source = None


def _describe_source(source: AudioSource) -> str:
    if isinstance(source, bytes):
        return f"<{len(source)} bytes>"
    if is_data_url(source):
        header = str(source).partition(",")[0]
        return f"<{header}>"
    return str(source)
