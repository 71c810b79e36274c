from __future__ import annotations

import logging
from types import TracebackType
import random
from typing import Any

from .coach import CoachFeedback, generate_coach_feedback
from .errors import ImprovMixError, InvalidConfigError
from .layers import (
    GENERATED_LAYER_TYPES,
    Genre,
    GenreOption,
    LayerState,
    create_initial_layers,
    get_genre,
)
from .mixer import TrackMixer
from .providers.layer_api import LayerProvider
from .sources import AudioSource

_LOGGER = logging.getLogger("improvmix.session")

USER_LAYER_ID = "user"


class ImprovSession:
    """One practice session: the layer states plus the mixer that plays them.

    The session owns ``mixer`` and disposes it in :meth:`aclose`.
    """

    def __init__(
        self,
        mixer: TrackMixer,
        *,
        provider: LayerProvider | None = None,
        genre: Genre = "doo-wop",
        bpm: int | None = None,
    ) -> None:
        self.mixer = mixer
        self.provider = provider
        option = get_genre(genre)
        self._genre: GenreOption = option
        self._bpm = option.default_bpm
        if bpm is not None:
            self.set_bpm(bpm)
        self._layers = create_initial_layers()
        self.is_playing_all = False

    @property
    def genre(self) -> Genre:
        return self._genre.id

    @property
    def bpm(self) -> int:
        return self._bpm

    @property
    def layers(self) -> list[LayerState]:
        return [self.layer(layer_id) for layer_id in list(self._layers)]

    def layer(self, layer_id: str) -> LayerState:
        try:
            state = self._layers[layer_id]
        except KeyError as exc:
            raise InvalidConfigError(f"Unknown layer {layer_id!r}") from exc
        if state.is_playing and not self.mixer.is_playing(layer_id):
            # A one-shot voice ended on its own.
            state = state.model_copy(update={"is_playing": False})
            self._layers[layer_id] = state
        return state

    def active_layers(self) -> list[str]:
        return [layer.id for layer in self._layers.values() if layer.has_audio]

    def set_genre(self, genre: str) -> None:
        self._genre = get_genre(genre)
        self._bpm = self._genre.default_bpm

    def set_bpm(self, bpm: int) -> None:
        if not self._genre.accepts_bpm(bpm):
            low, high = self._genre.bpm_range
            raise InvalidConfigError(
                f"{bpm} BPM is outside the {self._genre.name} range ({low}-{high})"
            )
        self._bpm = bpm

    async def generate_layer(self, layer_id: str) -> bool:
        layer = self.layer(layer_id)
        if layer.type not in GENERATED_LAYER_TYPES:
            _LOGGER.info("Layer %s is recorded, not generated", layer_id)
            return False
        if self.provider is None:
            raise InvalidConfigError("No layer provider configured for this session")

        self._update(layer_id, is_loading=True)
        try:
            source = await self.provider.generate(layer.type, self.genre, self.bpm)
        except ImprovMixError as exc:
            _LOGGER.warning("Generation failed for %s: %s", layer_id, exc, exc_info=True)
            self._update(layer_id, is_loading=False)
            return False
        return await self._load(layer_id, source)

    async def load_recording(self, source: AudioSource) -> bool:
        self._update(USER_LAYER_ID, is_loading=True)
        return await self._load(USER_LAYER_ID, source)

    def set_volume(self, layer_id: str, volume: float) -> None:
        clamped = max(0.0, min(1.0, float(volume)))
        layer = self._update(layer_id, volume=clamped)
        if not layer.is_muted:
            self.mixer.set_track_volume(layer_id, clamped)

    def set_muted(self, layer_id: str, muted: bool) -> None:
        layer = self._update(layer_id, is_muted=muted)
        self.mixer.set_track_muted(layer_id, muted)
        if not muted:
            # The mixer unmutes to full gain; put the layer's own level back.
            self.mixer.set_track_volume(layer_id, layer.volume)

    def toggle_mute(self, layer_id: str) -> bool:
        muted = not self.layer(layer_id).is_muted
        self.set_muted(layer_id, muted)
        return muted

    def play_layer(self, layer_id: str, *, loop: bool = True) -> None:
        layer = self.layer(layer_id)
        if not layer.has_audio:
            return
        self.mixer.play_track(layer_id, loop=loop)
        self._update(layer_id, is_playing=self.mixer.is_playing(layer_id))

    def stop_layer(self, layer_id: str) -> None:
        self.layer(layer_id)
        self.mixer.stop_track(layer_id)
        self._update(layer_id, is_playing=False)

    async def play_all(self, *, loop: bool = True) -> None:
        await self.mixer.initialize()
        self.mixer.play_all_tracks(loop)
        self.is_playing_all = True
        for layer in self.layers:
            self._update(layer.id, is_playing=self.mixer.is_playing(layer.id))

    def stop_all(self) -> None:
        self.mixer.stop_all_tracks()
        self.is_playing_all = False
        for layer in self.layers:
            self._update(layer.id, is_playing=False)

    def reset(self) -> None:
        self.mixer.stop_all_tracks()
        self.mixer.remove_tracks(self._layers)
        self._layers = create_initial_layers()
        self.is_playing_all = False
        _LOGGER.info("Session reset")

    def coach(self, transcription: str, *, rng: random.Random | None = None) -> CoachFeedback:
        """Feedback on the current recording, given what the singer sang."""

        duration = self.layer(USER_LAYER_ID).duration or 0.0
        return generate_coach_feedback(transcription, self.genre, self.bpm, duration, rng=rng)

    async def aclose(self) -> None:
        self.mixer.dispose()
        self.is_playing_all = False

    async def __aenter__(self) -> "ImprovSession":
        await self.mixer.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _load(self, layer_id: str, source: AudioSource) -> bool:
        await self.mixer.initialize()
        buffer = await self.mixer.load_track(layer_id, source)
        if buffer is None:
            self._update(layer_id, is_loading=False)
            return False
        current = self.layer(layer_id)
        self.mixer.set_track_volume(layer_id, current.volume)
        if current.is_muted:
            self.mixer.set_track_muted(layer_id, True)
        self._update(
            layer_id,
            audio_source=None if isinstance(source, bytes) else str(source),
            duration=buffer.duration,
            is_loading=False,
            is_playing=False,
        )
        return True

    def _update(self, layer_id: str, **changes: Any) -> LayerState:
        updated = self.layer(layer_id).model_copy(update=changes)
        self._layers[layer_id] = updated
        return updated
