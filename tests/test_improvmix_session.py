import random

import pytest

from improvmix.config import MixerSettings
from improvmix.errors import InvalidConfigError, LayerGenerationError
from improvmix.layers import LayerType
from improvmix.mixer import TrackMixer
from improvmix.session import ImprovSession

from helpers import TEST_RATE, as_data_url, constant_wav


class _StubProvider:
    def __init__(self, *, fail: set[str] | None = None) -> None:
        self.fail = fail or set()
        self.requests: list[tuple[str, str, int]] = []

    async def generate(self, layer_type: LayerType, genre: str, bpm: int) -> str:
        self.requests.append((layer_type, genre, bpm))
        if layer_type in self.fail:
            raise LayerGenerationError(f"{layer_type} failed")
        return as_data_url(constant_wav(1.0, 0.5))


def _session(settings: MixerSettings, provider: _StubProvider | None = None) -> ImprovSession:
    return ImprovSession(TrackMixer(settings), provider=provider or _StubProvider())


@pytest.mark.asyncio
async def test_generate_layer_loads_at_layer_volume(offline_settings: MixerSettings) -> None:
    provider = _StubProvider()
    async with ImprovSession(TrackMixer(offline_settings), provider=provider) as session:
        assert await session.generate_layer("bass")

        bass = session.layer("bass")
        assert provider.requests == [("bass", "doo-wop", 90)]
        assert bass.has_audio
        assert bass.duration == pytest.approx(1.0)
        assert not bass.is_loading
        assert bass.audio_source is not None
        assert session.mixer.get_track_volume("bass") == pytest.approx(0.8)
        assert session.active_layers() == ["bass"]


@pytest.mark.asyncio
async def test_generate_failure_leaves_layer_empty(offline_settings: MixerSettings) -> None:
    session = _session(offline_settings, _StubProvider(fail={"harmony"}))

    assert not await session.generate_layer("harmony")

    harmony = session.layer("harmony")
    assert not harmony.has_audio
    assert not harmony.is_loading
    assert session.mixer.get_track("harmony") is None
    await session.aclose()


@pytest.mark.asyncio
async def test_user_layer_is_never_generated(offline_settings: MixerSettings) -> None:
    provider = _StubProvider()
    session = _session(offline_settings, provider)

    assert not await session.generate_layer("user")
    assert provider.requests == []
    await session.aclose()


@pytest.mark.asyncio
async def test_generate_without_provider(offline_settings: MixerSettings) -> None:
    session = ImprovSession(TrackMixer(offline_settings))

    with pytest.raises(InvalidConfigError):
        await session.generate_layer("bass")
    await session.aclose()


@pytest.mark.asyncio
async def test_load_recording_fills_user_layer(offline_settings: MixerSettings) -> None:
    session = _session(offline_settings)

    assert await session.load_recording(constant_wav(2.0, 0.5))
    assert not await session.load_recording(b"not audio")

    user = session.layer("user")
    assert user.duration == pytest.approx(2.0)
    assert user.audio_source is None
    assert not user.is_loading
    await session.aclose()


def test_genre_and_tempo(offline_settings: MixerSettings) -> None:
    session = _session(offline_settings)
    assert session.bpm == 90

    session.set_bpm(100)
    session.set_genre("jazz")
    assert session.genre == "jazz"
    assert session.bpm == 120

    with pytest.raises(InvalidConfigError, match="outside"):
        session.set_bpm(90)
    with pytest.raises(InvalidConfigError):
        session.set_genre("polka")
    with pytest.raises(InvalidConfigError):
        ImprovSession(TrackMixer(offline_settings), genre="lo-fi", bpm=140)


@pytest.mark.asyncio
async def test_toggle_mute_restores_layer_volume(offline_settings: MixerSettings) -> None:
    session = _session(offline_settings)
    await session.generate_layer("rhythm")

    session.set_volume("rhythm", 0.4)
    assert session.toggle_mute("rhythm") is True
    assert session.mixer.get_track_volume("rhythm") == 0.0

    session.set_volume("rhythm", 0.6)
    assert session.mixer.get_track_volume("rhythm") == 0.0

    assert session.toggle_mute("rhythm") is False
    assert session.mixer.get_track_volume("rhythm") == pytest.approx(0.6)
    await session.aclose()


@pytest.mark.asyncio
async def test_play_and_stop_all(offline_settings: MixerSettings) -> None:
    session = _session(offline_settings)
    await session.generate_layer("bass")
    await session.generate_layer("harmony")

    await session.play_all()

    playing = {layer.id: layer.is_playing for layer in session.layers}
    assert playing == {"bass": True, "harmony": True, "rhythm": False, "user": False}
    assert session.is_playing_all

    session.stop_all()

    assert not any(layer.is_playing for layer in session.layers)
    assert not session.mixer.is_playing("bass")
    await session.aclose()


@pytest.mark.asyncio
async def test_reset_evicts_tracks(offline_settings: MixerSettings) -> None:
    session = _session(offline_settings)
    await session.generate_layer("bass")
    session.set_volume("bass", 0.2)
    await session.play_all()

    session.reset()

    assert session.mixer.track_ids == []
    assert session.layer("bass").volume == 0.8
    assert session.active_layers() == []
    assert not session.is_playing_all
    await session.aclose()


@pytest.mark.asyncio
async def test_context_manager_disposes_mixer(offline_settings: MixerSettings) -> None:
    mixer = TrackMixer(offline_settings)

    async with ImprovSession(mixer) as session:
        context = mixer.context
        assert context is not None
        await session.load_recording(constant_wav(0.5))

    assert context.state == "closed"
    assert mixer.context is None


def test_unknown_layer(offline_settings: MixerSettings) -> None:
    session = _session(offline_settings)

    with pytest.raises(InvalidConfigError):
        session.set_volume("lead", 0.5)


@pytest.mark.asyncio
async def test_one_shot_layer_stops_playing_when_it_ends(offline_settings: MixerSettings) -> None:
    async with _session(offline_settings) as session:
        await session.load_recording(constant_wav(0.5, 0.5))
        context = session.mixer.context
        assert context is not None

        session.play_layer("user", loop=False)
        assert session.layer("user").is_playing

        context.render(TEST_RATE // 2 + 1)

        assert not session.mixer.is_playing("user")
        assert not session.layer("user").is_playing
        assert not any(layer.is_playing for layer in session.layers)


@pytest.mark.asyncio
async def test_coach_uses_recording_length(offline_settings: MixerSettings) -> None:
    session = _session(offline_settings)
    session.set_genre("jazz")

    short = session.coach("scat doo bee bop ba dee dah")
    assert short.feedback.startswith("Jazz scat singing")
    assert "Try recording for longer to develop your musical ideas fully" in short.tips

    await session.load_recording(constant_wav(6.0, 0.1))
    full = session.coach("scat doo bee bop ba dee dah", rng=random.Random(1))
    assert "Try recording for longer to develop your musical ideas fully" not in full.tips
    await session.aclose()
