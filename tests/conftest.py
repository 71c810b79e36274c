from __future__ import annotations

from collections.abc import Iterator

import pytest

from improvmix.config import MixerSettings
from improvmix.mixer import TrackMixer

from helpers import TEST_RATE


@pytest.fixture
def offline_settings() -> MixerSettings:
    return MixerSettings(
        sample_rate=TEST_RATE,
        channels=1,
        block_size=256,
        output="offline",
    )


@pytest.fixture
def mixer(offline_settings: MixerSettings) -> Iterator[TrackMixer]:
    instance = TrackMixer(offline_settings)
    yield instance
    instance.dispose()
