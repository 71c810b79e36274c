import pytest

from improvmix.config import MixerSettings
from improvmix.errors import InvalidConfigError


def test_defaults() -> None:
    settings = MixerSettings()

    assert settings.sample_rate == 44_100
    assert settings.channels == 2
    assert settings.output == "device"
    assert settings.device is None


def test_from_env_reads_prefixed_values() -> None:
    settings = MixerSettings.from_env(
        {
            "IMPROVMIX_SAMPLE_RATE": "48000",
            "IMPROVMIX_CHANNELS": "1",
            "IMPROVMIX_OUTPUT": "offline",
            "IMPROVMIX_DEVICE": "3",
            "IMPROVMIX_FETCH_TIMEOUT": "2.5",
            "UNRELATED": "ignored",
        }
    )

    assert settings.sample_rate == 48_000
    assert settings.channels == 1
    assert settings.output == "offline"
    assert settings.device == 3
    assert settings.fetch_timeout == 2.5


def test_from_env_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IMPROVMIX_DEVICE", "USB Audio")
    monkeypatch.setenv("IMPROVMIX_BLOCK_SIZE", "512")

    settings = MixerSettings.from_env()

    assert settings.device == "USB Audio"
    assert settings.block_size == 512


@pytest.mark.parametrize(
    "values",
    [
        {"IMPROVMIX_SAMPLE_RATE": "fast"},
        {"IMPROVMIX_CHANNELS": "0"},
        {"IMPROVMIX_OUTPUT": "speakers"},
    ],
)
def test_from_env_rejects_invalid_values(values: dict[str, str]) -> None:
    with pytest.raises(InvalidConfigError):
        MixerSettings.from_env(values)


def test_offline_copy() -> None:
    settings = MixerSettings(channels=1)

    offline = settings.offline()

    assert offline.output == "offline"
    assert offline.channels == 1
    assert settings.output == "device"
