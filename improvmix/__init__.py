from __future__ import annotations

from .audio import SAMPLE_RATE, AudioBuffer, decode_audio, write_wav
from .coach import CoachFeedback, estimate_audio_duration, generate_coach_feedback
from .commands import MixerCommand, apply_command, handle_agent_text, parse_command
from .config import MixerSettings
from .errors import (
    DecodeError,
    ImprovMixError,
    InvalidConfigError,
    InvalidStateError,
    LayerGenerationError,
    PlaybackError,
    SourceError,
)
from .graph import AudioContext, BufferSourceNode, GainNode
from .layers import (
    GENRE_OPTIONS,
    LAYER_CONFIG,
    Genre,
    GenreOption,
    LayerState,
    LayerType,
    build_music_prompt,
    create_initial_layers,
    get_genre,
)
from .logging_utils import configure_logging as _configure_logging
from .mixer import Track, TrackMixer
from .providers.layer_api import HttpLayerProvider, LayerProvider
from .session import ImprovSession

__all__ = [
    "SAMPLE_RATE",
    "AudioBuffer",
    "AudioContext",
    "BufferSourceNode",
    "CoachFeedback",
    "DecodeError",
    "GainNode",
    "GENRE_OPTIONS",
    "Genre",
    "GenreOption",
    "HttpLayerProvider",
    "ImprovMixError",
    "ImprovSession",
    "InvalidConfigError",
    "InvalidStateError",
    "LAYER_CONFIG",
    "LayerGenerationError",
    "LayerProvider",
    "LayerState",
    "LayerType",
    "MixerCommand",
    "MixerSettings",
    "PlaybackError",
    "SourceError",
    "Track",
    "TrackMixer",
    "apply_command",
    "build_music_prompt",
    "create_initial_layers",
    "decode_audio",
    "estimate_audio_duration",
    "generate_coach_feedback",
    "get_genre",
    "handle_agent_text",
    "parse_command",
    "write_wav",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
