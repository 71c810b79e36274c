from __future__ import annotations

from types import MappingProxyType
from typing import Literal, Mapping, get_args

from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidConfigError

LayerType = Literal["bass", "harmony", "rhythm", "user"]
GeneratedLayerType = Literal["bass", "harmony", "rhythm"]
Genre = Literal["doo-wop", "gospel", "barbershop", "lo-fi", "jazz", "pop"]

LAYER_TYPES: tuple[LayerType, ...] = get_args(LayerType)
GENERATED_LAYER_TYPES: tuple[GeneratedLayerType, ...] = get_args(GeneratedLayerType)
GENRES: tuple[Genre, ...] = get_args(Genre)


class GenreOption(BaseModel):
    id: Genre
    name: str
    description: str
    bpm_range: tuple[int, int]
    default_bpm: int

    model_config = ConfigDict(frozen=True, extra="forbid")

    def accepts_bpm(self, bpm: int) -> bool:
        low, high = self.bpm_range
        return low <= bpm <= high


class LayerConfig(BaseModel):
    name: str
    icon: str
    prompt_template: str
    default_volume: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class LayerState(BaseModel):
    """UI-facing state of one layer; replaced (never mutated) on every change."""

    id: str
    type: LayerType
    name: str
    audio_source: str | None = None
    duration: float | None = None
    is_loading: bool = False
    is_playing: bool = False
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    is_muted: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def has_audio(self) -> bool:
        return self.duration is not None


GENRE_OPTIONS: tuple[GenreOption, ...] = (
    GenreOption(
        id="doo-wop",
        name="Doo-Wop",
        description="Classic 50s vocal harmonies",
        bpm_range=(70, 110),
        default_bpm=90,
    ),
    GenreOption(
        id="gospel",
        name="Gospel",
        description="Soulful call-and-response",
        bpm_range=(80, 130),
        default_bpm=100,
    ),
    GenreOption(
        id="barbershop",
        name="Barbershop",
        description="Tight four-part harmony",
        bpm_range=(60, 100),
        default_bpm=80,
    ),
    GenreOption(
        id="lo-fi",
        name="Lo-Fi",
        description="Chill, mellow vibes",
        bpm_range=(70, 95),
        default_bpm=85,
    ),
    GenreOption(
        id="jazz",
        name="Jazz Scat",
        description="Bebop improvisation",
        bpm_range=(100, 160),
        default_bpm=120,
    ),
    GenreOption(
        id="pop",
        name="Pop",
        description="Modern vocal arrangements",
        bpm_range=(90, 130),
        default_bpm=110,
    ),
)

_GENRES_BY_ID: Mapping[str, GenreOption] = MappingProxyType(
    {option.id: option for option in GENRE_OPTIONS}
)

LAYER_CONFIG: Mapping[LayerType, LayerConfig] = MappingProxyType(
    {
        "bass": LayerConfig(
            name="Bass Line",
            icon="🎵",
            prompt_template=(
                "Deep bass vocal line with rich low tones, {genre} style, {bpm} BPM, "
                'humming and "doom" syllables, 8 bars, acapella only'
            ),
            default_volume=0.8,
        ),
        "harmony": LayerConfig(
            name="Harmony",
            icon="🎶",
            prompt_template=(
                "Smooth mid-range harmony vocals, oohs and aahs, {genre} style, {bpm} BPM, "
                "complementary notes, 8 bars, acapella only"
            ),
            default_volume=0.8,
        ),
        "rhythm": LayerConfig(
            name="Rhythm",
            icon="🥁",
            prompt_template=(
                "Vocal percussion and beatbox, {genre} style, {bpm} BPM, "
                "mouth drums and rhythmic sounds, 8 bars, acapella only"
            ),
            default_volume=0.7,
        ),
        # Recorded by the user, never generated.
        "user": LayerConfig(
            name="Your Improv",
            icon="🎙️",
            prompt_template="",
            default_volume=1.0,
        ),
    }
)


def get_genre(genre: str) -> GenreOption:
    option = _GENRES_BY_ID.get(genre)
    if option is None:
        raise InvalidConfigError(f"Unknown genre {genre!r}; expected one of {', '.join(GENRES)}")
    return option


def build_music_prompt(template: str, genre: str, bpm: int) -> str:
    return template.replace("{genre}", genre).replace("{bpm}", str(bpm))


def layer_prompt(layer_type: LayerType, genre: str, bpm: int) -> str:
    if layer_type not in GENERATED_LAYER_TYPES:
        raise InvalidConfigError(f"Layer {layer_type!r} is recorded, not generated")
    return build_music_prompt(LAYER_CONFIG[layer_type].prompt_template, genre, bpm)


def create_initial_layers() -> dict[str, LayerState]:
    return {
        layer_type: LayerState(
            id=layer_type,
            type=layer_type,
            name=LAYER_CONFIG[layer_type].name,
            volume=LAYER_CONFIG[layer_type].default_volume,
        )
        for layer_type in LAYER_TYPES
    }
