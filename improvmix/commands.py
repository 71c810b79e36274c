"""Map free-text voice-agent events onto session operations.

The agent speaks in short imperative phrases ("generate a bass line",
"turn the harmony down to 40%", "play everything"); ``parse_command`` picks
out the one operation a phrase asks for and ``apply_command`` runs it.
"""

from __future__ import annotations

import logging
import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .errors import ImprovMixError
from .layers import Genre, LayerType
from .session import ImprovSession

_LOGGER = logging.getLogger("improvmix.commands")

CommandAction = Literal[
    "play_all",
    "stop_all",
    "play",
    "stop",
    "generate",
    "mute",
    "unmute",
    "volume",
    "adjust_volume",
    "tempo",
    "genre",
    "reset",
]


class MixerCommand(BaseModel):
    action: CommandAction
    layer: LayerType | None = None
    volume: float | None = Field(default=None, ge=0.0, le=1.0)
    delta: float | None = Field(default=None, ge=-1.0, le=1.0)
    bpm: int | None = Field(default=None, gt=0)
    genre: Genre | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


_LAYER_PATTERNS: tuple[tuple[LayerType, re.Pattern[str]], ...] = (
    ("bass", re.compile(r"\bbass\b")),
    ("harmony", re.compile(r"\bharmon(y|ies)\b")),
    ("rhythm", re.compile(r"\b(rhythm|beat ?box|percussion|drums?)\b")),
    ("user", re.compile(r"\b(my (recording|improv|voice|take)|recording|user)\b")),
)
_GENRE_PATTERNS: tuple[tuple[Genre, re.Pattern[str]], ...] = (
    ("doo-wop", re.compile(r"\bdoo[- ]?wop\b")),
    ("gospel", re.compile(r"\bgospel\b")),
    ("barbershop", re.compile(r"\bbarber ?shop\b")),
    ("lo-fi", re.compile(r"\blo[- ]?fi\b")),
    ("jazz", re.compile(r"\bjazz\b")),
    ("pop", re.compile(r"\bpop\b")),
)

VOLUME_STEP = 0.2

_RESET = re.compile(r"\b(reset|start over|clear everything|new session)\b")
_GENERATE = re.compile(r"\b(generate|create|make|compose|add)\b")
_VOLUME = re.compile(r"\b(volume|level|turn|louder|quieter|softer)\b")
_LOUDER = re.compile(r"\b(louder|up|raise|boost)\b")
_QUIETER = re.compile(r"\b(quieter|softer|down|lower)\b")
_NUMBER = re.compile(r"(\d+(?:\.\d+)?)\s*(%|percent)?")
_UNMUTE = re.compile(r"\bunmute\b")
_MUTE = re.compile(r"\b(mute|silence)\b")
_TEMPO = re.compile(r"\b(?:tempo|bpm)\b\D*(\d{2,3})|(\d{2,3})\s*bpm\b")
_GENRE_SWITCH = re.compile(r"\b(switch|change|genre|style|let's do|try)\b")
_STOP = re.compile(r"\b(stop|pause|halt|quiet)\b")
_PLAY = re.compile(r"\b(play|start|resume|loop)\b")


def _find_layer(text: str) -> LayerType | None:
    for layer, pattern in _LAYER_PATTERNS:
        if pattern.search(text):
            return layer
    return None


def _find_genre(text: str) -> Genre | None:
    for genre, pattern in _GENRE_PATTERNS:
        if pattern.search(text):
            return genre
    return None


def _parse_volume(text: str) -> float | None:
    match = _NUMBER.search(text)
    if match is None:
        return None
    value = float(match.group(1))
    # "40" means 40%, "0.4" and "1.5" are levels.
    if match.group(2) or (value >= 2 and value.is_integer()):
        value /= 100.0
    return max(0.0, min(1.0, value))


def _parse_volume_step(text: str) -> float | None:
    if _LOUDER.search(text):
        return VOLUME_STEP
    if _QUIETER.search(text):
        return -VOLUME_STEP
    return None


def parse_command(text: str) -> MixerCommand | None:
    """Return the operation ``text`` asks for, or ``None`` if it asks for none."""

    lowered = " ".join(text.lower().split())
    if not lowered:
        return None
    layer = _find_layer(lowered)

    if _RESET.search(lowered):
        return MixerCommand(action="reset")
    wants_level = layer is not None and _VOLUME.search(lowered) is not None
    if wants_level:
        volume = _parse_volume(lowered)
        if volume is not None:
            return MixerCommand(action="volume", layer=layer, volume=volume)
        step = _parse_volume_step(lowered)
        if step is not None:
            return MixerCommand(action="adjust_volume", layer=layer, delta=step)
    elif _GENERATE.search(lowered) and layer not in (None, "user"):
        return MixerCommand(action="generate", layer=layer)
    if _UNMUTE.search(lowered) and layer is not None:
        return MixerCommand(action="unmute", layer=layer)
    if _MUTE.search(lowered) and layer is not None:
        return MixerCommand(action="mute", layer=layer)

    tempo = _TEMPO.search(lowered)
    if tempo is not None:
        return MixerCommand(action="tempo", bpm=int(tempo.group(1) or tempo.group(2)))
    genre = _find_genre(lowered)
    if genre is not None and _GENRE_SWITCH.search(lowered):
        return MixerCommand(action="genre", genre=genre)

    if _STOP.search(lowered):
        if layer is not None:
            return MixerCommand(action="stop", layer=layer)
        return MixerCommand(action="stop_all")
    if _PLAY.search(lowered):
        if layer is not None and not re.search(r"\b(all|everything)\b", lowered):
            return MixerCommand(action="play", layer=layer)
        return MixerCommand(action="play_all")
    return None


async def apply_command(session: ImprovSession, command: MixerCommand) -> bool:
    """Run ``command`` against ``session``; returns False if it had no effect."""

    try:
        match command:
            case MixerCommand(action="play_all"):
                await session.play_all()
            case MixerCommand(action="stop_all"):
                session.stop_all()
            case MixerCommand(action="play", layer=str() as layer):
                session.play_layer(layer)
                return session.mixer.is_playing(layer)
            case MixerCommand(action="stop", layer=str() as layer):
                session.stop_layer(layer)
            case MixerCommand(action="generate", layer=str() as layer):
                return await session.generate_layer(layer)
            case MixerCommand(action="mute", layer=str() as layer):
                session.set_muted(layer, True)
            case MixerCommand(action="unmute", layer=str() as layer):
                session.set_muted(layer, False)
            case MixerCommand(action="volume", layer=str() as layer, volume=float() as volume):
                session.set_volume(layer, volume)
            case MixerCommand(action="adjust_volume", layer=str() as layer, delta=float() as delta):
                session.set_volume(layer, session.layer(layer).volume + delta)
            case MixerCommand(action="tempo", bpm=int() as bpm):
                session.set_bpm(bpm)
            case MixerCommand(action="genre", genre=str() as genre):
                session.set_genre(genre)
            case MixerCommand(action="reset"):
                session.reset()
            case _:
                _LOGGER.info("Ignoring incomplete command: %s", command)
                return False
    except ImprovMixError as exc:
        _LOGGER.warning("Command %s failed: %s", command.action, exc, exc_info=True)
        return False
    return True


async def handle_agent_text(session: ImprovSession, text: str) -> MixerCommand | None:
    command = parse_command(text)
    if command is None:
        _LOGGER.debug("No mixer command in agent text: %r", text)
        return None
    await apply_command(session, command)
    return command
