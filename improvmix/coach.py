"""Rule-based coaching feedback for a recorded improv take."""

from __future__ import annotations

import logging
import random
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from .layers import Genre, get_genre

_LOGGER = logging.getLogger("improvmix.coach")

MAX_TIPS = 4
TRANSCRIPTION_PREVIEW_CHARS = 100
# Compressed voice recordings run at roughly 16 kbit/s.
RECORDING_BYTES_PER_SECOND = 2_000

GENRE_OPENERS: Mapping[Genre, str] = MappingProxyType(
    {
        "doo-wop": (
            "Great choice going with doo-wop! The classic vocal harmonies really shine when you"
        ),
        "gospel": "Gospel is all about soul and emotion! Your improv shows",
        "barbershop": "Barbershop is technically demanding! Your attempt at tight harmonies",
        "lo-fi": "Lo-fi vibes are all about that chill, relaxed feel. Your vocal adds",
        "jazz": "Jazz scat singing is pure freedom! Your improvisational choices",
        "pop": "Pop vocals need to be catchy and memorable! Your performance",
    }
)

GENERAL_TIPS: tuple[str, ...] = (
    "Listen to the backing tracks and find the spaces between phrases to add your voice",
    "Match the energy of the backing - if it's building, build with it!",
    "Don't be afraid to make mistakes - that's how you discover new sounds",
    "Try call-and-response: listen, pause, then respond with your voice",
)


class CoachFeedback(BaseModel):
    feedback: str
    tips: tuple[str, ...] = Field(default=(), max_length=MAX_TIPS)
    transcription: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")


def estimate_audio_duration(byte_count: int) -> float:
    """Rough duration in seconds of a compressed recording of ``byte_count`` bytes."""

    return max(0, byte_count) / RECORDING_BYTES_PER_SECOND


def generate_coach_feedback(
    transcription: str,
    genre: str,
    bpm: int,
    audio_duration: float,
    *,
    rng: random.Random | None = None,
) -> CoachFeedback:
    """Build feedback from what was sung, the genre, the tempo and the take length.

    A general tip is drawn from :data:`GENERAL_TIPS` when fewer than three
    tips apply; pass ``rng`` to make that draw reproducible.
    """

    option = get_genre(genre)
    opener = GENRE_OPENERS.get(option.id, "Your vocal improv")

    has_words = len(transcription) > 20
    has_variety = len(set(transcription.lower().split(" "))) > 5
    tips: list[str] = []

    if has_words and has_variety:
        feedback = (
            f"{opener} demonstrate good variety and creativity. You're exploring different "
            "syllables and sounds which is exactly what improv is about!"
        )
        tips.append("Try varying your pitch more to create melodic interest")
    elif has_words:
        feedback = f"{opener} shows commitment to the style. Keep experimenting with different sounds!"
        tips.append("Experiment with more varied syllables and rhythmic patterns")
    else:
        feedback = (
            f"{opener} is a good starting point. Don't be afraid to be bold with your "
            "vocal choices!"
        )
        tips.append('Try humming or using simple syllables like "doo", "bah", "dah"')

    if audio_duration <= 5:
        tips.append("Try recording for longer to develop your musical ideas fully")

    if bpm > 120:
        tips.append(f"At {bpm} BPM, try breaking your phrases into shorter bursts for rhythmic precision")
    elif bpm < 80:
        tips.append(f"At {bpm} BPM, you have room to add ornaments and vocal embellishments")

    if len(tips) < 3:
        tips.append((rng or random).choice(GENERAL_TIPS))

    _LOGGER.debug(
        "Coached %s take at %d BPM (%.1fs, %d tip(s))",
        option.id,
        bpm,
        audio_duration,
        len(tips),
    )
    return CoachFeedback(
        feedback=feedback,
        tips=tuple(tips[:MAX_TIPS]),
        transcription=transcription[:TRANSCRIPTION_PREVIEW_CHARS],
    )
