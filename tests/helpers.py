from __future__ import annotations

import base64
import io

import numpy as np
import soundfile as sf

TEST_RATE = 8_000


def encode_wav(samples: np.ndarray, *, sample_rate: int = TEST_RATE) -> bytes:
    handle = io.BytesIO()
    sf.write(handle, samples, sample_rate, format="WAV", subtype="FLOAT")
    return handle.getvalue()


def constant_wav(
    seconds: float = 0.5,
    value: float = 0.5,
    *,
    sample_rate: int = TEST_RATE,
    channels: int = 1,
) -> bytes:
    frames = int(round(seconds * sample_rate))
    samples = np.full((frames, channels), value, dtype=np.float32)
    return encode_wav(samples, sample_rate=sample_rate)


def as_data_url(data: bytes, mime: str = "audio/wav") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
