"""Audio payload utilities."""

from __future__ import annotations

import io
import wave
from typing import Optional, Tuple

import numpy as np

_MIME_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mp3": "mp3",
    "audio/mpeg": "mp3",
    "audio/mp4": "mp4",
    "audio/m4a": "m4a",
    "audio/ogg": "ogg",
    "video/webm": "webm",
    "video/mp4": "mp4",
}


def extension_for_mime_type(mime_type: Optional[str]) -> str:
    """Map an upload mime type to a file extension, defaulting to webm."""

    if not mime_type:
        return "webm"
    return _MIME_EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), "webm")


def mime_type_for_extension(extension: str) -> str:
    """Reverse of :func:`extension_for_mime_type` for local files."""

    suffix = extension.lower().lstrip(".")
    if suffix == "wav":
        return "audio/wav"
    if suffix == "mp3":
        return "audio/mpeg"
    for mime_type, candidate in _MIME_EXTENSIONS.items():
        if candidate == suffix:
            return mime_type
    return "audio/webm"


def is_wave_payload(audio: bytes) -> bool:
    return len(audio) >= 12 and audio[:4] == b"RIFF" and audio[8:12] == b"WAVE"


def decode_wave_bytes(audio: bytes) -> Tuple[np.ndarray, int]:
    """Decode 16-bit PCM WAV bytes into a float array shaped ``(frames, channels)``."""

    with wave.open(io.BytesIO(audio), "rb") as wf:
        frames = wf.readframes(wf.getnframes())
        channels = wf.getnchannels()
        sample_rate = wf.getframerate()
    data = np.frombuffer(frames, dtype=np.int16).astype(np.float32)
    data = data.reshape(-1, max(channels, 1))
    data /= 32767.0
    return data, sample_rate


def rms_level(data: np.ndarray) -> float:
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data, dtype=np.float64))))


def is_silent(data: np.ndarray, threshold: float = 1e-3) -> bool:
    return rms_level(data) < threshold


__all__ = [
    "decode_wave_bytes",
    "extension_for_mime_type",
    "is_silent",
    "is_wave_payload",
    "mime_type_for_extension",
    "rms_level",
]
