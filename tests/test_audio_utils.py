import numpy as np

from brutus.utils.audio import (
    decode_wave_bytes,
    extension_for_mime_type,
    is_silent,
    is_wave_payload,
    mime_type_for_extension,
)


def test_wave_payload_inspection(wave_bytes) -> None:
    sample_rate = 16000
    t = np.linspace(0, 1, sample_rate, endpoint=False)
    tone = np.sin(2 * np.pi * 440 * t).astype(np.float32)

    payload = wave_bytes(tone, sample_rate)

    assert is_wave_payload(payload)
    data, sr = decode_wave_bytes(payload)
    assert sr == sample_rate
    assert data.shape == (sample_rate, 1)
    assert not is_silent(data)


def test_silence_detection(wave_bytes) -> None:
    payload = wave_bytes(np.zeros((8000, 2), dtype=np.float32), 8000)

    data, _ = decode_wave_bytes(payload)

    assert data.shape == (8000, 2)
    assert is_silent(data)


def test_non_wave_payload() -> None:
    assert not is_wave_payload(b"\x1aE\xdf\xa3webm-ish")
    assert not is_wave_payload(b"")


def test_mime_type_mapping() -> None:
    assert extension_for_mime_type("audio/webm;codecs=opus") == "webm"
    assert extension_for_mime_type("audio/x-wav") == "wav"
    assert extension_for_mime_type("audio/mpeg") == "mp3"
    assert extension_for_mime_type(None) == "webm"
    assert extension_for_mime_type("application/octet-stream") == "webm"

    assert mime_type_for_extension(".wav") == "audio/wav"
    assert mime_type_for_extension("MP3") == "audio/mpeg"
    assert mime_type_for_extension(".ogg") == "audio/ogg"
    assert mime_type_for_extension(".flac") == "audio/webm"
