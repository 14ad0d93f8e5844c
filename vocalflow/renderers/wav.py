from __future__ import annotations

import io
import wave

import numpy as np

SAMPWIDTH = 2
WAV_MIME = "audio/wav"


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """
    Clamp to [-1, 1] then scale asymmetrically: negatives by 0x8000,
    positives by 0x7FFF, so both rails land exactly on the int16 limits.
    """
    x = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    x = np.nan_to_num(x, nan=0.0)
    scaled = np.where(x < 0, x * 0x8000, x * 0x7FFF)
    return np.round(scaled).astype(np.int16)


def pcm16_to_float(pcm: np.ndarray) -> np.ndarray:
    p = np.asarray(pcm, dtype=np.int16).astype(np.float32)
    return np.where(p < 0, p / 0x8000, p / 0x7FFF).astype(np.float32)


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """
    Encode float samples shaped (frames, channels) as 16-bit PCM WAV.

    Layout: RIFF <size> WAVE, a 16-byte `fmt ` PCM block, then `data`
    with interleaved little-endian frames.
    """
    audio = np.asarray(samples, dtype=np.float32)
    if audio.ndim == 1:
        audio = audio[:, None]
    if audio.ndim != 2 or audio.shape[1] < 1:
        raise ValueError(f"expected (frames, channels) samples, got shape {audio.shape}")

    pcm = float_to_pcm16(audio)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(int(audio.shape[1]))
        wf.setsampwidth(SAMPWIDTH)
        wf.setframerate(int(sample_rate))
        wf.writeframes(pcm.astype("<i2").tobytes())
    return buf.getvalue()


def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
    """Inverse of encode_wav: (float32 samples shaped (frames, channels), sample_rate)."""
    with wave.open(io.BytesIO(data), "rb") as wf:
        if wf.getsampwidth() != SAMPWIDTH:
            raise ValueError(f"unsupported sample width: {wf.getsampwidth()}")
        channels = wf.getnchannels()
        sample_rate = wf.getframerate()
        raw = wf.readframes(wf.getnframes())
    pcm = np.frombuffer(raw, dtype="<i2").reshape(-1, channels)
    return pcm16_to_float(pcm), sample_rate
