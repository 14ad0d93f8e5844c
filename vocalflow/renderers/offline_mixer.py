from __future__ import annotations

import asyncio
import importlib.util
import io
import logging
import time
from dataclasses import dataclass
from typing import cast

import librosa
import numpy as np
import soundfile as sf

from vocalflow.core import settings
from vocalflow.core.errors import (
    DecodeError,
    FetchError,
    MixerError,
    RemoteRejectionError,
    RenderError,
    TransportError,
)
from vocalflow.jobs.functions import MediaFetcher
from vocalflow.renderers.wav import WAV_MIME, encode_wav


@dataclass(frozen=True)
class MixResult:
    audio_bytes: bytes
    mime: str
    sample_rate: int
    channels: int
    frames: int

    @property
    def duration_s(self) -> float:
        return self.frames / float(self.sample_rate)

    @property
    def length_ms(self) -> int:
        return int(round(self.duration_s * 1000))


class OfflineMixer:
    """
    Two-source offline mixdown: voice + instrumental, each with its own
    gain, summed on a timeline as long as the longer input and rendered
    to 16-bit PCM WAV. The shorter input is padded with silence.
    """

    def __init__(
        self,
        fetcher: MediaFetcher | None = None,
        *,
        sample_rate: int | None = None,
        channels: int | None = None,
        resample_res_type: str | None = None,
    ) -> None:
        self.fetcher = fetcher or MediaFetcher()
        self.sample_rate = int(sample_rate or settings.MIX_SAMPLE_RATE)
        self.channels = int(channels or settings.MIX_CHANNELS)
        if self.channels not in (1, 2):
            raise ValueError("channels must be 1 or 2")
        self.resample_res_type = resample_res_type or (
            "soxr_hq" if importlib.util.find_spec("soxr") is not None else "kaiser_fast"
        )
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def mix(
        self,
        voice_url: str,
        instrumental_url: str,
        voice_gain: float | None = None,
        instrumental_gain: float | None = None,
    ) -> bytes:
        result = await self.render(voice_url, instrumental_url, voice_gain, instrumental_gain)
        return result.audio_bytes

    async def render(
        self,
        voice_url: str,
        instrumental_url: str,
        voice_gain: float | None = None,
        instrumental_gain: float | None = None,
    ) -> MixResult:
        vg = float(settings.DEFAULT_VOICE_GAIN if voice_gain is None else voice_gain)
        ig = float(settings.DEFAULT_INSTRUMENTAL_GAIN if instrumental_gain is None else instrumental_gain)

        voice_bytes, instrumental_bytes = await asyncio.gather(
            self._fetch(voice_url),
            self._fetch(instrumental_url),
        )
        return await asyncio.to_thread(self.render_sync, voice_bytes, instrumental_bytes, vg, ig)

    def render_sync(
        self,
        voice_bytes: bytes,
        instrumental_bytes: bytes,
        voice_gain: float,
        instrumental_gain: float,
    ) -> MixResult:
        total_start = time.perf_counter()
        voice = self.decode(voice_bytes, "voice")
        instrumental = self.decode(instrumental_bytes, "instrumental")

        try:
            frames = max(len(voice), len(instrumental))
            out = np.zeros((frames, self.channels), dtype=np.float32)
            out[: len(voice)] += voice * np.float32(voice_gain)
            out[: len(instrumental)] += instrumental * np.float32(instrumental_gain)
            audio_bytes = encode_wav(out, self.sample_rate)
        except MixerError:
            raise
        except Exception as exc:
            self.logger.exception("Render failed")
            raise RenderError() from exc

        result = MixResult(
            audio_bytes=audio_bytes,
            mime=WAV_MIME,
            sample_rate=self.sample_rate,
            channels=self.channels,
            frames=frames,
        )
        self.logger.info(
            "Rendered mix: %.2fs @ %dHz x%d (voice=%.2f, instrumental=%.2f) in %.3fs",
            result.duration_s,
            self.sample_rate,
            self.channels,
            voice_gain,
            instrumental_gain,
            time.perf_counter() - total_start,
        )
        return result

    def decode(self, data: bytes, role: str) -> np.ndarray:
        """Bytes -> float32 (frames, channels) at the mixer's rate."""
        try:
            read_result = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        except (RuntimeError, ValueError, TypeError) as exc:
            self.logger.warning("Could not decode %s track: %s", role, exc)
            raise DecodeError() from exc

        y = cast(np.ndarray, read_result[0])
        sr = int(read_result[1])
        if y.ndim != 2 or y.shape[0] == 0:
            raise DecodeError()

        y = self._fit_channels(y)
        if sr != self.sample_rate:
            y = self._resample(y, orig_sr=sr)
        return y.astype(np.float32, copy=False)

    async def _fetch(self, url: str) -> bytes:
        try:
            return await self.fetcher.fetch(url)
        except RemoteRejectionError as exc:
            raise FetchError(exc.user_message) from exc
        except TransportError as exc:
            raise FetchError() from exc

    def _fit_channels(self, y: np.ndarray) -> np.ndarray:
        if self.channels == 1:
            return y.mean(axis=1, keepdims=True)
        if y.shape[1] == 1:
            return np.repeat(y, 2, axis=1)
        return y[:, :2]

    def _resample(self, y: np.ndarray, *, orig_sr: int) -> np.ndarray:
        expected_n = int(round(len(y) * self.sample_rate / float(orig_sr)))
        try:
            # channels-first so all channels resample in one call and stay aligned
            out = librosa.resample(
                np.ascontiguousarray(y.T),
                orig_sr=orig_sr,
                target_sr=self.sample_rate,
                res_type=self.resample_res_type,
            ).T
        except Exception as exc:
            self.logger.exception("Resample %d -> %d failed", orig_sr, self.sample_rate)
            raise RenderError() from exc

        if len(out) < expected_n:
            out = np.vstack([out, np.zeros((expected_n - len(out), out.shape[1]), dtype=out.dtype)])
        elif len(out) > expected_n:
            out = out[:expected_n]
        return out
