from __future__ import annotations

import asyncio
import io
import logging
import time
from typing import Callable, Protocol

import soundfile as sf

from vocalflow.core.errors import PlaybackError, RemoteRejectionError, TransportError
from vocalflow.jobs.functions import MediaFetcher

logger = logging.getLogger(__name__)


class MediaElement(Protocol):
    """One decodable audio resource with its own transport position."""

    volume: float

    @property
    def duration(self) -> float: ...

    @property
    def current_time(self) -> float: ...

    @current_time.setter
    def current_time(self, value: float) -> None: ...

    @property
    def ended(self) -> bool: ...

    @property
    def paused(self) -> bool: ...

    async def load(self, url: str) -> None: ...

    async def play(self) -> None: ...

    def pause(self) -> None: ...

    def close(self) -> None: ...


class DecodedMediaElement:
    """
    Headless media element: downloads the resource, reads its length with
    soundfile and derives the playhead from a monotonic clock while playing.
    Nothing is sent to an audio device.
    """

    def __init__(
        self,
        fetcher: MediaFetcher | None = None,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._fetcher = fetcher or MediaFetcher()
        self._clock: Callable[[], float] = clock or time.monotonic
        self.volume = 1.0
        self.url: str | None = None
        self._duration = 0.0
        self._loaded = False
        self._offset = 0.0
        self._started_at: float | None = None
        self._ended = False

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def current_time(self) -> float:
        if self._started_at is None:
            return self._offset
        position = self._offset + max(0.0, self._clock() - self._started_at)
        if position >= self._duration:
            # reached the end while playing: freeze at the end and flag it
            self._offset = self._duration
            self._started_at = None
            self._ended = True
            return self._duration
        return position

    @current_time.setter
    def current_time(self, value: float) -> None:
        position = max(0.0, min(float(value), self._duration))
        self._offset = position
        self._ended = False
        if self._started_at is not None:
            self._started_at = self._clock()

    @property
    def ended(self) -> bool:
        # reading current_time settles the end-of-media transition
        _ = self.current_time
        return self._ended

    @property
    def paused(self) -> bool:
        return self._started_at is None

    async def load(self, url: str) -> None:
        self.url = url
        try:
            data = await self._fetcher.fetch(url)
        except (TransportError, RemoteRejectionError) as exc:
            logger.error("Audio load error for %s: %s", url, exc.user_message)
            raise PlaybackError(exc.user_message) from exc
        self._duration = await asyncio.to_thread(_probe_duration, data, url)
        self._offset = 0.0
        self._started_at = None
        self._ended = False
        self._loaded = True

    async def play(self) -> None:
        if not self._loaded:
            raise PlaybackError("No audio loaded")
        if self._started_at is not None:
            return
        if self._ended or self._offset >= self._duration:
            self._offset = 0.0
            self._ended = False
        self._started_at = self._clock()

    def pause(self) -> None:
        if self._started_at is None:
            return
        self._offset = self.current_time
        self._started_at = None

    def close(self) -> None:
        self.pause()
        self._loaded = False


def _probe_duration(data: bytes, url: str) -> float:
    try:
        with sf.SoundFile(io.BytesIO(data)) as f:
            frames = int(f.frames)
            sr = int(f.samplerate)
    except (RuntimeError, ValueError, TypeError) as exc:
        logger.error("Audio load error for %s: %s", url, exc)
        raise PlaybackError() from exc
    if sr <= 0 or frames <= 0:
        raise PlaybackError()
    return frames / float(sr)
