"""Shared pytest fixtures and fakes."""

from __future__ import annotations

from collections import deque
from typing import Any, Callable

import numpy as np
import pytest

from vocalflow.core.errors import PlaybackError, RemoteRejectionError
from vocalflow.renderers.wav import encode_wav

SAMPLE_RATE = 8_000


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def tone_wav(seconds: float, *, sample_rate: int = SAMPLE_RATE, channels: int = 1, amplitude: float = 0.5) -> bytes:
    frames = int(round(seconds * sample_rate))
    t = np.arange(frames, dtype=np.float32) / sample_rate
    mono = amplitude * np.sin(2 * np.pi * 220.0 * t)
    return encode_wav(np.repeat(mono[:, None], channels, axis=1), sample_rate)


def constant_wav(seconds: float, value: float, *, sample_rate: int = SAMPLE_RATE, channels: int = 1) -> bytes:
    frames = int(round(seconds * sample_rate))
    return encode_wav(np.full((frames, channels), value, dtype=np.float32), sample_rate)


class FakeFunctions:
    """
    Stand-in for FunctionsClient. Each endpoint gets a queue of response
    bodies (or exceptions); every call is recorded in order.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any], str | None]] = []
        self._responses: dict[str, deque[Any]] = {}

    def script(self, endpoint: str, *responses: Any) -> None:
        self._responses.setdefault(endpoint, deque()).extend(responses)

    def endpoints(self) -> list[str]:
        return [name for name, _, _ in self.calls]

    async def invoke(self, function_name: str, payload: dict[str, Any], token: str | None) -> dict[str, Any]:
        self.calls.append((function_name, payload, token))
        queue = self._responses.get(function_name)
        if not queue:
            raise AssertionError(f"unexpected call to {function_name}")
        response = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(payload)
        return dict(response)


class FakeSleep:
    def __init__(self, on_sleep: Callable[[int], None] | None = None) -> None:
        self.calls: list[float] = []
        self._on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._on_sleep is not None:
            self._on_sleep(len(self.calls))


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    def __init__(self, blobs: dict[str, bytes]) -> None:
        self.blobs = blobs
        self.fetched: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.fetched.append(url)
        if url not in self.blobs:
            raise RemoteRejectionError("Download failed: 404", status_code=404)
        return self.blobs[url]


class FakeMediaElement:
    """Media element whose playhead follows a shared FakeClock."""

    def __init__(self, clock: FakeClock, durations: dict[str, float], *, fail_urls: set[str] | None = None) -> None:
        self._clock = clock
        self._durations = durations
        self._fail_urls = fail_urls or set()
        self.volume = 1.0
        self.url: str | None = None
        self.duration = 0.0
        self._offset = 0.0
        self._started_at: float | None = None
        self.closed = False
        self.play_calls = 0

    @property
    def current_time(self) -> float:
        if self._started_at is None:
            return self._offset
        return min(self.duration, self._offset + self._clock() - self._started_at)

    @current_time.setter
    def current_time(self, value: float) -> None:
        self._offset = max(0.0, min(float(value), self.duration))
        if self._started_at is not None:
            self._started_at = self._clock()

    @property
    def ended(self) -> bool:
        return self.duration > 0 and self.current_time >= self.duration

    @property
    def paused(self) -> bool:
        return self._started_at is None

    async def load(self, url: str) -> None:
        self.url = url
        if url in self._fail_urls:
            raise PlaybackError("Download failed: 404")
        self.duration = self._durations[url]

    async def play(self) -> None:
        self.play_calls += 1
        if self._started_at is None:
            self._started_at = self._clock()

    def pause(self) -> None:
        if self._started_at is not None:
            self._offset = self.current_time
            self._started_at = None

    def close(self) -> None:
        self.closed = True


class MediaFactory:
    def __init__(self, clock: FakeClock, durations: dict[str, float], *, fail_urls: set[str] | None = None) -> None:
        self.clock = clock
        self.durations = durations
        self.fail_urls = fail_urls
        self.created: list[FakeMediaElement] = []

    def __call__(self) -> FakeMediaElement:
        element = FakeMediaElement(self.clock, self.durations, fail_urls=self.fail_urls)
        self.created.append(element)
        return element
