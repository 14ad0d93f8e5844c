from __future__ import annotations

import abc
import asyncio
import enum
import logging
import math
from typing import Awaitable, Callable

from vocalflow.core import settings
from vocalflow.core.errors import PlaybackError
from vocalflow.playback.media import DecodedMediaElement, MediaElement

ElementFactory = Callable[[], MediaElement]
SleepFn = Callable[[float], Awaitable[None]]


class PlaybackState(str, enum.Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    ERROR = "error"


class PlaybackListener:
    """
    Subscription interface for transport events. Override what you need.

    Per load: on_ready fires once before any on_progress; on_ended fires
    once per finished playthrough; on_error replaces on_ready when the
    load fails.
    """

    def on_ready(self, duration: float) -> None:
        pass

    def on_progress(self, current_time: float, duration: float) -> None:
        pass

    def on_ended(self) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


def format_time(seconds: float) -> str:
    """m:ss, with 0:00 for unknown lengths."""
    if seconds is None or math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return "0:00"
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"


def default_element_factory() -> MediaElement:
    return DecodedMediaElement()


class Transport(abc.ABC):
    """
    Shared transport bookkeeping for the single- and dual-track players:
    state, reported position, listeners and the position ticker.
    """

    def __init__(
        self,
        element_factory: ElementFactory | None = None,
        *,
        tick_s: float | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._element_factory = element_factory or default_element_factory
        self.tick_s = float(tick_s if tick_s is not None else settings.PLAYBACK_TICK_S)
        self._sleep = sleep
        self.state = PlaybackState.EMPTY
        self.current_time = 0.0
        self.duration = 0.0
        self.error: str | None = None
        self._listeners: list[PlaybackListener] = []
        self._ticker: asyncio.Task[None] | None = None
        self._ready_emitted = False
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ---- derived view ----

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def is_loading(self) -> bool:
        return self.state is PlaybackState.LOADING

    @property
    def progress_pct(self) -> float:
        if self.duration <= 0:
            return 0.0
        return min(100.0, self.current_time / self.duration * 100.0)

    @property
    def formatted_current_time(self) -> str:
        return format_time(self.current_time)

    @property
    def formatted_duration(self) -> str:
        return format_time(self.duration)

    # ---- subscriptions ----

    def subscribe(self, listener: PlaybackListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit_ready(self) -> None:
        if self._ready_emitted:
            return
        self._ready_emitted = True
        for listener in list(self._listeners):
            listener.on_ready(self.duration)

    def _emit_progress(self) -> None:
        if not self._ready_emitted:
            return
        for listener in list(self._listeners):
            listener.on_progress(self.current_time, self.duration)

    def _emit_ended(self) -> None:
        for listener in list(self._listeners):
            listener.on_ended()

    def _emit_error(self, message: str) -> None:
        for listener in list(self._listeners):
            listener.on_error(message)

    # ---- lifecycle helpers ----

    def _begin_load(self) -> None:
        self._release()
        self.state = PlaybackState.LOADING
        self.current_time = 0.0
        self.duration = 0.0
        self.error = None
        self._ready_emitted = False

    def _finish_load(self, duration: float) -> None:
        self.duration = float(duration)
        self.state = PlaybackState.READY
        self._emit_ready()

    def _fail_load(self, exc: PlaybackError) -> None:
        self.error = exc.user_message
        self.state = PlaybackState.ERROR
        self.logger.error("Audio load error: %s", exc.user_message)
        self._release()
        self._emit_error(exc.user_message)

    async def toggle(self) -> None:
        if not self.is_playing:
            await self.play()
        else:
            self.pause()

    @abc.abstractmethod
    async def play(self) -> None:
        ...

    @abc.abstractmethod
    def pause(self) -> None:
        ...

    @abc.abstractmethod
    def tick(self) -> None:
        """Advance the reported position from the media clock."""

    def close(self) -> None:
        """Tear down: stop the ticker, release media, drop listeners."""
        self._release()
        self._listeners.clear()
        self.state = PlaybackState.EMPTY
        self.current_time = 0.0

    def _release(self) -> None:
        self._stop_ticker()
        self._release_elements()

    @abc.abstractmethod
    def _release_elements(self) -> None:
        ...

    # ---- ticker ----

    def _start_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            return
        self._ticker = asyncio.get_running_loop().create_task(self._run_ticker())

    def _stop_ticker(self) -> None:
        task = self._ticker
        self._ticker = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _run_ticker(self) -> None:
        while self.state is PlaybackState.PLAYING:
            await self._sleep(self.tick_s)
            if self.state is not PlaybackState.PLAYING:
                break
            self.tick()


class AudioEngine(Transport):
    """
    Single-track transport.

    empty -> loading -> ready -> (playing <-> paused) -> ended,
    with error as a terminal state for a failed load.
    """

    def __init__(
        self,
        element_factory: ElementFactory | None = None,
        *,
        tick_s: float | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        super().__init__(element_factory, tick_s=tick_s, sleep=sleep)
        self._element: MediaElement | None = None
        self.current_url: str | None = None

    async def load(self, url: str) -> None:
        self._begin_load()
        self.current_url = url
        element = self._element_factory()
        self._element = element
        try:
            await element.load(url)
        except PlaybackError as exc:
            if self._element is element:
                self._fail_load(exc)
            return
        if self._element is not element:
            # superseded by another load or close() while fetching
            element.close()
            return
        self.logger.info("Audio loaded: %s (%.2fs)", url, element.duration)
        self._finish_load(element.duration)

    async def play(self) -> None:
        element = self._element
        if element is None or self.state in (PlaybackState.EMPTY, PlaybackState.LOADING, PlaybackState.ERROR):
            return
        if self.is_playing:
            return
        try:
            await element.play()
        except PlaybackError as exc:
            self.logger.error("Error playing audio: %s", exc.user_message)
            self._emit_error(exc.user_message)
            return
        self.state = PlaybackState.PLAYING
        self._start_ticker()

    def pause(self) -> None:
        if self._element is None or not self.is_playing:
            return
        self._element.pause()
        self.current_time = self._element.current_time
        self.state = PlaybackState.PAUSED
        self._stop_ticker()

    def seek(self, seconds: float) -> None:
        if self._element is None or self.state in (PlaybackState.LOADING, PlaybackState.ERROR):
            return
        self._element.current_time = seconds
        self.current_time = self._element.current_time
        if self.state is PlaybackState.ENDED:
            self.state = PlaybackState.PAUSED
        self._emit_progress()

    def stop(self) -> None:
        if self._element is None or self.state in (PlaybackState.LOADING, PlaybackState.ERROR):
            return
        self._element.pause()
        self._element.current_time = 0.0
        self.current_time = 0.0
        self.state = PlaybackState.READY
        self._stop_ticker()

    def set_volume(self, volume: float) -> None:
        if self._element is not None:
            self._element.volume = max(0.0, min(float(volume), 1.0))

    def tick(self) -> None:
        element = self._element
        if element is None or not self.is_playing:
            return
        if element.ended:
            element.pause()
            element.current_time = 0.0
            self.current_time = 0.0
            self.state = PlaybackState.ENDED
            self._stop_ticker()
            self._emit_ended()
            return
        self.current_time = element.current_time
        self._emit_progress()

    def _release_elements(self) -> None:
        element = self._element
        self._element = None
        if element is not None:
            element.pause()
            element.close()
