from __future__ import annotations

import asyncio

from vocalflow.core import settings
from vocalflow.core.errors import PlaybackError
from vocalflow.playback.engine import ElementFactory, PlaybackState, SleepFn, Transport
from vocalflow.playback.media import MediaElement


def _clamp_volume(volume: float) -> float:
    return max(0.0, min(float(volume), 1.0))


class DualTrackPlayer(Transport):
    """
    Vocals + instrumental played as one transport.

    The instrumental is the timing master: its duration and position are
    what the player reports, and its end is the only end. The vocal track
    is snapped to the instrumental position right before every play()
    instead of being resynced while running, since seeking a playing
    track is audible.
    """

    def __init__(
        self,
        element_factory: ElementFactory | None = None,
        *,
        vocals_volume: float | None = None,
        instrumental_volume: float | None = None,
        tick_s: float | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        super().__init__(element_factory, tick_s=tick_s, sleep=sleep)
        self.vocals_volume = _clamp_volume(
            settings.DUAL_VOCALS_VOLUME if vocals_volume is None else vocals_volume
        )
        self.instrumental_volume = _clamp_volume(
            settings.DUAL_INSTRUMENTAL_VOLUME if instrumental_volume is None else instrumental_volume
        )
        self.vocals: MediaElement | None = None
        self.instrumental: MediaElement | None = None

    async def load(self, vocals_url: str, instrumental_url: str) -> None:
        self._begin_load()
        vocals = self._element_factory()
        instrumental = self._element_factory()
        vocals.volume = self.vocals_volume
        instrumental.volume = self.instrumental_volume
        self.vocals, self.instrumental = vocals, instrumental

        self.logger.info("Loading dual audio: vocals=%s instrumental=%s", vocals_url, instrumental_url)
        results = await asyncio.gather(
            vocals.load(vocals_url),
            instrumental.load(instrumental_url),
            return_exceptions=True,
        )
        if self.instrumental is not instrumental:
            vocals.close()
            instrumental.close()
            return

        for result in results:
            if isinstance(result, PlaybackError):
                self._fail_load(result)
                return
            if isinstance(result, BaseException):
                self._release()
                self.state = PlaybackState.EMPTY
                raise result

        self._finish_load(instrumental.duration)

    @property
    def _ready(self) -> bool:
        return (
            self.vocals is not None
            and self.instrumental is not None
            and self.state not in (PlaybackState.EMPTY, PlaybackState.LOADING, PlaybackState.ERROR)
        )

    async def play(self) -> None:
        if not self._ready or self.is_playing:
            return
        vocals, instrumental = self.vocals, self.instrumental
        assert vocals is not None and instrumental is not None

        vocals.current_time = instrumental.current_time
        try:
            await asyncio.gather(vocals.play(), instrumental.play())
        except PlaybackError as exc:
            # never leave one track running without the other
            vocals.pause()
            instrumental.pause()
            self.logger.error("Error playing audio: %s", exc.user_message)
            self._emit_error(exc.user_message)
            return
        self.state = PlaybackState.PLAYING
        self._start_ticker()

    def pause(self) -> None:
        if self.vocals is not None:
            self.vocals.pause()
        if self.instrumental is not None:
            self.instrumental.pause()
            self.current_time = self.instrumental.current_time
        if self.is_playing:
            self.state = PlaybackState.PAUSED
        self._stop_ticker()

    def seek(self, seconds: float) -> None:
        """Move both tracks."""
        if not self._ready:
            return
        assert self.vocals is not None and self.instrumental is not None
        self.vocals.current_time = seconds
        self.instrumental.current_time = seconds
        self.current_time = self.instrumental.current_time
        if self.state is PlaybackState.ENDED:
            self.state = PlaybackState.PAUSED
        self._emit_progress()

    def seek_instrumental(self, seconds: float) -> None:
        """Move only the instrumental; the vocals catch up on the next play()."""
        if self.instrumental is None:
            return
        self.instrumental.current_time = seconds
        self.current_time = self.instrumental.current_time

    def set_vocals_volume(self, volume: float) -> None:
        self.vocals_volume = _clamp_volume(volume)
        if self.vocals is not None:
            self.vocals.volume = self.vocals_volume

    def set_instrumental_volume(self, volume: float) -> None:
        self.instrumental_volume = _clamp_volume(volume)
        if self.instrumental is not None:
            self.instrumental.volume = self.instrumental_volume

    def tick(self) -> None:
        instrumental = self.instrumental
        if instrumental is None or not self.is_playing:
            return
        if instrumental.ended:
            self._finish_playthrough()
            return
        self.current_time = instrumental.current_time
        self._emit_progress()

    def _finish_playthrough(self) -> None:
        assert self.vocals is not None and self.instrumental is not None
        self.vocals.pause()
        self.instrumental.pause()
        self.vocals.current_time = 0.0
        self.instrumental.current_time = 0.0
        self.current_time = 0.0
        self.state = PlaybackState.ENDED
        self._stop_ticker()
        self._emit_ended()

    def _release_elements(self) -> None:
        for element in (self.vocals, self.instrumental):
            if element is not None:
                element.pause()
                element.close()
        self.vocals = None
        self.instrumental = None
