from vocalflow.playback.dual import DualTrackPlayer
from vocalflow.playback.engine import AudioEngine, PlaybackListener, PlaybackState, format_time
from vocalflow.playback.media import DecodedMediaElement, MediaElement

__all__ = [
    "AudioEngine",
    "DecodedMediaElement",
    "DualTrackPlayer",
    "MediaElement",
    "PlaybackListener",
    "PlaybackState",
    "format_time",
]
