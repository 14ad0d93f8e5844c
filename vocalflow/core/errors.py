from __future__ import annotations


class VocalflowError(Exception):
    """
    Base error. `user_message` is what a client may show as-is:
    fixed text for local conditions, verbatim provider text for remote ones.
    """
    default_message = "Something went wrong while processing your audio"

    def __init__(self, message: str | None = None):
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


# ---- invocation channel ----

class AuthenticationError(VocalflowError):
    default_message = "Please sign in to continue"


class TransportError(VocalflowError):
    default_message = "Could not reach the processing service"


class RemoteRejectionError(VocalflowError):
    default_message = "The processing service rejected the request"

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


# ---- jobs / pipelines ----

class JobTimeoutError(VocalflowError, TimeoutError):
    default_message = "Processing took too long, please try again"

    def __init__(self, message: str | None = None, *, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class JobFailedError(VocalflowError):
    default_message = "Processing failed"


class PipelineAbortedError(VocalflowError):
    default_message = "Processing was cancelled"


class EmptyResultError(VocalflowError):
    default_message = "We could not detect the song structure"


# ---- offline mixer ----

class MixerError(VocalflowError):
    default_message = "Mixing the tracks failed"


class FetchError(MixerError):
    default_message = "Could not download one of the tracks"


class DecodeError(MixerError):
    default_message = "One of the tracks is not valid audio"


class RenderError(MixerError):
    default_message = "Rendering the mix failed"


# ---- playback ----

class PlaybackError(VocalflowError):
    default_message = "Could not load the audio"
