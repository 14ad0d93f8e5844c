from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union


class JobKind(str, enum.Enum):
    STRUCTURE_ANALYSIS = "structure-analysis"
    SONG_GENERATION = "song-generation"
    VOCAL_CLEANUP = "vocal-cleanup"
    MULTITRACK_MIX = "multitrack-mix"
    MASTERING = "mastering"
    FINAL_SONG_MERGE = "final-song-merge"


class JobState(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


@dataclass(frozen=True)
class AudioAssetRef:
    """Immutable pointer to one audio resource. Superseded, never edited."""
    url: str
    duration_s: float | None = None
    mime: str | None = None


# ---- poll observations ----

@dataclass(frozen=True)
class Processing:
    progress: str | None = None


@dataclass(frozen=True)
class Succeeded:
    output: AudioAssetRef
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Failed:
    message: str


JobStatus = Union[Processing, Succeeded, Failed]


def is_terminal(status: JobStatus) -> bool:
    return isinstance(status, (Succeeded, Failed))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """
    One unit of external work.

    Invariant: `output` is set iff state is SUCCEEDED, `error` iff FAILED.
    Only `apply()` moves the state, and a terminal job never changes again.
    """
    kind: JobKind
    inputs: tuple[AudioAssetRef, ...] = ()
    params: dict[str, Any] = field(default_factory=dict)
    job_id: str | None = None
    state: JobState = JobState.PENDING
    poll_context: dict[str, Any] = field(default_factory=dict)
    submit_response: dict[str, Any] = field(default_factory=dict)
    output: AudioAssetRef | None = None
    error: str | None = None
    result_payload: dict[str, Any] = field(default_factory=dict)
    submitted_at: datetime | None = None
    last_polled_at: datetime | None = None
    local_id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def mark_submitted(
        self,
        job_id: str,
        *,
        poll_context: dict[str, Any] | None = None,
        response: dict[str, Any] | None = None,
        at: datetime | None = None,
    ) -> None:
        if self.state is not JobState.PENDING:
            raise RuntimeError(f"job {self.job_id} already submitted")
        self.job_id = job_id
        self.poll_context = dict(poll_context or {})
        self.submit_response = dict(response or {})
        self.submitted_at = at or _utc_now()
        self.state = JobState.PROCESSING

    def apply(self, status: JobStatus, *, at: datetime | None = None) -> None:
        if self.is_terminal:
            raise RuntimeError(f"job {self.job_id} is terminal ({self.state.value})")
        self.last_polled_at = at or _utc_now()
        if isinstance(status, Succeeded):
            self.state = JobState.SUCCEEDED
            self.output = status.output
            self.result_payload = dict(status.extras)
        elif isinstance(status, Failed):
            self.state = JobState.FAILED
            self.error = status.message
        else:
            self.state = JobState.PROCESSING

    def snapshot(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind.value,
            "state": self.state.value,
            "inputs": [a.url for a in self.inputs],
            "output_url": self.output.url if self.output else None,
            "error": self.error,
            "submitted_at": self.submitted_at,
            "last_polled_at": self.last_polled_at,
        }
