from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from vocalflow.core import settings
from vocalflow.core.errors import JobTimeoutError, PipelineAbortedError
from vocalflow.jobs.functions import CredentialProvider, FunctionsClient
from vocalflow.jobs.kinds import JobSpec
from vocalflow.jobs.status import (
    Failed,
    Job,
    JobState,
    JobStatus,
    Processing,
    Succeeded,
    is_terminal,
)

SleepFn = Callable[[float], Awaitable[None]]
ProgressFn = Callable[[str], None]
AbortCheck = Callable[[], bool]
JobObserver = Callable[[Job], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExternalJobClient:
    """
    Submit work to a hosted function and observe it until it finishes.

    The client holds no job state of its own: every Job is created by
    `submit` and handed back to the caller, who owns it and passes it to
    `poll` / `poll_until_terminal`. Sleeping and the wall clock are
    injected so tests run without real delays.
    """

    def __init__(
        self,
        functions: FunctionsClient,
        credentials: CredentialProvider,
        *,
        interval_s: float | None = None,
        max_attempts: int | None = None,
        sleep: SleepFn = asyncio.sleep,
        now: Callable[[], datetime] = _utc_now,
        on_job: JobObserver | None = None,
    ) -> None:
        self.functions = functions
        self.credentials = credentials
        self.interval_s = float(interval_s if interval_s is not None else settings.POLL_INTERVAL_S)
        self.max_attempts = int(max_attempts if max_attempts is not None else settings.POLL_MAX_ATTEMPTS)
        self._sleep = sleep
        self._now = now
        self.on_job = on_job
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def submit(
        self,
        spec: JobSpec,
        params: dict[str, Any],
        *,
        on_job: JobObserver | None = None,
    ) -> Job:
        spec.validate(params)
        job = Job(kind=spec.kind, inputs=spec.inputs(params), params=dict(params))

        body = await self.functions.invoke(spec.submit_endpoint, spec.submit_payload(params), self.credentials())

        job.mark_submitted(
            spec.job_id_from(body),
            poll_context=spec.poll_context_from(body, params),
            response=body,
            at=self._now(),
        )
        self.logger.info("Submitted %s job %s", spec.name, job.job_id)

        immediate = spec.immediate_status(body, params)
        if immediate is not None:
            job.apply(immediate, at=self._now())
            self._log_terminal(spec, job)
        self._notify(job, on_job)
        return job

    async def poll(self, spec: JobSpec, job: Job, *, on_job: JobObserver | None = None) -> JobStatus:
        """One status round trip; applies the observation to `job`."""
        if job.is_terminal:
            raise RuntimeError(f"job {job.job_id} is already {job.state.value}")
        if spec.poll_endpoint is None:
            raise RuntimeError(f"{spec.name} has no poll endpoint")

        body = await self.functions.invoke(spec.poll_endpoint, spec.poll_payload(job), self.credentials())
        status = spec.parse_status(body)
        job.apply(status, at=self._now())
        if is_terminal(status):
            self._log_terminal(spec, job)
        self._notify(job, on_job)
        return status

    async def poll_until_terminal(
        self,
        spec: JobSpec,
        job: Job,
        *,
        on_progress: ProgressFn | None = None,
        interval_s: float | None = None,
        max_attempts: int | None = None,
        should_abort: AbortCheck | None = None,
        on_job: JobObserver | None = None,
    ) -> JobStatus:
        """
        Poll on a fixed interval until the job is terminal.

        Makes at most `max_attempts` poll requests. Raises JobTimeoutError
        when they are used up while the job is still processing, and
        PipelineAbortedError when `should_abort` turns true between attempts
        (a poll already in flight completes, its result is discarded).
        A remote failure is returned as `Failed` with the provider's message.
        """
        if job.is_terminal:
            return terminal_status(job)

        interval = float(interval_s if interval_s is not None else self.interval_s)
        attempts = int(max_attempts if max_attempts is not None else self.max_attempts)

        for attempt in range(1, attempts + 1):
            if should_abort is not None and should_abort():
                raise PipelineAbortedError()

            status = await self.poll(spec, job, on_job=on_job)

            if should_abort is not None and should_abort():
                raise PipelineAbortedError()
            if is_terminal(status):
                return status
            if on_progress is not None and isinstance(status, Processing) and status.progress:
                on_progress(status.progress)
            if attempt < attempts:
                await self._sleep(interval)

        self.logger.warning("%s job %s still processing after %d attempts", spec.name, job.job_id, attempts)
        raise JobTimeoutError(attempts=attempts)

    async def run(self, spec: JobSpec, params: dict[str, Any], **poll_kwargs: Any) -> Job:
        """submit + poll_until_terminal."""
        job = await self.submit(spec, params)
        await self.poll_until_terminal(spec, job, **poll_kwargs)
        return job

    def _notify(self, job: Job, extra: JobObserver | None = None) -> None:
        for observer in (self.on_job, extra):
            if observer is not None:
                observer(job)

    def _log_terminal(self, spec: JobSpec, job: Job) -> None:
        if job.state is JobState.SUCCEEDED:
            self.logger.info("%s job %s succeeded: %s", spec.name, job.job_id, job.output.url if job.output else None)
        else:
            self.logger.warning("%s job %s failed: %s", spec.name, job.job_id, job.error)


def terminal_status(job: Job) -> JobStatus:
    if job.state is JobState.SUCCEEDED and job.output is not None:
        return Succeeded(output=job.output, extras=dict(job.result_payload))
    if job.state is JobState.FAILED:
        return Failed(job.error or "Processing failed")
    raise RuntimeError(f"job {job.job_id} is not terminal")
