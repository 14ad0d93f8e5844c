from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from vocalflow.core.errors import JobFailedError, PipelineAbortedError, VocalflowError
from vocalflow.jobs.client import ExternalJobClient, terminal_status
from vocalflow.jobs.kinds import JobSpec
from vocalflow.jobs.status import AudioAssetRef, Failed, Job

# (run inputs, outputs of the stages finished so far) -> job params
ParamsBuilder = Callable[[dict[str, Any], dict[str, AudioAssetRef]], dict[str, Any]]
RunObserver = Callable[["PipelineRun"], None]
JobObserver = Callable[[Job], None]


@dataclass(frozen=True)
class StageDefinition:
    name: str
    spec: JobSpec
    build_params: ParamsBuilder
    submit_message: str
    poll_message: str
    submit_progress: int
    poll_progress: int
    interval_s: float | None = None
    max_attempts: int | None = None


@dataclass(frozen=True)
class PipelinePlan:
    name: str
    stages: tuple[StageDefinition, ...]
    final_message: str = "Your song is ready!"


class RunStatus(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.ABORTED)


@dataclass
class PipelineRun:
    """
    One invocation of a plan. Holds every job it submitted, in order, and
    the output of each stage that succeeded, so a failed run still shows
    how far it got.
    """
    plan_name: str
    inputs: dict[str, Any] = field(default_factory=dict)
    run_id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: RunStatus = RunStatus.IDLE
    current_stage: str | None = None
    jobs: list[Job] = field(default_factory=list)
    outputs: dict[str, AudioAssetRef] = field(default_factory=dict)
    message: str = ""
    detail: str | None = None
    progress: int = 0
    error: Exception | None = None
    failed_stage: str | None = None
    abort_requested: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def final_output(self) -> AudioAssetRef | None:
        if self.status is not RunStatus.SUCCEEDED or not self.outputs:
            return None
        return list(self.outputs.values())[-1]

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        if isinstance(self.error, VocalflowError):
            return self.error.user_message
        return str(self.error)

    def request_abort(self) -> None:
        self.abort_requested = True

    def raise_for_status(self) -> None:
        if self.error is not None:
            raise self.error

    def snapshot(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "plan": self.plan_name,
            "status": self.status.value,
            "current_stage": self.current_stage,
            "message": self.message,
            "detail": self.detail,
            "progress": self.progress,
            "error": self.error_message,
            "failed_stage": self.failed_stage,
            "outputs": {name: ref.url for name, ref in self.outputs.items()},
            "jobs": [job.snapshot() for job in self.jobs],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineOrchestrator:
    """
    Runs a plan stage by stage. Stage n+1 is submitted only after stage n
    succeeded; the first failure, timeout or abort ends the run. Nothing
    is retried.

    `run()` always hands back the PipelineRun, finished or not; call
    `raise_for_status()` on it to turn a failed run into its exception.
    """

    def __init__(
        self,
        jobs: ExternalJobClient,
        *,
        on_update: RunObserver | None = None,
        on_job: JobObserver | None = None,
    ) -> None:
        self.jobs = jobs
        self.on_update = on_update
        self.on_job = on_job
        self._active: PipelineRun | None = None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def active_run(self) -> PipelineRun | None:
        return self._active

    def abort(self) -> None:
        """
        Ask the active run to stop. Takes effect at the next check between
        polls; an in-flight request completes and its result is dropped.
        """
        if self._active is not None:
            self._active.request_abort()

    async def run(
        self,
        plan: PipelinePlan,
        inputs: dict[str, Any],
        *,
        run: PipelineRun | None = None,
    ) -> PipelineRun:
        if self._active is not None:
            raise RuntimeError("orchestrator is already running a pipeline")

        run = run or PipelineRun(plan_name=plan.name, inputs=dict(inputs))
        self._active = run
        run.status = RunStatus.RUNNING
        run.started_at = _utc_now()
        self.logger.info("Pipeline %s (%s) started", plan.name, run.run_id)
        self._notify(run)

        try:
            for stage in plan.stages:
                await self._run_stage(run, stage, inputs)
            run.current_stage = None
            run.status = RunStatus.SUCCEEDED
            self._report(run, plan.final_message, 100)
            self.logger.info("Pipeline %s (%s) succeeded", plan.name, run.run_id)
        except PipelineAbortedError as exc:
            self._finish_with_error(run, RunStatus.ABORTED, exc)
        except (VocalflowError, ValueError) as exc:
            self._finish_with_error(run, RunStatus.FAILED, exc)
        finally:
            run.finished_at = _utc_now()
            self._active = None
            self._notify(run)
        return run

    async def _run_stage(self, run: PipelineRun, stage: StageDefinition, inputs: dict[str, Any]) -> None:
        if run.abort_requested:
            raise PipelineAbortedError()

        run.current_stage = stage.name
        run.detail = None
        self._report(run, stage.submit_message, stage.submit_progress)

        params = stage.build_params(inputs, dict(run.outputs))
        job = await self.jobs.submit(stage.spec, params, on_job=self.on_job)
        run.jobs.append(job)

        if run.abort_requested:
            raise PipelineAbortedError()

        if job.is_terminal:
            status = terminal_status(job)
        else:
            self._report(run, stage.poll_message, stage.poll_progress)
            status = await self.jobs.poll_until_terminal(
                stage.spec,
                job,
                on_progress=lambda hint: self._set_detail(run, hint),
                interval_s=stage.interval_s,
                max_attempts=stage.max_attempts,
                should_abort=lambda: run.abort_requested,
                on_job=self.on_job,
            )

        if isinstance(status, Failed):
            raise JobFailedError(status.message)

        run.outputs[stage.name] = status.output
        self.logger.info("Stage %s done: %s", stage.name, status.output.url)

    def _finish_with_error(self, run: PipelineRun, status: RunStatus, exc: Exception) -> None:
        run.status = status
        run.error = exc
        run.failed_stage = run.current_stage
        run.message = run.error_message or ""
        if status is RunStatus.ABORTED:
            self.logger.info("Pipeline %s (%s) aborted at %s", run.plan_name, run.run_id, run.failed_stage)
        else:
            self.logger.warning(
                "Pipeline %s (%s) failed at %s: %s",
                run.plan_name,
                run.run_id,
                run.failed_stage,
                run.message,
            )

    def _report(self, run: PipelineRun, message: str, progress: int) -> None:
        run.message = message
        run.progress = max(run.progress, min(100, int(progress)))
        self._notify(run)

    def _set_detail(self, run: PipelineRun, hint: str) -> None:
        run.detail = hint
        self._notify(run)

    def _notify(self, run: PipelineRun) -> None:
        if self.on_update is not None:
            self.on_update(run)
