from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vocalflow.core import settings
from vocalflow.models import JobRecord, PipelineRunRecord
from vocalflow.repos.job_repo import JobRepo
from vocalflow.repos.pipeline_run_repo import PipelineRunRepo
from vocalflow.services.pipeline import PipelineOrchestrator, PipelinePlan, PipelineRun

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineRegistry:
    """
    In-process table of pipeline runs started over HTTP.

    Each run executes as its own asyncio task; once it finishes, the run
    and its jobs are written through the repos when a session factory is
    configured. A finished run stays in memory for `retention_s`, and no
    more than `max_runs` finished runs are kept (oldest go first). After
    that `load` reads it back from the database.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        retention_s: float | None = None,
        max_runs: int | None = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._session_factory = session_factory
        self.retention = timedelta(
            seconds=float(retention_s if retention_s is not None else settings.PIPELINE_RETENTION_S)
        )
        self.max_runs = int(max_runs if max_runs is not None else settings.PIPELINE_MAX_RUNS)
        self._now = now
        self._runs: dict[uuid.UUID, PipelineRun] = {}
        self._tasks: dict[uuid.UUID, asyncio.Task[None]] = {}

    def start(self, orchestrator: PipelineOrchestrator, plan: PipelinePlan, inputs: dict[str, Any]) -> PipelineRun:
        run = PipelineRun(plan_name=plan.name, inputs=dict(inputs))
        self._runs[run.run_id] = run
        task = asyncio.create_task(self._execute(orchestrator, plan, run))
        self._tasks[run.run_id] = task
        task.add_done_callback(lambda _t, run_id=run.run_id: self._tasks.pop(run_id, None))
        self._evict()
        return run

    def get(self, run_id: uuid.UUID) -> PipelineRun:
        self._evict()
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError("pipeline run not found")
        return run

    async def load(self, run_id: uuid.UUID) -> dict[str, Any]:
        """Snapshot of a run, from memory or, once evicted, from the database."""
        try:
            return self.get(run_id).snapshot()
        except KeyError:
            if self._session_factory is None:
                raise

        async with self._session_factory() as db:
            record = await PipelineRunRepo(db).get(run_id)
            if record is None:
                raise KeyError("pipeline run not found")
            jobs = await JobRepo(db).list_for_run(run_id)
        return _archived_snapshot(record, jobs)

    def abort(self, run_id: uuid.UUID) -> PipelineRun:
        run = self.get(run_id)
        if not run.status.is_terminal:
            run.request_abort()
            logger.info("Abort requested for run %s", run_id)
        return run

    async def wait(self, run_id: uuid.UUID) -> PipelineRun:
        run = self.get(run_id)
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        return run

    async def shutdown(self) -> None:
        for run in self._runs.values():
            if not run.status.is_terminal:
                run.request_abort()
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _evict(self) -> None:
        # a run is evictable once its task (including persistence) is done
        finished = [
            run
            for run in self._runs.values()
            if run.status.is_terminal and run.finished_at is not None and run.run_id not in self._tasks
        ]
        if not finished:
            return

        now = self._now()
        evicted = {run.run_id for run in finished if now - run.finished_at >= self.retention}
        overflow = len(finished) - len(evicted) - self.max_runs
        if overflow > 0:
            kept = sorted((run for run in finished if run.run_id not in evicted), key=lambda run: run.finished_at)
            evicted.update(run.run_id for run in kept[:overflow])

        for run_id in evicted:
            del self._runs[run_id]
        if evicted:
            logger.debug("Evicted %d finished runs", len(evicted))

    async def _execute(self, orchestrator: PipelineOrchestrator, plan: PipelinePlan, run: PipelineRun) -> None:
        await orchestrator.run(plan, run.inputs, run=run)
        if self._session_factory is not None:
            await self._persist(plan, run)

    async def _persist(self, plan: PipelinePlan, run: PipelineRun) -> None:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await PipelineRunRepo(db).save(run)
                    repo = JobRepo(db)
                    for stage, job in zip(plan.stages, run.jobs):
                        await repo.save(job, run_id=run.run_id, stage=stage.name)
        except (SQLAlchemyError, OSError):
            logger.exception("Could not persist run %s", run.run_id)


def _archived_snapshot(record: PipelineRunRecord, jobs: list[JobRecord]) -> dict[str, Any]:
    return {
        "run_id": str(record.id),
        "plan": record.plan,
        "status": record.status,
        "current_stage": None,
        "message": record.message,
        "detail": record.detail,
        "progress": record.progress,
        "error": record.error,
        "failed_stage": record.failed_stage,
        "outputs": dict(record.outputs_json or {}),
        "jobs": [
            {
                "job_id": job.provider_job_id,
                "kind": job.kind,
                "state": job.state,
                "inputs": list(job.input_urls or []),
                "output_url": job.output_url,
                "error": job.error,
                "submitted_at": job.submitted_at,
                "last_polled_at": job.last_polled_at,
            }
            for job in jobs
        ],
        "started_at": record.started_at,
        "finished_at": record.finished_at,
    }
