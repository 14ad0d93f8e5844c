from __future__ import annotations

import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vocalflow.jobs.status import Job
from vocalflow.models import JobRecord


class JobRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, job: Job, *, run_id: uuid.UUID | None = None, stage: str | None = None) -> JobRecord:
        """Insert or refresh the row for `job` (keyed by its local id)."""
        record = await self.get(job.local_id)
        if record is None:
            record = JobRecord(id=job.local_id, kind=job.kind.value, run_id=run_id, stage=stage)
            self.db.add(record)

        record.provider_job_id = job.job_id
        record.state = job.state.value
        record.params_json = {k: v for k, v in job.params.items() if v is not None}
        record.input_urls = [ref.url for ref in job.inputs]
        record.result_json = dict(job.result_payload) or None
        record.output_url = job.output.url if job.output else None
        record.error = job.error
        record.submitted_at = job.submitted_at
        record.last_polled_at = job.last_polled_at
        await self.db.flush()
        return record

    async def get(self, record_id: uuid.UUID) -> JobRecord | None:
        res = await self.db.execute(select(JobRecord).where(JobRecord.id == record_id))
        return res.scalar_one_or_none()

    async def list_for_run(self, run_id: uuid.UUID) -> list[JobRecord]:
        res = await self.db.execute(
            select(JobRecord)
            .where(JobRecord.run_id == run_id)
            .order_by(JobRecord.submitted_at, JobRecord.created_at)
        )
        return list(res.scalars().all())
