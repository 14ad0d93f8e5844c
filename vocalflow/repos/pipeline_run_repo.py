from __future__ import annotations

import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vocalflow.models import PipelineRunRecord
from vocalflow.services.pipeline import PipelineRun


class PipelineRunRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, run: PipelineRun) -> PipelineRunRecord:
        record = await self.get(run.run_id)
        if record is None:
            record = PipelineRunRecord(id=run.run_id, plan=run.plan_name)
            self.db.add(record)

        record.status = run.status.value
        record.message = run.message
        record.detail = run.detail
        record.progress = run.progress
        record.error = run.error_message
        record.failed_stage = run.failed_stage
        record.outputs_json = {name: ref.url for name, ref in run.outputs.items()}
        record.started_at = run.started_at
        record.finished_at = run.finished_at
        await self.db.flush()
        return record

    async def get(self, run_id: uuid.UUID) -> PipelineRunRecord | None:
        res = await self.db.execute(select(PipelineRunRecord).where(PipelineRunRecord.id == run_id))
        return res.scalar_one_or_none()
