import uuid
from sqlalchemy import CheckConstraint, DateTime, Integer, Text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from vocalflow.models.base import Base

class PipelineRunRecord(Base):
    """Final state of a finished run; its jobs live in `jobs` under the same run_id."""
    __tablename__ = "pipeline_runs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('idle', 'running', 'succeeded', 'failed', 'aborted')",
            name="ck_pipeline_runs_status",
        ),
        CheckConstraint("progress BETWEEN 0 AND 100", name="ck_pipeline_runs_progress"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    plan: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    detail: Mapped[str] = mapped_column(Text, nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str] = mapped_column(Text, nullable=True)
    failed_stage: Mapped[str] = mapped_column(Text, nullable=True)
    outputs_json: Mapped[dict] = mapped_column(JSONB, nullable=True)     # stage -> output url

    started_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
