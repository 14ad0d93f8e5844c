import uuid
from sqlalchemy import CheckConstraint, DateTime, Index, Text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from vocalflow.models.base import Base

class JobRecord(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('structure-analysis', 'song-generation', 'vocal-cleanup', 'multitrack-mix', 'mastering', 'final-song-merge')",
            name="ck_jobs_kind",
        ),
        CheckConstraint(
            "state IN ('pending', 'processing', 'succeeded', 'failed')",
            name="ck_jobs_state",
        ),
        # output iff succeeded, error iff failed
        CheckConstraint("(state = 'succeeded') = (output_url IS NOT NULL)", name="ck_jobs_output_iff_succeeded"),
        CheckConstraint("(state = 'failed') = (error IS NOT NULL)", name="ck_jobs_error_iff_failed"),
        Index("ix_jobs_run_id", "run_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_job_id: Mapped[str] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(Text, nullable=False)

    run_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=True)
    stage: Mapped[str] = mapped_column(Text, nullable=True)

    params_json: Mapped[dict] = mapped_column(JSONB, nullable=True)
    input_urls: Mapped[list] = mapped_column(JSONB, nullable=True)
    result_json: Mapped[dict] = mapped_column(JSONB, nullable=True)
    output_url: Mapped[str] = mapped_column(Text, nullable=True)
    error: Mapped[str] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=True)
    last_polled_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
