import uuid
from sqlalchemy import CheckConstraint, DateTime, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from vocalflow.models.base import Base

class AudioAsset(Base):
    """Immutable: a new version of a recording or output is a new row."""
    __tablename__ = "audio_assets"
    __table_args__ = (
        CheckConstraint("kind IN ('recording', 'job_output', 'mix')", name="ck_audio_assets_kind"),
        CheckConstraint("duration_ms IS NULL OR duration_ms >= 0", name="ck_audio_assets_duration_nonneg"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(Text, nullable=False)          # recording | job_output | mix
    storage_url: Mapped[str] = mapped_column(Text, nullable=False)
    mime: Mapped[str] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=True)
    created_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
