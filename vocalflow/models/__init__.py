from vocalflow.models.base import Base
from vocalflow.models.audio_asset import AudioAsset
from vocalflow.models.job import JobRecord
from vocalflow.models.pipeline_run import PipelineRunRecord

__all__ = [
    "Base",
    "AudioAsset",
    "JobRecord",
    "PipelineRunRecord",
]
