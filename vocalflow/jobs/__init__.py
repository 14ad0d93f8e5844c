from vocalflow.jobs.client import ExternalJobClient
from vocalflow.jobs.functions import FunctionsClient, MediaFetcher, static_credentials
from vocalflow.jobs.status import (
    AudioAssetRef,
    Failed,
    Job,
    JobKind,
    JobState,
    JobStatus,
    Processing,
    Succeeded,
)

__all__ = [
    "ExternalJobClient",
    "FunctionsClient",
    "MediaFetcher",
    "static_credentials",
    "AudioAssetRef",
    "Failed",
    "Job",
    "JobKind",
    "JobState",
    "JobStatus",
    "Processing",
    "Succeeded",
]
