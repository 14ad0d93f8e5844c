from datetime import datetime
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

class ProfessionalMixIn(BaseModel):
    vocal_url: str = Field(min_length=1)
    instrumental_url: str = Field(min_length=1)
    project_name: Optional[str] = None

class SongGenerationIn(BaseModel):
    audio_urls: List[str] = Field(min_length=1)
    title: str = Field(min_length=1)
    style: Optional[str] = None
    prompt: Optional[str] = None
    negative_tags: Optional[str] = None
    vocal_gender: Optional[str] = None
    project_name: Optional[str] = None

class AddInstrumentalIn(BaseModel):
    upload_url: str = Field(min_length=1)
    title: str = Field(min_length=1)
    tags: Optional[str] = None
    negative_tags: Optional[str] = None
    vocal_gender: Optional[str] = None

class FinalSongIn(BaseModel):
    section_urls: List[str] = Field(min_length=1)   # in song order
    title: str = Field(min_length=1)
    tags: str = Field(min_length=1)
    project_name: Optional[str] = None

class RunStartedOut(BaseModel):
    run_id: str

class JobOut(BaseModel):
    job_id: Optional[str]
    kind: str
    state: str
    inputs: List[str]
    output_url: Optional[str]
    error: Optional[str]
    submitted_at: Optional[datetime]
    last_polled_at: Optional[datetime]

class PipelineRunOut(BaseModel):
    run_id: str
    plan: str
    status: str            # idle | running | succeeded | failed | aborted
    current_stage: Optional[str]
    message: str
    detail: Optional[str]
    progress: int
    error: Optional[str]
    failed_stage: Optional[str]
    outputs: Dict[str, str]
    jobs: List[JobOut]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
