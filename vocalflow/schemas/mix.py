from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional

class OfflineMixIn(BaseModel):
    voice_url: str = Field(min_length=1)
    instrumental_url: str = Field(min_length=1)
    voice_gain: Optional[float] = Field(default=None, ge=0)
    instrumental_gain: Optional[float] = Field(default=None, ge=0)

class OfflineMixOut(BaseModel):
    asset_id: str
    audio_url: str
    mime: str
    length_ms: int
    sample_rate: int
    channels: int

class MixdownOut(BaseModel):
    asset_id: str
    audio_url: str
    mime: Optional[str]
    length_ms: Optional[int]
    created_at: datetime
