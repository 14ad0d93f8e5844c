from pydantic import BaseModel, Field
from typing import List, Optional

class StructureAnalyzeIn(BaseModel):
    audio_url: str = Field(min_length=1)
    duration: float = Field(gt=0)
    title: Optional[str] = None

class StructureTemplateIn(BaseModel):
    duration: float = Field(gt=0)
    bpm: float = Field(default=120.0, gt=0)

class SectionOut(BaseModel):
    type: str              # intro | verse | chorus | bridge | outro
    label: str
    start_time: float
    end_time: float
    duration: float

class StructureOut(BaseModel):
    sections: List[SectionOut]
    recordable: List[SectionOut]
