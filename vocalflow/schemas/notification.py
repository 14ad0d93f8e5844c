from pydantic import BaseModel
from typing import Optional

class PlaybackEmailIn(BaseModel):
    email: str
    audio_url: str
    song_name: str
    customer_name: Optional[str] = None

class PlaybackEmailOut(BaseModel):
    success: bool
    message_id: Optional[str] = None
