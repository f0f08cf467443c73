"""
EPG (Electronic Program Guide) data models.
"""
from pydantic import BaseModel
from typing import Optional


class EpgEntry(BaseModel):
    """A single programme from XMLTV data. Times are UTC epoch seconds."""
    channel_id: str
    title: str
    start: int
    end: int
    description: Optional[str] = None
    category: Optional[str] = None
    icon: Optional[str] = None
    catchup_id: str = ""

    @property
    def duration_seconds(self) -> int:
        return self.end - self.start


class EpgTag(BaseModel):
    """A guide entry as referenced by the host when asking for playback."""
    unique_channel_id: int
    start_time: int
    end_time: int
    title: str = ""
    unique_broadcast_id: int = 0
