from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from sanctuary.core.timeutils import utc_now


class DownloadEvent(SQLModel, table=True):
    """A file download attributed to a browser session. Append-only."""

    __tablename__ = "download_tracking"

    id: Optional[int] = Field(default=None, primary_key=True)
    file_name: str = Field(index=True, max_length=255)
    file_url: str = Field(max_length=1000)
    file_type: Optional[str] = Field(default=None, index=True, max_length=100)
    file_size: Optional[int] = Field(default=None)
    user_agent: Optional[str] = Field(default=None)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    referrer: Optional[str] = Field(default=None)
    # Client-side identifier, not necessarily a users.id
    user_id: Optional[str] = Field(default=None, max_length=255)
    session_id: str = Field(index=True, max_length=255)
    download_time: datetime = Field(default_factory=utc_now, index=True)
