"""
Analytics models for sessions, page views and live presence.
"""

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from sanctuary.core.timeutils import utc_now

UNKNOWN = "Unknown"


class VisitorSession(SQLModel, table=True):
    """One browser visit, keyed by the client-generated session id."""

    __tablename__ = "sessions"

    id: str = Field(primary_key=True, max_length=255)
    user_id: Optional[int] = Field(default=None, index=True)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None)
    country: str = Field(default=UNKNOWN, max_length=100)
    city: str = Field(default=UNKNOWN, max_length=100)
    device_type: str = Field(default="desktop", max_length=20)  # desktop, mobile, tablet
    browser: str = Field(default=UNKNOWN, max_length=100)
    os: str = Field(default=UNKNOWN, max_length=100)
    screen_resolution: Optional[str] = Field(default=None, max_length=20)
    referrer: Optional[str] = Field(default=None)
    landing_page: Optional[str] = Field(default=None, max_length=500)
    start_time: datetime = Field(default_factory=utc_now, index=True)

    # Set when the session is closed
    end_time: Optional[datetime] = Field(default=None)
    duration: Optional[int] = Field(default=None)  # seconds
    page_count: int = Field(default=0)
    is_bounce: bool = Field(default=False)
    exit_page: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class PageView(SQLModel, table=True):
    """A single visit to a path within a session. Append-only."""

    __tablename__ = "page_views"

    id: Optional[int] = Field(default=None, primary_key=True)
    # Not a foreign key: page views may arrive before their session row
    session_id: str = Field(index=True, max_length=255)
    page_path: str = Field(index=True, max_length=500)
    page_title: Optional[str] = Field(default=None, max_length=500)
    referrer: Optional[str] = Field(default=None)
    user_agent: Optional[str] = Field(default=None)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    country: str = Field(default=UNKNOWN, max_length=100)
    city: str = Field(default=UNKNOWN, max_length=100)
    device_type: str = Field(default="desktop", max_length=20)
    browser: str = Field(default=UNKNOWN, max_length=100)
    os: str = Field(default=UNKNOWN, max_length=100)
    screen_resolution: Optional[str] = Field(default=None, max_length=20)
    time_on_page: int = Field(default=0)  # seconds, reported for the page being left
    created_at: datetime = Field(default_factory=utc_now, index=True)


class PageStat(SQLModel, table=True):
    """Cumulative per-path counters used for top-page ranking."""

    __tablename__ = "page_stats"

    id: Optional[int] = Field(default=None, primary_key=True)
    page_path: str = Field(unique=True, index=True, max_length=500)
    page_title: Optional[str] = Field(default=None, max_length=500)
    total_views: int = Field(default=0)
    # Incremented alongside total_views; no per-visitor dedupe exists
    unique_views: int = Field(default=0)
    updated_at: datetime = Field(default_factory=utc_now)


class ActiveUser(SQLModel, table=True):
    """Presence row for a session seen within the staleness window."""

    __tablename__ = "active_users"

    session_id: str = Field(primary_key=True, max_length=255)
    page_path: Optional[str] = Field(default=None, max_length=500)
    user_agent: Optional[str] = Field(default=None)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    last_activity: datetime = Field(default_factory=utc_now, index=True)
