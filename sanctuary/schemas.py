from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts camelCase JSON from the browser and snake_case from Python callers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============== INGESTION ==============

class PageViewPayload(CamelModel):
    session_id: str = Field(..., min_length=1, max_length=255)
    page_path: str = Field(..., min_length=1, max_length=500)
    page_title: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    screen_resolution: Optional[str] = None
    time_on_page: int = Field(default=0, ge=0)


class SessionPayload(CamelModel):
    session_id: str = Field(..., min_length=1, max_length=255)
    user_id: Optional[int] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None
    landing_page: Optional[str] = None
    screen_resolution: Optional[str] = None


class EndSessionPayload(CamelModel):
    session_id: str = Field(..., min_length=1, max_length=255)
    exit_page: Optional[str] = None


class DownloadPayload(CamelModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=1000)
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None
    user_id: Optional[str] = None
    session_id: str = Field(..., min_length=1, max_length=255)
    # Only honoured by batch sync; single-event tracking stamps server time
    download_time: Optional[datetime] = None


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


# ============== DASHBOARD ==============

class TotalStats(BaseModel):
    total_sessions: int = 0
    total_visitors: int = 0
    total_page_views: int = 0


class TodayStats(BaseModel):
    today_sessions: int = 0
    today_visitors: int = 0
    today_page_views: int = 0


class TopPage(BaseModel):
    page_path: str
    page_title: Optional[str] = None
    total_views: int


class DeviceCount(BaseModel):
    device_type: Optional[str] = None
    count: int


class DailyStat(BaseModel):
    date: str  # YYYY-MM-DD
    sessions: int
    visitors: int
    page_views: int


class DashboardStats(CamelModel):
    total: TotalStats
    today: TodayStats
    active_users: int
    top_pages: List[TopPage]
    device_stats: List[DeviceCount]
    daily_stats: List[DailyStat]


class SessionRow(BaseModel):
    id: str
    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    screen_resolution: Optional[str] = None
    referrer: Optional[str] = None
    landing_page: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    page_count: int = 0
    is_bounce: bool = False
    exit_page: Optional[str] = None
    page_views: int = 0
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class SessionPage(CamelModel):
    sessions: List[SessionRow]
    total: int
    page: int
    limit: int
    total_pages: int


class ActiveUserRow(BaseModel):
    session_id: str
    page_path: Optional[str] = None
    ip_address: Optional[str] = None
    last_activity: datetime


# ============== DOWNLOADS ==============

class DownloadOut(BaseModel):
    id: int
    file_name: str
    file_url: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None
    user_id: Optional[str] = None
    session_id: str
    download_time: datetime


class FileCount(BaseModel):
    file_name: str
    count: int


class DownloadAnalytics(CamelModel):
    total_downloads: int
    downloads_by_file: dict[str, int]
    downloads_by_date: dict[str, int]
    downloads_by_type: dict[str, int]
    recent_downloads: List[DownloadOut]


class DownloadStats(CamelModel):
    today: int
    this_week: int
    this_month: int
    top_files: List[FileCount]


# ============== ENVELOPES ==============

class DashboardStatsResponse(BaseModel):
    success: bool = True
    data: DashboardStats


class SessionPageResponse(BaseModel):
    success: bool = True
    data: SessionPage


class ActiveUsersResponse(BaseModel):
    success: bool = True
    data: List[ActiveUserRow]


class DownloadAnalyticsResponse(BaseModel):
    success: bool = True
    data: DownloadAnalytics


class RecentDownloadsResponse(BaseModel):
    success: bool = True
    data: List[DownloadOut]


class DownloadStatsResponse(BaseModel):
    success: bool = True
    data: DownloadStats
