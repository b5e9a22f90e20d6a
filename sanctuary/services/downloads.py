"""
Download-event log: single and batch ingestion plus dashboard rollups.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlmodel import Session, func, select

from sanctuary.core.logging_config import get_logger
from sanctuary.core.timeutils import as_date_str, day_bounds, to_naive_utc, utc_now
from sanctuary.models.download import DownloadEvent
from sanctuary.schemas import DownloadAnalytics, DownloadOut, DownloadPayload, DownloadStats, FileCount

logger = get_logger(__name__)

TOP_FILES_ANALYTICS = 20
TOP_FILES_STATS = 5
RECENT_DEFAULT = 10
DATE_WINDOW = timedelta(days=30)


def _to_event(payload: DownloadPayload, fallback_ip: Optional[str], download_time: datetime) -> DownloadEvent:
    return DownloadEvent(
        file_name=payload.file_name,
        file_url=payload.file_url,
        file_type=payload.file_type,
        file_size=payload.file_size,
        user_agent=payload.user_agent,
        ip_address=payload.ip_address or fallback_ip,
        referrer=payload.referrer,
        user_id=payload.user_id,
        session_id=payload.session_id,
        download_time=download_time,
    )


def track_download(db: Session, payload: DownloadPayload, fallback_ip: Optional[str] = None) -> DownloadEvent:
    """Append one download stamped with server time."""
    event = _to_event(payload, fallback_ip, utc_now())
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Download tracked", file_name=event.file_name, session_id=event.session_id)
    return event


def sync_downloads(db: Session, payloads: Iterable[DownloadPayload], fallback_ip: Optional[str] = None) -> int:
    """
    Append a batch of client-buffered downloads in one transaction.

    Each keeps its client-side download time when provided.
    """
    now = utc_now()
    events = [
        _to_event(payload, fallback_ip, to_naive_utc(payload.download_time) if payload.download_time else now)
        for payload in payloads
    ]
    if not events:
        return 0

    db.add_all(events)
    db.commit()
    logger.info("Downloads synced", count=len(events))
    return len(events)


def _count_since(db: Session, since: datetime, until: Optional[datetime] = None) -> int:
    stmt = select(func.count(DownloadEvent.id)).where(DownloadEvent.download_time >= since)
    if until is not None:
        stmt = stmt.where(DownloadEvent.download_time < until)
    return db.exec(stmt).one()


def _top_files(db: Session, limit: int) -> List[FileCount]:
    count = func.count(DownloadEvent.id)
    rows = db.exec(
        select(DownloadEvent.file_name, count)
        .group_by(DownloadEvent.file_name)
        .order_by(count.desc(), DownloadEvent.file_name)
        .limit(limit)
    ).all()
    return [FileCount(file_name=file_name, count=n) for file_name, n in rows]


def get_recent_downloads(db: Session, limit: int = RECENT_DEFAULT) -> List[DownloadOut]:
    rows = db.exec(
        select(DownloadEvent).order_by(DownloadEvent.download_time.desc(), DownloadEvent.id.desc()).limit(limit)
    ).all()
    return [DownloadOut(**row.model_dump()) for row in rows]


def get_download_analytics(db: Session, now: Optional[datetime] = None) -> DownloadAnalytics:
    now = now or utc_now()
    total = db.exec(select(func.count(DownloadEvent.id))).one()

    day = func.date(DownloadEvent.download_time)
    date_rows = db.exec(
        select(day.label("day"), func.count(DownloadEvent.id))
        .where(DownloadEvent.download_time >= now - DATE_WINDOW)
        .group_by(day)
        .order_by(day.desc())
    ).all()

    type_count = func.count(DownloadEvent.id)
    type_rows = db.exec(
        select(DownloadEvent.file_type, type_count)
        .group_by(DownloadEvent.file_type)
        .order_by(type_count.desc())
    ).all()

    by_type: dict[str, int] = {}
    for file_type, n in type_rows:
        key = file_type or "Unknown"
        by_type[key] = by_type.get(key, 0) + n

    return DownloadAnalytics(
        total_downloads=total,
        downloads_by_file={row.file_name: row.count for row in _top_files(db, TOP_FILES_ANALYTICS)},
        downloads_by_date={as_date_str(row_day): n for row_day, n in date_rows},
        downloads_by_type=by_type,
        recent_downloads=get_recent_downloads(db, RECENT_DEFAULT),
    )


def get_download_stats(db: Session, now: Optional[datetime] = None) -> DownloadStats:
    now = now or utc_now()
    today_start, tomorrow_start = day_bounds(now)
    return DownloadStats(
        today=_count_since(db, today_start, tomorrow_start),
        this_week=_count_since(db, now - timedelta(days=7)),
        this_month=_count_since(db, now - timedelta(days=30)),
        top_files=_top_files(db, TOP_FILES_STATS),
    )
