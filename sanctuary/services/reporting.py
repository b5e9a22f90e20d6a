"""
Read-only dashboard queries over sessions, page views and presence.

"Visitors" are distinct IP addresses within a window. That conflates people
behind one NAT and splits one person across networks; it is the metric the
dashboard has always shown and is kept as-is.
"""

import math
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import distinct
from sqlmodel import Session, func, select

from sanctuary.core.config import settings
from sanctuary.core.timeutils import as_date_str, day_bounds, utc_now
from sanctuary.models.analytics import ActiveUser, PageStat, PageView, VisitorSession
from sanctuary.models.user import User
from sanctuary.schemas import (
    ActiveUserRow,
    DailyStat,
    DashboardStats,
    DeviceCount,
    SessionPage,
    SessionRow,
    TodayStats,
    TopPage,
    TotalStats,
)

TOP_PAGES_LIMIT = 10
DEFAULT_DETAIL_WINDOW = timedelta(days=30)


def _traffic_totals(db: Session, start: datetime, end: Optional[datetime] = None) -> Tuple[int, int, int]:
    """(sessions, visitors, page views) for sessions started in [start, end)."""
    stmt = (
        select(
            func.count(distinct(VisitorSession.id)),
            func.count(distinct(VisitorSession.ip_address)),
            func.count(PageView.id),
        )
        .select_from(VisitorSession)
        .outerjoin(PageView, PageView.session_id == VisitorSession.id)
        .where(VisitorSession.start_time >= start)
    )
    if end is not None:
        stmt = stmt.where(VisitorSession.start_time < end)

    sessions, visitors, page_views = db.exec(stmt).one()
    return sessions or 0, visitors or 0, page_views or 0


def count_active_users(db: Session, now: Optional[datetime] = None, window_minutes: Optional[int] = None) -> int:
    cutoff = _active_cutoff(now, window_minutes)
    return db.exec(select(func.count(ActiveUser.session_id)).where(ActiveUser.last_activity >= cutoff)).one()


def _active_cutoff(now: Optional[datetime], window_minutes: Optional[int]) -> datetime:
    window = window_minutes if window_minutes is not None else settings.ACTIVE_USER_WINDOW_MINUTES
    return (now or utc_now()) - timedelta(minutes=window)


def get_dashboard_stats(db: Session, days: int = 30, now: Optional[datetime] = None) -> DashboardStats:
    """
    Summary for the admin dashboard.

    Args:
        days: Lookback window; sessions started on or after now - days count
        now: Reference time (naive UTC), defaults to the current time
    """
    now = now or utc_now()
    window_start = now - timedelta(days=days)

    total_sessions, total_visitors, total_page_views = _traffic_totals(db, window_start)

    today_start, tomorrow_start = day_bounds(now)
    today_sessions, today_visitors, today_page_views = _traffic_totals(db, today_start, tomorrow_start)

    top_pages = db.exec(
        select(PageStat).order_by(PageStat.total_views.desc(), PageStat.page_path).limit(TOP_PAGES_LIMIT)
    ).all()

    device_rows = db.exec(
        select(VisitorSession.device_type, func.count(VisitorSession.id))
        .where(VisitorSession.start_time >= window_start)
        .group_by(VisitorSession.device_type)
        .order_by(func.count(VisitorSession.id).desc())
    ).all()

    day = func.date(VisitorSession.start_time)
    daily_rows = db.exec(
        select(
            day.label("day"),
            func.count(distinct(VisitorSession.id)),
            func.count(distinct(VisitorSession.ip_address)),
            func.count(PageView.id),
        )
        .select_from(VisitorSession)
        .outerjoin(PageView, PageView.session_id == VisitorSession.id)
        .where(VisitorSession.start_time >= window_start)
        .group_by(day)
        .order_by(day)
    ).all()

    return DashboardStats(
        total=TotalStats(
            total_sessions=total_sessions,
            total_visitors=total_visitors,
            total_page_views=total_page_views,
        ),
        today=TodayStats(
            today_sessions=today_sessions,
            today_visitors=today_visitors,
            today_page_views=today_page_views,
        ),
        active_users=count_active_users(db, now),
        top_pages=[
            TopPage(page_path=stat.page_path, page_title=stat.page_title, total_views=stat.total_views)
            for stat in top_pages
        ],
        device_stats=[DeviceCount(device_type=device_type, count=count) for device_type, count in device_rows],
        daily_stats=[
            DailyStat(date=as_date_str(row_day), sessions=sessions, visitors=visitors, page_views=page_views)
            for row_day, sessions, visitors, page_views in daily_rows
        ],
    )


def get_session_page(
    db: Session,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 50,
) -> SessionPage:
    """Sessions started within [start_date, end_date], newest first, with page-view counts and user details."""
    end_date = end_date or utc_now()
    start_date = start_date or end_date - DEFAULT_DETAIL_WINDOW
    offset = (page - 1) * limit

    view_counts = (
        select(PageView.session_id, func.count(PageView.id).label("page_views"))
        .group_by(PageView.session_id)
        .subquery()
    )
    in_range = VisitorSession.start_time.between(start_date, end_date)

    rows = db.exec(
        select(
            VisitorSession,
            func.coalesce(view_counts.c.page_views, 0),
            User.first_name,
            User.last_name,
            User.email,
        )
        .outerjoin(view_counts, view_counts.c.session_id == VisitorSession.id)
        .outerjoin(User, User.id == VisitorSession.user_id)
        .where(in_range)
        .order_by(VisitorSession.start_time.desc(), VisitorSession.id)
        .offset(offset)
        .limit(limit)
    ).all()

    total = db.exec(select(func.count(VisitorSession.id)).where(in_range)).one()

    sessions: List[SessionRow] = [
        SessionRow(
            **visitor.model_dump(exclude={"created_at", "updated_at"}),
            page_views=page_views,
            first_name=first_name,
            last_name=last_name,
            email=email,
        )
        for visitor, page_views, first_name, last_name, email in rows
    ]

    return SessionPage(
        sessions=sessions,
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if limit else 0,
    )


def get_active_users(db: Session, now: Optional[datetime] = None, window_minutes: Optional[int] = None) -> List[ActiveUserRow]:
    """Presence rows inside the staleness window, most recently active first."""
    cutoff = _active_cutoff(now, window_minutes)
    rows = db.exec(
        select(ActiveUser).where(ActiveUser.last_activity >= cutoff).order_by(ActiveUser.last_activity.desc())
    ).all()
    return [
        ActiveUserRow(
            session_id=row.session_id,
            page_path=row.page_path,
            ip_address=row.ip_address,
            last_activity=row.last_activity,
        )
        for row in rows
    ]
