"""
Session tracking write path.

Handles the three ingestion events (page view, session start/update, session
end) plus the presence bookkeeping they share:

- Page stats and active users are upserted with INSERT ... ON CONFLICT so
  concurrent requests for the same path/session never lose an increment or
  leave duplicate presence rows.
- Session creation treats a duplicate primary key as "already exists": two
  concurrent first contacts for one session id both succeed, one row results.
- Session close is a conditional UPDATE on ``end_time IS NULL``, so repeated or
  racing end-session calls keep the first computed duration and bounce flag.
- Stale presence rows are swept inside every presence upsert.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, func, select

from sanctuary.core.config import settings
from sanctuary.core.errors import capture_exception
from sanctuary.core.logging_config import get_logger
from sanctuary.core.timeutils import utc_now
from sanctuary.models.analytics import ActiveUser, PageStat, PageView, VisitorSession
from sanctuary.schemas import EndSessionPayload, PageViewPayload, SessionPayload
from sanctuary.services.device import classify_user_agent
from sanctuary.services.geolocation import GeolocationService, geolocation_service

logger = get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class SessionClosure:
    """Values written onto a session when it is closed."""

    end_time: datetime
    duration: int
    page_count: int
    is_bounce: bool
    exit_page: Optional[str]


def compute_closure(
    start_time: datetime, end_time: datetime, page_count: int, exit_page: Optional[str]
) -> SessionClosure:
    """Duration is floored to whole seconds; a bounce is at most one page view."""
    elapsed = (end_time - start_time).total_seconds()
    return SessionClosure(
        end_time=end_time,
        duration=max(0, math.floor(elapsed)),
        page_count=page_count,
        is_bounce=page_count <= 1,
        exit_page=exit_page,
    )


class AnalyticsService:
    """Ingestion operations for the first-party analytics pipeline."""

    def __init__(
        self,
        geolocation: GeolocationService = geolocation_service,
        active_window_minutes: int = settings.ACTIVE_USER_WINDOW_MINUTES,
    ):
        self.geolocation = geolocation
        self.active_window = timedelta(minutes=active_window_minutes)

    # ============== PAGE VIEWS ==============

    def track_page_view(self, db: Session, payload: PageViewPayload) -> PageView:
        """Persist a page view and bump the cumulative counter for its path."""
        device = classify_user_agent(payload.user_agent)
        location = self.geolocation.lookup(payload.ip_address)

        page_view = PageView(
            session_id=payload.session_id,
            page_path=payload.page_path,
            page_title=payload.page_title,
            referrer=payload.referrer,
            user_agent=payload.user_agent,
            ip_address=payload.ip_address,
            country=location.country,
            city=location.city,
            device_type=device.device_type,
            browser=device.browser,
            os=device.os,
            screen_resolution=payload.screen_resolution,
            time_on_page=payload.time_on_page,
        )
        db.add(page_view)
        db.flush()
        self._increment_page_stat(db, payload.page_path, payload.page_title)
        db.commit()
        db.refresh(page_view)

        self._refresh_presence(db, payload.session_id, payload.page_path, payload.user_agent, payload.ip_address)

        logger.debug(
            "Page view tracked",
            session_id=payload.session_id,
            page_path=payload.page_path,
            time_on_page=payload.time_on_page,
        )
        return page_view

    def _increment_page_stat(self, db: Session, page_path: str, page_title: Optional[str]) -> None:
        now = utc_now()
        table = PageStat.__table__
        insert = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)

        if insert is None:
            stat = db.exec(select(PageStat).where(PageStat.page_path == page_path)).first()
            if stat is None:
                stat = PageStat(page_path=page_path, page_title=page_title)
            stat.total_views += 1
            stat.unique_views += 1
            stat.page_title = page_title
            stat.updated_at = now
            db.add(stat)
            db.flush()
            return

        stmt = insert(table).values(
            page_path=page_path,
            page_title=page_title,
            total_views=1,
            unique_views=1,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.page_path],
            set_={
                "total_views": table.c.total_views + 1,
                "unique_views": table.c.unique_views + 1,
                "page_title": stmt.excluded.page_title,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        db.exec(stmt)

    # ============== SESSIONS ==============

    def track_session(self, db: Session, payload: SessionPayload) -> bool:
        """
        Create the session on first contact, otherwise just touch it.

        Dimensional fields (device, geo, referrer, landing page) are only
        written at creation. Returns True when this call created the row.
        """
        created = False
        visitor = db.get(VisitorSession, payload.session_id)

        if visitor is None:
            created = self._create_session(db, payload)

        if not created:
            db.exec(
                update(VisitorSession.__table__)
                .where(VisitorSession.__table__.c.id == payload.session_id)
                .values(updated_at=utc_now())
            )
            db.commit()

        self._refresh_presence(db, payload.session_id, payload.landing_page, payload.user_agent, payload.ip_address)
        return created

    def _create_session(self, db: Session, payload: SessionPayload) -> bool:
        device = classify_user_agent(payload.user_agent)
        location = self.geolocation.lookup(payload.ip_address)

        db.add(
            VisitorSession(
                id=payload.session_id,
                user_id=payload.user_id,
                ip_address=payload.ip_address,
                user_agent=payload.user_agent,
                country=location.country,
                city=location.city,
                device_type=device.device_type,
                browser=device.browser,
                os=device.os,
                screen_resolution=payload.screen_resolution,
                referrer=payload.referrer,
                landing_page=payload.landing_page,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            # Another request created it between our lookup and insert
            db.rollback()
            logger.info("Session already created concurrently", session_id=payload.session_id)
            return False

        logger.info(
            "Session started",
            session_id=payload.session_id,
            device_type=device.device_type,
            landing_page=payload.landing_page,
        )
        return True

    def end_session(self, db: Session, payload: EndSessionPayload) -> bool:
        """
        Close a session. Unknown or already-closed sessions are a silent no-op.

        Returns True only when this call wrote the closure.
        """
        visitor = db.get(VisitorSession, payload.session_id)
        if visitor is None:
            logger.debug("End for unknown session ignored", session_id=payload.session_id)
            return False

        closed = False
        if visitor.is_open:
            closure = compute_closure(
                visitor.start_time,
                utc_now(),
                self.count_page_views(db, payload.session_id),
                payload.exit_page,
            )
            closed = self._write_closure(db, payload.session_id, closure)

        db.exec(delete(ActiveUser.__table__).where(ActiveUser.__table__.c.session_id == payload.session_id))
        db.commit()

        if closed:
            logger.info("Session ended", session_id=payload.session_id, **_closure_fields(closure))
        return closed

    def _write_closure(self, db: Session, session_id: str, closure: SessionClosure) -> bool:
        table = VisitorSession.__table__
        result = db.exec(
            update(table)
            .where(table.c.id == session_id, table.c.end_time.is_(None))
            .values(
                end_time=closure.end_time,
                duration=closure.duration,
                page_count=closure.page_count,
                is_bounce=closure.is_bounce,
                exit_page=closure.exit_page,
                updated_at=closure.end_time,
            )
        )
        return result.rowcount > 0

    @staticmethod
    def count_page_views(db: Session, session_id: str) -> int:
        return db.exec(select(func.count(PageView.id)).where(PageView.session_id == session_id)).one()

    def close_abandoned_sessions(self, db: Session, idle_for: timedelta) -> int:
        """
        Close open sessions with no activity for ``idle_for``.

        End time is the last observed activity (session touch or page view),
        exit page the last viewed path.
        """
        cutoff = utc_now() - idle_for
        last_view = (
            select(PageView.session_id, func.max(PageView.created_at).label("last_seen"))
            .group_by(PageView.session_id)
            .subquery()
        )
        candidates = db.exec(
            select(VisitorSession, last_view.c.last_seen)
            .outerjoin(last_view, last_view.c.session_id == VisitorSession.id)
            .where(VisitorSession.end_time.is_(None), VisitorSession.updated_at < cutoff)
        ).all()

        closed = 0
        for visitor, last_seen in candidates:
            last_activity = max(visitor.updated_at, last_seen) if last_seen else visitor.updated_at
            if last_activity >= cutoff:
                continue
            exit_page = db.exec(
                select(PageView.page_path)
                .where(PageView.session_id == visitor.id)
                .order_by(PageView.created_at.desc(), PageView.id.desc())
            ).first()
            closure = compute_closure(
                visitor.start_time,
                last_activity,
                self.count_page_views(db, visitor.id),
                exit_page or visitor.landing_page,
            )
            if self._write_closure(db, visitor.id, closure):
                closed += 1
        db.commit()

        if closed:
            logger.info("Closed abandoned sessions", count=closed, idle_hours=idle_for.total_seconds() / 3600)
        return closed

    # ============== PRESENCE ==============

    def _refresh_presence(
        self,
        db: Session,
        session_id: str,
        page_path: Optional[str],
        user_agent: Optional[str],
        ip_address: Optional[str],
    ) -> None:
        # Presence is secondary to the event itself; a failure here must not fail ingestion
        try:
            self.upsert_active_user(db, session_id, page_path, user_agent, ip_address)
        except SQLAlchemyError as e:
            db.rollback()
            capture_exception(e, context={"operation": "upsert_active_user", "session_id": session_id}, level="warning")

    def upsert_active_user(
        self,
        db: Session,
        session_id: str,
        page_path: Optional[str],
        user_agent: Optional[str],
        ip_address: Optional[str],
    ) -> None:
        """Insert or refresh the presence row for a session, then sweep stale rows."""
        now = utc_now()
        table = ActiveUser.__table__
        insert = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)

        if insert is None:
            row = db.get(ActiveUser, session_id) or ActiveUser(session_id=session_id)
            row.page_path = page_path
            row.user_agent = user_agent
            row.ip_address = ip_address
            row.last_activity = now
            db.add(row)
        else:
            stmt = insert(table).values(
                session_id=session_id,
                page_path=page_path,
                user_agent=user_agent,
                ip_address=ip_address,
                last_activity=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.session_id],
                set_={
                    "page_path": stmt.excluded.page_path,
                    "user_agent": stmt.excluded.user_agent,
                    "ip_address": stmt.excluded.ip_address,
                    "last_activity": stmt.excluded.last_activity,
                },
            )
            db.exec(stmt)

        self._delete_stale_active_users(db, now)
        db.commit()

    def sweep_active_users(self, db: Session) -> int:
        """Delete presence rows older than the staleness window."""
        removed = self._delete_stale_active_users(db, utc_now())
        db.commit()
        return removed

    def _delete_stale_active_users(self, db: Session, now: datetime) -> int:
        table = ActiveUser.__table__
        result = db.exec(delete(table).where(table.c.last_activity < now - self.active_window))
        return result.rowcount or 0


def _closure_fields(closure: SessionClosure) -> dict:
    return {
        "duration": closure.duration,
        "page_count": closure.page_count,
        "is_bounce": closure.is_bounce,
        "exit_page": closure.exit_page,
    }


analytics_service = AnalyticsService()
