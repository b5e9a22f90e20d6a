"""
Tests for presence tracking: upsert semantics, write-triggered sweep and the
scheduled sweep job.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import patch
from sqlmodel import Session, select

from sanctuary.models.analytics import ActiveUser
from sanctuary.services.analytics import AnalyticsService
from sanctuary.services.geolocation import GeolocationService


@pytest.fixture
def service() -> AnalyticsService:
    return AnalyticsService(geolocation=GeolocationService(), active_window_minutes=30)


def test_upsert_replaces_existing_row(test_session: Session, service: AnalyticsService):
    service.upsert_active_user(test_session, "s1", "/", "agent-a", "1.1.1.1")
    service.upsert_active_user(test_session, "s1", "/give", "agent-b", "1.1.1.2")

    rows = test_session.exec(select(ActiveUser)).all()
    assert len(rows) == 1
    test_session.refresh(rows[0])
    assert rows[0].page_path == "/give"
    assert rows[0].ip_address == "1.1.1.2"


def test_write_sweeps_stale_rows(test_session: Session, service: AnalyticsService):
    now = datetime.utcnow()
    test_session.add(ActiveUser(session_id="stale", last_activity=now - timedelta(minutes=45)))
    test_session.add(ActiveUser(session_id="recent", last_activity=now - timedelta(minutes=10)))
    test_session.commit()

    service.upsert_active_user(test_session, "new", "/", None, None)

    remaining = {row.session_id for row in test_session.exec(select(ActiveUser)).all()}
    assert remaining == {"recent", "new"}


def test_sweep_without_writes(test_session: Session, service: AnalyticsService):
    now = datetime.utcnow()
    test_session.add(ActiveUser(session_id="stale", last_activity=now - timedelta(minutes=31)))
    test_session.add(ActiveUser(session_id="recent", last_activity=now))
    test_session.commit()

    assert service.sweep_active_users(test_session) == 1
    assert [row.session_id for row in test_session.exec(select(ActiveUser)).all()] == ["recent"]


def test_presence_failure_does_not_fail_page_view(test_session: Session, service: AnalyticsService):
    from sqlalchemy.exc import OperationalError
    from sanctuary.schemas import PageViewPayload

    with patch.object(
        AnalyticsService, "upsert_active_user", side_effect=OperationalError("INSERT", {}, Exception("locked"))
    ), patch("sanctuary.services.analytics.capture_exception") as capture:
        view = service.track_page_view(test_session, PageViewPayload(session_id="s1", page_path="/"))

    assert view.id is not None
    capture.assert_called_once()


@pytest.mark.asyncio
async def test_scheduled_sweep_job(test_engine):
    from sanctuary.core import scheduler

    with Session(test_engine) as session:
        session.add(ActiveUser(session_id="stale", last_activity=datetime.utcnow() - timedelta(hours=2)))
        session.commit()

    with patch.object(scheduler, "engine", test_engine):
        await scheduler.job_sweep_active_users()

    with Session(test_engine) as session:
        assert session.exec(select(ActiveUser)).all() == []


def test_abandoned_session_job_registered_only_when_enabled():
    from sanctuary.core import scheduler

    with patch.object(scheduler.settings, "SESSION_ABANDON_HOURS", 0), patch.object(
        scheduler.scheduler, "add_job"
    ) as add_job, patch.object(scheduler.scheduler, "start"):
        scheduler.start_scheduler()
    assert [c.kwargs["id"] for c in add_job.call_args_list] == ["job_sweep_active_users"]

    with patch.object(scheduler.settings, "SESSION_ABANDON_HOURS", 6), patch.object(
        scheduler.scheduler, "add_job"
    ) as add_job, patch.object(scheduler.scheduler, "start"):
        scheduler.start_scheduler()
    assert [c.kwargs["id"] for c in add_job.call_args_list] == ["job_sweep_active_users", "job_close_abandoned_sessions"]
