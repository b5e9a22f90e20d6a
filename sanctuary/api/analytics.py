"""
Analytics API: public ingestion endpoints and staff-only reports.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session

from sanctuary.api import deps
from sanctuary.db import get_session
from sanctuary.models.user import User
from sanctuary.schemas import (
    ActiveUsersResponse,
    DashboardStatsResponse,
    EndSessionPayload,
    PageViewPayload,
    SessionPageResponse,
    SessionPayload,
    SuccessResponse,
)
from sanctuary.services import reporting
from sanctuary.services.analytics import analytics_service
from sanctuary.core.timeutils import to_naive_utc

router = APIRouter()


@router.post("/track-page-view", response_model=SuccessResponse, response_model_exclude_none=True)
def track_page_view(
    payload: PageViewPayload,
    request: Request,
    session: Session = Depends(get_session),
):
    if not payload.ip_address:
        payload = payload.model_copy(update={"ip_address": deps.get_client_ip(request)})
    analytics_service.track_page_view(session, payload)
    return SuccessResponse()


@router.post("/track-session", response_model=SuccessResponse, response_model_exclude_none=True)
def track_session(
    payload: SessionPayload,
    request: Request,
    session: Session = Depends(get_session),
    current_user: Optional[User] = Depends(deps.get_current_user_optional),
):
    updates = {}
    if not payload.ip_address:
        updates["ip_address"] = deps.get_client_ip(request)
    if current_user is not None:
        # A verified token wins over whatever id the page reported
        updates["user_id"] = current_user.id
    if updates:
        payload = payload.model_copy(update=updates)

    analytics_service.track_session(session, payload)
    return SuccessResponse()


@router.post("/end-session", response_model=SuccessResponse, response_model_exclude_none=True)
def end_session(payload: EndSessionPayload, session: Session = Depends(get_session)):
    analytics_service.end_session(session, payload)
    return SuccessResponse()


@router.get("/dashboard-stats", response_model=DashboardStatsResponse)
def dashboard_stats(
    days: int = Query(default=30, ge=1, le=3650),
    session: Session = Depends(get_session),
    _: User = Depends(deps.require_staff),
):
    return DashboardStatsResponse(data=reporting.get_dashboard_stats(session, days=days))


@router.get("/detailed", response_model=SessionPageResponse)
def detailed(
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    _: User = Depends(deps.require_staff),
):
    return SessionPageResponse(
        data=reporting.get_session_page(
            session,
            start_date=to_naive_utc(start_date),
            end_date=to_naive_utc(end_date),
            page=page,
            limit=limit,
        )
    )


@router.get("/active-users", response_model=ActiveUsersResponse)
def active_users(
    session: Session = Depends(get_session),
    _: User = Depends(deps.require_staff),
):
    return ActiveUsersResponse(data=reporting.get_active_users(session))
