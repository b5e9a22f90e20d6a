"""
Download tracking API.

track/sync are public (anyone may download a bulletin); reports are staff-only.
"""

from typing import Any, List

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from pydantic import TypeAdapter, ValidationError
from sqlmodel import Session

from sanctuary.api import deps
from sanctuary.db import get_session
from sanctuary.models.user import User
from sanctuary.schemas import (
    DownloadAnalyticsResponse,
    DownloadPayload,
    DownloadStatsResponse,
    RecentDownloadsResponse,
    SuccessResponse,
)
from sanctuary.services import downloads as download_service

router = APIRouter()

_batch_adapter = TypeAdapter(List[DownloadPayload])


@router.post("/track", response_model=SuccessResponse, response_model_exclude_none=True)
def track_download(
    payload: DownloadPayload,
    request: Request,
    session: Session = Depends(get_session),
):
    download_service.track_download(session, payload, fallback_ip=deps.get_client_ip(request))
    return SuccessResponse(message="Download tracked successfully")


@router.post("/sync", response_model=SuccessResponse, response_model_exclude_none=True)
def sync_downloads(
    request: Request,
    downloads: Any = Body(default=None),
    session: Session = Depends(get_session),
):
    """Append downloads the browser buffered while offline. Anything but a non-empty array is a no-op."""
    if not isinstance(downloads, list) or not downloads:
        return SuccessResponse(message="No downloads to sync")

    try:
        payloads = _batch_adapter.validate_python(downloads)
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    count = download_service.sync_downloads(session, payloads, fallback_ip=deps.get_client_ip(request))
    return SuccessResponse(message=f"{count} downloads synced successfully")


@router.get("/analytics", response_model=DownloadAnalyticsResponse)
def download_analytics(
    session: Session = Depends(get_session),
    _: User = Depends(deps.require_staff),
):
    return DownloadAnalyticsResponse(data=download_service.get_download_analytics(session))


@router.get("/recent", response_model=RecentDownloadsResponse)
def recent_downloads(
    limit: int = Query(default=10, ge=1, le=500),
    session: Session = Depends(get_session),
    _: User = Depends(deps.require_staff),
):
    return RecentDownloadsResponse(data=download_service.get_recent_downloads(session, limit))


@router.get("/stats", response_model=DownloadStatsResponse)
def download_stats(
    session: Session = Depends(get_session),
    _: User = Depends(deps.require_staff),
):
    return DownloadStatsResponse(data=download_service.get_download_stats(session))
