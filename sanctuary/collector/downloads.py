"""
Client-side download tracking with a local staging buffer.

Every download is staged in storage before it is posted, and the buffer is
re-sent to ``downloads/sync`` on an interval. The buffer is only cleared after
the server acknowledges a sync.
"""

import asyncio
import posixpath
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import httpx

from sanctuary.collector.client import Clock, CollectorConfig, get_or_create_session_id, new_id, post_json
from sanctuary.collector.storage import KeyValueStore
from sanctuary.core.logging_config import get_logger

logger = get_logger(__name__)

STAGING_KEY = "download_tracking"
USER_KEY = "user_id"
MAX_STAGED = 100

FILE_TYPES = {
    "pdf": "PDF Document",
    "doc": "Word Document",
    "docx": "Word Document",
    "xls": "Excel Spreadsheet",
    "xlsx": "Excel Spreadsheet",
    "ppt": "PowerPoint Presentation",
    "pptx": "PowerPoint Presentation",
    "mp3": "Audio File",
    "mp4": "Video File",
    "jpg": "Image",
    "jpeg": "Image",
    "png": "Image",
    "gif": "Image",
    "txt": "Text File",
    "zip": "Compressed File",
    "rar": "Compressed File",
}
DEFAULT_FILE_TYPE = "Document"


def file_type_for(file_name: str) -> str:
    _, ext = posixpath.splitext(file_name)
    return FILE_TYPES.get(ext.lstrip(".").lower(), DEFAULT_FILE_TYPE)


def file_name_from_url(file_url: str) -> str:
    return unquote(posixpath.basename(urlparse(file_url).path))


class DownloadTracker:
    def __init__(
        self,
        config: CollectorConfig,
        storage: KeyValueStore,
        *,
        clock: Clock = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.storage = storage
        self.clock = clock
        self.transport = transport
        self._task: Optional[asyncio.Task] = None

    @property
    def session_id(self) -> str:
        return get_or_create_session_id(self.storage, self.clock)

    def _user_id(self) -> str:
        user_id = self.storage.get(USER_KEY)
        if not user_id:
            user_id = new_id("user", self.clock)
            self.storage.set(USER_KEY, user_id)
        return user_id

    def staged(self) -> List[Dict[str, Any]]:
        staged = self.storage.get(STAGING_KEY) or []
        return staged if isinstance(staged, list) else []

    def _stage(self, event: Dict[str, Any]) -> None:
        staged = self.staged()
        staged.append(event)
        self.storage.set(STAGING_KEY, staged[-MAX_STAGED:])

    async def track_download(
        self,
        file_name: str,
        file_url: str,
        file_type: Optional[str] = None,
        *,
        file_size: Optional[int] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> bool:
        """Stage the download locally, then report it. Returns True if the server accepted it."""
        if not self.config.enabled:
            return False

        event = {
            "id": new_id("download", self.clock),
            "fileName": file_name,
            "fileUrl": file_url,
            "fileType": file_type,
            "fileSize": file_size,
            "userAgent": user_agent,
            "referrer": referrer,
            "userId": user_id,
            "sessionId": self.session_id,
            "downloadTime": datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat(),
        }
        event = {key: value for key, value in event.items() if value is not None}
        self._stage(event)
        return await post_json(self.config, "downloads/track", event, transport=self.transport)

    async def track_file_download(
        self,
        file_url: str,
        file_name: Optional[str] = None,
        *,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> bool:
        """Track a download, deriving the name and type from the URL."""
        if not self.config.enabled:
            return False

        name = file_name or file_name_from_url(file_url)
        return await self.track_download(
            name,
            file_url,
            file_type_for(name),
            user_agent=user_agent,
            referrer=referrer,
            user_id=self._user_id(),
        )

    async def sync_local_downloads(self) -> int:
        """Push the staged buffer; only the events the server confirmed leave it."""
        if not self.config.enabled:
            return 0

        staged = list(self.staged())
        if not staged:
            return 0

        if not await post_json(self.config, "downloads/sync", staged, transport=self.transport):
            return 0

        # Downloads staged while the request was in flight stay for the next sync
        synced_ids = {event.get("id") for event in staged}
        remaining = [event for event in self.staged() if event.get("id") not in synced_ids]
        if remaining:
            self.storage.set(STAGING_KEY, remaining)
        else:
            self.storage.delete(STAGING_KEY)

        logger.info("Synced staged downloads", count=len(staged), still_staged=len(remaining))
        return len(staged)

    async def _sync_forever(self) -> None:
        while True:
            await self.sync_local_downloads()
            await asyncio.sleep(self.config.sync_interval)

    def start(self) -> None:
        """Sync now, then every ``sync_interval`` seconds on the running loop."""
        if not self.config.enabled or self._task is not None:
            return
        self._task = asyncio.create_task(self._sync_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
