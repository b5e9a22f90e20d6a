from .user import User
from .analytics import VisitorSession, PageView, PageStat, ActiveUser
from .download import DownloadEvent

__all__ = [
    "User",
    "VisitorSession",
    "PageView",
    "PageStat",
    "ActiveUser",
    "DownloadEvent",
]
