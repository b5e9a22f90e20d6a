from sanctuary.collector.client import AnalyticsCollector, CollectorConfig, new_session_id
from sanctuary.collector.downloads import DownloadTracker, file_type_for
from sanctuary.collector.storage import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "AnalyticsCollector",
    "CollectorConfig",
    "DownloadTracker",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "file_type_for",
    "new_session_id",
]
