"""Service layer for ClipNest."""

from .history_service import HistoryService
from .monitor_service import MonitorService
from .persistence import FileHistoryBackend, RedisHistoryBackend, create_backend
from .server_service import ServerService

__all__ = [
    "HistoryService",
    "MonitorService",
    "FileHistoryBackend",
    "RedisHistoryBackend",
    "create_backend",
    "ServerService",
]
