"""
Database package for DB Distribution.
"""

from .base import Base, get_db, get_engine, get_session_local, init_database
from .models import DatabaseModel, DownloadModel, JobModel, ServerModel

__all__ = [
    "Base",
    "get_db",
    "get_engine",
    "get_session_local",
    "init_database",
    "DatabaseModel",
    "DownloadModel",
    "JobModel",
    "ServerModel",
]
