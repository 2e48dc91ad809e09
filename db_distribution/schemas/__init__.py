"""
Request schemas for the HTTP API.
"""

from .jobs import (
    CompletedUpdate,
    DownloadCreate,
    FailedUpdate,
    JobCreate,
    JobUpdate,
    PendingUpdate,
    RunningUpdate,
    SasRequest,
    parse_job_update,
    validation_details,
)
from .registry import DatabaseCreate, DatabaseUpdate, ServerCreate, ServerUpdate

__all__ = [
    "CompletedUpdate",
    "DatabaseCreate",
    "DatabaseUpdate",
    "DownloadCreate",
    "FailedUpdate",
    "JobCreate",
    "JobUpdate",
    "PendingUpdate",
    "RunningUpdate",
    "SasRequest",
    "ServerCreate",
    "ServerUpdate",
    "parse_job_update",
    "validation_details",
]
