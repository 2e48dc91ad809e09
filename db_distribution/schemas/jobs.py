"""
Request bodies for jobs, read credentials and download records.

Runner status reports are a tagged union on ``status``: each variant carries
only the fields that make sense for it, and ``parse_job_update`` is the
single parse step that turns an untrusted body into one of them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, constr

from ..errors import InvalidInput


class _Body(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class JobCreate(_Body):
    """A requester asking for a backup of one database."""

    server_id: UUID = Field(alias="serverId")
    database: constr(strip_whitespace=True, min_length=1, max_length=256)
    ticket: constr(strip_whitespace=True, min_length=1, max_length=256)

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "serverId": "7d3c5c59-2c3e-4d44-9a55-2f7f0b1b9c11",
                "database": "CRM",
                "ticket": "CHG-1042",
            }
        },
    )


ObjectKey = constr(min_length=1, max_length=1024)


class RunningUpdate(_Body):
    status: Literal["RUNNING"]
    blob_path: Optional[ObjectKey] = Field(default=None, alias="blobPath")


class CompletedUpdate(_Body):
    status: Literal["COMPLETED"]
    blob_path: Optional[ObjectKey] = Field(default=None, alias="blobPath")
    sha256: str
    etag: Optional[constr(max_length=256)] = None
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")


class FailedUpdate(_Body):
    status: Literal["FAILED"]
    error: constr(min_length=1, max_length=8000)


class PendingUpdate(_Body):
    """A report asking to move a job back to PENDING. Always a conflict."""

    status: Literal["PENDING"]


JobUpdate = Annotated[
    Union[RunningUpdate, CompletedUpdate, FailedUpdate, PendingUpdate],
    Field(discriminator="status"),
]

_job_update_adapter: TypeAdapter = TypeAdapter(JobUpdate)


def validation_details(exc: ValidationError) -> Dict[str, List[Dict[str, Any]]]:
    """Reduce pydantic errors to JSON-safe field-level details."""
    return {
        "errors": [
            {
                "loc": [str(part) for part in error["loc"]],
                "msg": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
    }


def parse_job_update(
    payload: Any,
) -> Union[RunningUpdate, CompletedUpdate, FailedUpdate, PendingUpdate]:
    """Parse a runner status report into its variant.

    Raises:
        InvalidInput: If the body does not match any variant
    """
    try:
        return _job_update_adapter.validate_python(payload)
    except ValidationError as exc:
        raise InvalidInput("Invalid job update", details=validation_details(exc))


class SasRequest(_Body):
    """Read credential request; the ceiling is checked against settings."""

    ttl_hours: Optional[int] = Field(default=None, alias="ttlHours", gt=0)


class DownloadCreate(_Body):
    job_id: UUID = Field(alias="jobId")
    ip_address: Optional[constr(max_length=64)] = Field(default=None, alias="ipAddress")
    user_agent: Optional[constr(max_length=512)] = Field(default=None, alias="userAgent")
    success: bool = True
