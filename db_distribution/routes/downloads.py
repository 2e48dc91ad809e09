"""Download access log routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from ..access_log import AccessLog
from ..auth.deps import get_current_principal
from ..auth.principal import AuthenticatedPrincipal
from ..schemas.jobs import DownloadCreate
from .deps import get_access_log

router = APIRouter(prefix="/downloads", tags=["downloads"])


@router.post("")
def record_download(
    body: DownloadCreate,
    request: Request,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    access_log: AccessLog = Depends(get_access_log),
) -> Dict[str, Any]:
    client_host = request.client.host if request.client else None
    download = access_log.record_download(
        principal,
        body,
        ip_address=client_host,
        user_agent=request.headers.get("user-agent"),
    )
    return {"data": download.to_dict()}


@router.get("")
def list_downloads(
    job_id: Optional[str] = Query(None, alias="jobId"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    access_log: AccessLog = Depends(get_access_log),
) -> Dict[str, Any]:
    """Audit view of download records (admins and auditors)."""
    downloads = access_log.list_downloads(
        principal, job_id=job_id, limit=limit, offset=offset
    )
    return {"data": [download.to_dict() for download in downloads]}
