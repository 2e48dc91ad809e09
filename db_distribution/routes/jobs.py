"""
Job API routes.

Humans create, list and read jobs and ask for download URLs. Runners poll
``/jobs/next`` and report progress with ``PATCH /jobs/{id}``.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Response

from ..auth.deps import get_current_principal, get_runner
from ..auth.principal import AuthenticatedPrincipal, RunnerIdentity
from ..jobs.coordinator import JobCoordinator
from ..schemas.jobs import JobCreate, SasRequest, parse_job_update
from .deps import get_coordinator

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("")
def create_job(
    body: JobCreate,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    coordinator: JobCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    """Queue a backup job."""
    job = coordinator.create_job(principal, body)
    return {"data": {"id": job.id, "status": job.status}}


@router.get("")
def list_jobs(
    status: Optional[str] = None,
    ticket: Optional[str] = None,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    coordinator: JobCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    """List jobs, newest first. Developers only see their own."""
    jobs = coordinator.list_jobs(principal, status=status, ticket=ticket)
    return {"data": [job.to_dict() for job in jobs]}


# Must be registered before /{job_id}
@router.get("/next", response_model=None)
def next_job(
    server_dns: str = Query("", alias="serverDns"),
    runner: RunnerIdentity = Depends(get_runner),
    coordinator: JobCoordinator = Depends(get_coordinator),
) -> Any:
    """Oldest pending job for a server; 204 when there is nothing to do."""
    job = coordinator.next_pending_job(runner, server_dns)
    if job is None:
        return Response(status_code=204)
    return {"data": job.to_runner_dict()}


@router.get("/{job_id}")
def get_job(
    job_id: str,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    coordinator: JobCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    return {"data": coordinator.get_job(principal, job_id).to_dict()}


@router.patch("/{job_id}")
def report_job_status(
    job_id: str,
    payload: Any = Body(...),
    runner: RunnerIdentity = Depends(get_runner),
    coordinator: JobCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    """Runner status report: RUNNING, COMPLETED or FAILED."""
    update = parse_job_update(payload)
    result = coordinator.report(runner, job_id, update)
    return result.to_dict()


@router.post("/{job_id}/sas")
def issue_read_url(
    job_id: str,
    body: Optional[SasRequest] = None,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    coordinator: JobCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    """Short-lived read URL for a completed backup."""
    ttl_hours = body.ttl_hours if body else None
    sas_url, ttl = coordinator.issue_read_credential(principal, job_id, ttl_hours)
    return {"data": {"sasUrl": sas_url, "ttlHours": ttl}}
