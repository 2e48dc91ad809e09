"""
Job coordinator.

Owns the job lifecycle: creation by requesters, FIFO hand-out to runners,
runner status reports and read credentials for finished backups.

Every status change is a compare-and-swap on the row's current status. A
lost race re-reads the job and decides again against the new status, so two
runners reporting at once can never both move the same job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import structlog
from sqlalchemy.orm import Session

from ..auth.principal import AuthenticatedPrincipal, RunnerIdentity
from ..auth.roles import Role, RoleConfig, resolve_role, role_config_from_settings
from ..config import Settings, get_settings
from ..db.models import JobModel
from ..db.services import JobService
from ..errors import Conflict, Forbidden, InvalidInput, NotFound
from ..primitives import ensure_utc, parse_id, utc_now
from ..registry import Registry
from ..schemas.jobs import (
    CompletedUpdate,
    FailedUpdate,
    JobCreate,
    PendingUpdate,
    RunningUpdate,
)
from ..storage.broker import CredentialBroker
from ..storage.keys import build_object_key, validate_object_key
from .checksum import normalize_sha256
from .states import JobStatus, Transition, decide_transition

logger = structlog.get_logger(__name__)

MAX_CAS_ATTEMPTS = 3

Actor = Union[AuthenticatedPrincipal, RunnerIdentity]
StatusReport = Union[RunningUpdate, CompletedUpdate, FailedUpdate, PendingUpdate]


@dataclass
class TransitionResult:
    """What a runner gets back after a status report."""

    job: JobModel
    transition: Transition
    upload_url: Optional[str] = None

    @property
    def object_key(self) -> Optional[str]:
        return self.job.blob_path

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"data": self.job.to_dict()}
        if self.transition in (Transition.CLAIM, Transition.RESUME):
            data["blobPath"] = self.job.blob_path
            data["destUrl"] = self.upload_url
        return data


class JobCoordinator:
    """Job lifecycle with access control.

    Args:
        db: Request-scoped session
        broker: Credential broker for upload and download URLs
        settings: Application settings (defaults to the process settings)
        role_config: Group to role mapping (defaults to settings)
        clock: Source of "now"; tests pin it
    """

    def __init__(
        self,
        db: Session,
        broker: CredentialBroker,
        settings: Optional[Settings] = None,
        role_config: Optional[RoleConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.broker = broker
        self.settings = settings or get_settings()
        self.role_config = role_config or role_config_from_settings(self.settings)
        self.clock = clock
        self.jobs = JobService(db)
        self.registry = Registry(db)

    @property
    def prefix(self) -> str:
        return self.settings.azure_storage_backups_prefix

    @property
    def upload_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.runner_upload_sas_ttl_minutes)

    def role_of(self, principal: AuthenticatedPrincipal) -> Role:
        return resolve_role(principal, self.role_config)

    # ------------------------------------------------------------------
    # Requester operations
    # ------------------------------------------------------------------

    def create_job(self, principal: AuthenticatedPrincipal, body: JobCreate) -> JobModel:
        """Queue a backup. The server must be active and the database not disabled."""
        server = self.registry.ensure_job_target(str(body.server_id), body.database)
        job = self.jobs.create(
            ticket=body.ticket,
            server=server.dns,
            database=body.database,
            requested_by=principal.identity,
        )
        logger.info(
            "Job created",
            job_id=job.id,
            server=job.server,
            database=job.database,
            ticket=job.ticket,
            requested_by=job.requested_by,
        )
        return job

    def list_jobs(
        self,
        principal: AuthenticatedPrincipal,
        status: Optional[str] = None,
        ticket: Optional[str] = None,
    ) -> List[JobModel]:
        """Admins and auditors see every job; developers only their own."""
        if status:
            try:
                status = JobStatus(status).value
            except ValueError:
                raise InvalidInput(
                    "Invalid status filter",
                    details={
                        "field": "status",
                        "allowed": [s.value for s in JobStatus],
                    },
                )
        requested_by = None
        if not self.role_of(principal).sees_all_jobs:
            requested_by = principal.identity
        return self.jobs.list(status=status, ticket=ticket, requested_by=requested_by)

    def get_job(self, principal: AuthenticatedPrincipal, job_id: str) -> JobModel:
        job = self._load(job_id)
        self.ensure_visible(principal, job)
        return job

    def issue_read_credential(
        self,
        principal: AuthenticatedPrincipal,
        job_id: str,
        ttl_hours: Optional[int] = None,
    ) -> Tuple[str, int]:
        """Return ``(url, ttl_hours)`` for downloading a completed backup."""
        job = self.get_job(principal, job_id)

        ttl = self.settings.default_sas_ttl_hours if ttl_hours is None else ttl_hours
        if ttl < 1 or ttl > self.settings.max_sas_ttl_hours:
            raise InvalidInput(
                "Invalid ttlHours",
                details={
                    "field": "ttlHours",
                    "reason": f"must be 1-{self.settings.max_sas_ttl_hours}",
                },
            )
        if job.status != JobStatus.COMPLETED.value:
            raise Conflict(
                "Job is not completed", details={"currentStatus": job.status}
            )
        if not job.blob_path:
            raise InvalidInput("Job is missing blob path")

        url = self.broker.issue_read_url(job.blob_path, timedelta(hours=ttl))
        logger.info(
            "Read credential issued",
            job_id=job.id,
            object_key=job.blob_path,
            ttl_hours=ttl,
            issued_to=principal.identity,
        )
        return url, ttl

    # ------------------------------------------------------------------
    # Runner operations
    # ------------------------------------------------------------------

    def next_pending_job(self, actor: Actor, server_dns: str) -> Optional[JobModel]:
        """Oldest pending job for exactly ``server_dns``, or None if there is no work."""
        self._require_runner(actor)
        server_dns = (server_dns or "").strip()
        if not server_dns:
            raise InvalidInput("serverDns is required", details={"field": "serverDns"})
        return self.jobs.oldest_pending_for_server(server_dns)

    def report(self, actor: Actor, job_id: str, update: StatusReport) -> TransitionResult:
        """Apply a runner status report.

        Raises:
            Forbidden: If the actor is not a runner
            NotFound: If the job does not exist
            TransitionConflict: If the reported status is illegal now
            InvalidInput: If the report carries a bad key or checksum
        """
        self._require_runner(actor)
        job = self._load(job_id)
        requested = JobStatus(update.status)

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            observed = JobStatus(job.status)
            transition = decide_transition(observed, requested)
            values = self._plan(job, transition, update)

            if self.jobs.compare_and_swap(job.id, observed.value, values):
                job = self.jobs.get(job.id)
                upload_url = None
                if transition in (Transition.CLAIM, Transition.RESUME):
                    upload_url = self.broker.issue_write_url(
                        job.blob_path, self.upload_ttl
                    )
                logger.info(
                    "Job transitioned",
                    job_id=job.id,
                    transition=transition.value,
                    from_status=observed.value,
                    to_status=job.status,
                    object_key=job.blob_path,
                    runner_id=getattr(actor, "runner_id", None),
                )
                return TransitionResult(job=job, transition=transition, upload_url=upload_url)

            logger.info(
                "Job changed concurrently, re-evaluating",
                job_id=job.id,
                observed_status=observed.value,
                attempt=attempt,
            )
            job = self._load(job.id)

        raise Conflict(
            "Job was modified concurrently", details={"currentStatus": job.status}
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def ensure_visible(self, principal: AuthenticatedPrincipal, job: JobModel) -> None:
        if self.role_of(principal).sees_all_jobs:
            return
        if job.requested_by != principal.identity:
            raise Forbidden("Job access denied")

    def _load(self, job_id: str) -> JobModel:
        job = self.jobs.get(parse_id(job_id, "jobId"))
        if job is None:
            raise NotFound("Job not found")
        return job

    @staticmethod
    def _require_runner(actor: Actor) -> None:
        if not isinstance(actor, RunnerIdentity):
            raise Forbidden("Runner credentials required")

    def _object_key(
        self, job: JobModel, supplied: Optional[str], generate: bool
    ) -> Optional[str]:
        """The key a transition writes: assigned, supplied or freshly built.

        Once assigned, a key never changes.
        """
        if supplied:
            validate_object_key(supplied, self.prefix)
            if job.blob_path and supplied != job.blob_path:
                raise Conflict(
                    "Object key already assigned",
                    details={"blobPath": job.blob_path},
                )
            return supplied
        if job.blob_path:
            return job.blob_path
        if generate:
            return build_object_key(
                job.server, job.database, job.ticket, self.clock(), self.prefix
            )
        return None

    def _plan(
        self, job: JobModel, transition: Transition, update: StatusReport
    ) -> Dict[str, Any]:
        """Column values for a transition. Validates before anything is written."""
        now = self.clock()

        if transition in (Transition.CLAIM, Transition.RESUME):
            return {
                "status": JobStatus.RUNNING.value,
                "blob_path": self._object_key(job, update.blob_path, generate=True),
                "updated_at": now,
            }

        if transition == Transition.COMPLETE:
            sha256 = normalize_sha256(update.sha256)
            object_key = self._object_key(job, update.blob_path, generate=False)
            if object_key is None:
                raise InvalidInput(
                    "Blob path required for completion", details={"field": "blobPath"}
                )
            completed_at = ensure_utc(update.completed_at) if update.completed_at else now
            return {
                "status": JobStatus.COMPLETED.value,
                "blob_path": object_key,
                "sha256": sha256,
                "etag": update.etag or job.etag,
                "completed_at": completed_at,
                "error": None,
                "updated_at": now,
            }

        return {
            "status": JobStatus.FAILED.value,
            "error": update.error,
            "updated_at": now,
        }
