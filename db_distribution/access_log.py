"""
Download access log.

An append-only record of who fetched which backup, from where. Rows are
only ever inserted.
"""

from __future__ import annotations

from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from .auth.principal import AuthenticatedPrincipal
from .auth.roles import Role, require_role
from .db.models import DownloadModel
from .db.services import DownloadService
from .jobs.coordinator import JobCoordinator
from .primitives import parse_id
from .schemas.jobs import DownloadCreate

logger = structlog.get_logger(__name__)


class AccessLog:
    def __init__(self, db: Session, coordinator: JobCoordinator):
        self.db = db
        self.coordinator = coordinator
        self.downloads = DownloadService(db)

    def record_download(
        self,
        principal: AuthenticatedPrincipal,
        body: DownloadCreate,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> DownloadModel:
        """Record one download attempt for a job the principal can see.

        ``ip_address`` and ``user_agent`` come from the request and are used
        when the body leaves them out.
        """
        job = self.coordinator.get_job(principal, str(body.job_id))
        download = self.downloads.create(
            job_id=job.id,
            downloaded_by=principal.identity,
            ip_address=body.ip_address or ip_address,
            user_agent=body.user_agent or user_agent,
            success=body.success,
        )
        logger.info(
            "Download recorded",
            download_id=download.id,
            job_id=job.id,
            downloaded_by=download.downloaded_by,
            success=download.success,
        )
        return download

    def list_downloads(
        self,
        principal: AuthenticatedPrincipal,
        job_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[DownloadModel]:
        require_role(
            principal, (Role.ADMIN, Role.AUDITOR), self.coordinator.role_config
        )
        if job_id:
            job_id = parse_id(job_id, "jobId")
        return self.downloads.list(job_id=job_id, limit=limit, offset=offset)
