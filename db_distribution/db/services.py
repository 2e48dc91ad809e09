"""
Database services for DB Distribution.

These classes are the repository layer: plain persistence with no access
control. Business rules live in ``registry``, ``jobs.coordinator`` and
``access_log``.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import asc, desc, func, update
from sqlalchemy.orm import Session, selectinload

from ..jobs.states import JobStatus
from ..primitives import generate_id, utc_now
from .models import DatabaseModel, DownloadModel, JobModel, ServerModel


class ServerService:
    """Service for managing servers in the database."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, name: str, dns: str, is_active: bool = True) -> ServerModel:
        """Create a new server."""
        server = ServerModel(name=name, dns=dns, is_active=is_active)
        self.db.add(server)
        self.db.commit()
        self.db.refresh(server)
        return server

    def get(self, server_id: str) -> Optional[ServerModel]:
        """Get a server by ID."""
        return self.db.query(ServerModel).filter(ServerModel.id == server_id).first()

    def get_by_dns(self, dns: str) -> Optional[ServerModel]:
        """Get a server by DNS name."""
        return self.db.query(ServerModel).filter(ServerModel.dns == dns).first()

    def list(self, active_only: bool = True) -> List[ServerModel]:
        """Get servers ordered by name."""
        query = self.db.query(ServerModel)
        if active_only:
            query = query.filter(ServerModel.is_active.is_(True))
        return query.order_by(asc(ServerModel.name), asc(ServerModel.dns)).all()

    def page(self, offset: int, limit: int) -> Tuple[List[ServerModel], int]:
        """Get one page of all servers with their databases, plus the total count."""
        total = self.db.query(func.count(ServerModel.id)).scalar() or 0
        items = (
            self.db.query(ServerModel)
            .options(selectinload(ServerModel.databases))
            .order_by(asc(ServerModel.name), asc(ServerModel.dns))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def update(self, server: ServerModel, changes: Dict[str, Any]) -> ServerModel:
        """Apply column changes to a server."""
        for key, value in changes.items():
            setattr(server, key, value)
        server.updated_at = utc_now()
        self.db.commit()
        self.db.refresh(server)
        return server


class DatabaseService:
    """Service for managing registered databases."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, server_id: str, db_name: str, is_active: bool = True) -> DatabaseModel:
        """Register a database on a server."""
        database = DatabaseModel(
            server_id=server_id,
            db_name=db_name,
            db_name_key=db_name.lower(),
            is_active=is_active,
        )
        self.db.add(database)
        self.db.commit()
        self.db.refresh(database)
        return database

    def get(self, database_id: str) -> Optional[DatabaseModel]:
        """Get a database by ID."""
        return (
            self.db.query(DatabaseModel).filter(DatabaseModel.id == database_id).first()
        )

    def find_by_name(self, server_id: str, db_name: str) -> Optional[DatabaseModel]:
        """Case-insensitive lookup of a database on a server."""
        return (
            self.db.query(DatabaseModel)
            .filter(DatabaseModel.server_id == server_id)
            .filter(DatabaseModel.db_name_key == db_name.lower())
            .first()
        )

    def list_for_server(
        self, server_id: str, active_only: bool = True
    ) -> List[DatabaseModel]:
        """Get databases of a server ordered by name."""
        query = self.db.query(DatabaseModel).filter(DatabaseModel.server_id == server_id)
        if active_only:
            query = query.filter(DatabaseModel.is_active.is_(True))
        return query.order_by(asc(DatabaseModel.db_name)).all()

    def update(self, database: DatabaseModel, changes: Dict[str, Any]) -> DatabaseModel:
        """Apply column changes to a database."""
        for key, value in changes.items():
            setattr(database, key, value)
        if "db_name" in changes:
            database.db_name_key = database.db_name.lower()
        database.updated_at = utc_now()
        self.db.commit()
        self.db.refresh(database)
        return database


class JobService:
    """Service for managing backup jobs in the database."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        ticket: str,
        server: str,
        database: str,
        requested_by: str,
        job_id: Optional[str] = None,
    ) -> JobModel:
        """Create a new job with status PENDING."""
        job = JobModel(
            id=job_id or generate_id(),
            ticket=ticket,
            server=server,
            database=database,
            requested_by=requested_by,
            status=JobStatus.PENDING.value,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        return job

    def get(self, job_id: str) -> Optional[JobModel]:
        """Get a job by ID, always reading the current row."""
        job = self.db.query(JobModel).filter(JobModel.id == job_id).first()
        if job is not None:
            self.db.refresh(job)
        return job

    def list(
        self,
        status: Optional[str] = None,
        ticket: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> List[JobModel]:
        """Get jobs with optional filtering, newest first."""
        query = self.db.query(JobModel)

        if status:
            query = query.filter(JobModel.status == status)
        if ticket:
            query = query.filter(JobModel.ticket == ticket)
        if requested_by is not None:
            query = query.filter(JobModel.requested_by == requested_by)

        return query.order_by(desc(JobModel.created_at), desc(JobModel.id)).all()

    def oldest_pending_for_server(self, server_dns: str) -> Optional[JobModel]:
        """Get the oldest PENDING job for a server (FIFO per server)."""
        return (
            self.db.query(JobModel)
            .filter(JobModel.status == JobStatus.PENDING.value)
            .filter(JobModel.server == server_dns)
            .order_by(asc(JobModel.created_at), asc(JobModel.id))
            .first()
        )

    def compare_and_swap(
        self, job_id: str, expected_status: str, values: Dict[str, Any]
    ) -> bool:
        """Atomically update a job only if its status is still ``expected_status``.

        Returns:
            True if the row was updated, False if another writer changed the
            status first.
        """
        result = self.db.execute(
            update(JobModel)
            .where(JobModel.id == job_id)
            .where(JobModel.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1


class DownloadService:
    """Append-only store of download attempts."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        job_id: str,
        downloaded_by: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        success: bool = True,
    ) -> DownloadModel:
        """Record a download attempt."""
        download = DownloadModel(
            job_id=job_id,
            downloaded_by=downloaded_by,
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
        )
        self.db.add(download)
        self.db.commit()
        self.db.refresh(download)
        return download

    def list(
        self, job_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[DownloadModel]:
        """Get download records, newest first."""
        query = self.db.query(DownloadModel)
        if job_id:
            query = query.filter(DownloadModel.job_id == job_id)
        return (
            query.order_by(desc(DownloadModel.created_at), desc(DownloadModel.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
