"""
SQLAlchemy models for DB Distribution.
"""

from typing import Any, Dict

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..jobs.states import JobStatus
from ..primitives import generate_id, to_iso, utc_now
from .base import Base

job_status_enum = Enum(
    *[status.value for status in JobStatus],
    name="job_status",
)


class ServerModel(Base):
    """A SQL Server instance that backups can be taken from."""

    __tablename__ = "servers"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(256), nullable=False, index=True)
    dns = Column(String(256), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    databases = relationship(
        "DatabaseModel",
        back_populates="server",
        order_by="DatabaseModel.db_name",
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "dns": self.dns,
            "isActive": self.is_active,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    def to_dict_with_databases(self) -> Dict[str, Any]:
        """Admin view: server plus nested databases and counts."""
        databases = [db.to_dict() for db in self.databases]
        data = self.to_dict()
        data["databases"] = databases
        data["totalDatabases"] = len(databases)
        data["activeDatabases"] = sum(1 for db in databases if db["isActive"])
        return data


class DatabaseModel(Base):
    """A database registered on a server.

    ``db_name_key`` holds the lowercased name so that uniqueness within a
    server is case-insensitive on every backend.
    """

    __tablename__ = "databases"

    id = Column(String(36), primary_key=True, default=generate_id)
    server_id = Column(String(36), ForeignKey("servers.id"), nullable=False, index=True)
    db_name = Column(String(256), nullable=False)
    db_name_key = Column(String(256), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    server = relationship("ServerModel", back_populates="databases")

    __table_args__ = (
        UniqueConstraint("server_id", "db_name_key", name="uq_databases_server_name"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "serverId": self.server_id,
            "dbName": self.db_name,
            "isActive": self.is_active,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }


class JobModel(Base):
    """A backup job.

    ``server`` and ``database`` are copies of the DNS name and database name
    taken when the job was created. They are not foreign keys: job history
    must keep pointing at what was actually backed up even after the
    registry entry is renamed or deactivated.
    """

    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=generate_id)
    ticket = Column(String(256), nullable=False, index=True)
    server = Column(String(256), nullable=False)
    database = Column(String(256), nullable=False)
    requested_by = Column(String(320), nullable=False, index=True)

    status = Column(
        job_status_enum,
        nullable=False,
        default=JobStatus.PENDING.value,
        index=True,
    )

    # Artifact
    blob_path = Column(String(1024), nullable=True)
    sha256 = Column(String(64), nullable=True)
    etag = Column(String(256), nullable=True)
    error = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    downloads = relationship("DownloadModel", back_populates="job")

    # Runners poll by (server, status) ordered by creation time
    __table_args__ = (
        Index("ix_jobs_server_status_created", "server", "status", "created_at"),
        Index("ix_jobs_requested_by_created", "requested_by", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "ticket": self.ticket,
            "server": self.server,
            "database": self.database,
            "status": self.status,
            "requestedBy": self.requested_by,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "blobPath": self.blob_path,
            "etag": self.etag,
            "sha256": self.sha256,
            "error": self.error,
            "completedAt": to_iso(self.completed_at),
        }

    def to_runner_dict(self) -> Dict[str, Any]:
        """The subset a runner needs to start a backup."""
        return {
            "id": self.id,
            "database": self.database,
            "ticket": self.ticket,
            "server": self.server,
        }


class DownloadModel(Base):
    """One download attempt of a job artifact. Rows are never updated."""

    __tablename__ = "downloads"

    id = Column(String(36), primary_key=True, default=generate_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    downloaded_by = Column(String(320), nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    job = relationship("JobModel", back_populates="downloads")

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "jobId": self.job_id,
            "downloadedBy": self.downloaded_by,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "success": self.success,
            "createdAt": to_iso(self.created_at),
        }
