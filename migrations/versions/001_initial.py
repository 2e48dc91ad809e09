"""Create registry, job and download tables

Revision ID: 001_initial
Revises:
Create Date: 2024-03-04

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

JOB_STATUSES = ("PENDING", "RUNNING", "COMPLETED", "FAILED")


def upgrade() -> None:
    # Registry
    op.create_table(
        "servers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("dns", sa.String(256), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_servers_name", "servers", ["name"])
    op.create_index("ix_servers_dns", "servers", ["dns"], unique=True)
    op.create_index("ix_servers_is_active", "servers", ["is_active"])

    op.create_table(
        "databases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "server_id", sa.String(36), sa.ForeignKey("servers.id"), nullable=False
        ),
        sa.Column("db_name", sa.String(256), nullable=False),
        sa.Column("db_name_key", sa.String(256), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("server_id", "db_name_key", name="uq_databases_server_name"),
    )
    op.create_index("ix_databases_server_id", "databases", ["server_id"])

    # Jobs
    op.create_table(
        "jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ticket", sa.String(256), nullable=False),
        sa.Column("server", sa.String(256), nullable=False),
        sa.Column("database", sa.String(256), nullable=False),
        sa.Column("requested_by", sa.String(320), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*JOB_STATUSES, name="job_status"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("blob_path", sa.String(1024), nullable=True),
        sa.Column("sha256", sa.String(64), nullable=True),
        sa.Column("etag", sa.String(256), nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_jobs_ticket", "jobs", ["ticket"])
    op.create_index("ix_jobs_requested_by", "jobs", ["requested_by"])
    op.create_index("ix_jobs_status", "jobs", ["status"])
    op.create_index(
        "ix_jobs_server_status_created", "jobs", ["server", "status", "created_at"]
    )
    op.create_index(
        "ix_jobs_requested_by_created", "jobs", ["requested_by", "created_at"]
    )

    # Access log
    op.create_table(
        "downloads",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_id", sa.String(36), sa.ForeignKey("jobs.id"), nullable=False),
        sa.Column("downloaded_by", sa.String(320), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("success", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_downloads_job_id", "downloads", ["job_id"])
    op.create_index("ix_downloads_downloaded_by", "downloads", ["downloaded_by"])
    op.create_index("ix_downloads_created_at", "downloads", ["created_at"])


def downgrade() -> None:
    op.drop_table("downloads")
    op.drop_table("jobs")
    op.drop_table("databases")
    op.drop_table("servers")
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        sa.Enum(name="job_status").drop(bind, checkfirst=True)
