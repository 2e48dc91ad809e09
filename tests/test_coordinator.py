"""Service-level tests for the job coordinator."""

from datetime import timedelta

import pytest

from conftest import ADMIN, ALICE, AUDITOR, BOB, PINNED_NOW, RUNNER
from db_distribution.db.models import JobModel
from db_distribution.db.services import DatabaseService, ServerService
from db_distribution.errors import Conflict, Forbidden, InvalidInput, NotFound
from db_distribution.jobs.coordinator import JobCoordinator
from db_distribution.jobs.states import JobStatus, Transition, TransitionConflict
from db_distribution.registry import Registry
from db_distribution.schemas.jobs import JobCreate, parse_job_update

EXPECTED_KEY = (
    "raw-backups/sql01.corp.local/CRM/2024/03/05/CHG-1/db_full_CRM_20240305_1407.bak"
)
DIGEST = "0123456789ABCDEF" * 4
UNKNOWN_SERVER_ID = "7d3c5c59-2c3e-4d44-9a55-2f7f0b1b9c11"


@pytest.fixture
def coordinator(db_session, broker, test_settings) -> JobCoordinator:
    return JobCoordinator(db_session, broker, settings=test_settings, clock=lambda: PINNED_NOW)


def create(coordinator, server, principal=ALICE, database="CRM", ticket="CHG-1") -> JobModel:
    body = JobCreate(serverId=server.id, database=database, ticket=ticket)
    return coordinator.create_job(principal, body)


def report(coordinator, job_id, **payload):
    return coordinator.report(RUNNER, job_id, parse_job_update(payload))


class TestCreateJob:
    def test_creates_pending_job_with_snapshot(self, coordinator, server):
        job = create(coordinator, server)
        assert job.status == JobStatus.PENDING.value
        assert job.server == "sql01.corp.local"
        assert job.database == "CRM"
        assert job.requested_by == "alice@example.com"
        assert job.blob_path is None

    def test_unregistered_database_is_allowed(self, coordinator, server):
        job = create(coordinator, server, database="NEWDB")
        assert job.database == "NEWDB"

    def test_inactive_database_is_rejected(self, coordinator, server):
        with pytest.raises(InvalidInput) as exc_info:
            create(coordinator, server, database="legacy")
        assert exc_info.value.message == "Database is not active"

    def test_inactive_server_is_rejected(self, coordinator, db_session):
        inactive = ServerService(db_session).create("Old", "old.corp.local", is_active=False)
        with pytest.raises(InvalidInput) as exc_info:
            create(coordinator, inactive)
        assert exc_info.value.message == "Server is not available"

    def test_snapshot_survives_registry_changes(self, coordinator, server, db_session):
        job = create(coordinator, server)
        ServerService(db_session).update(server, {"dns": "sql01-renamed.corp.local"})
        assert coordinator.get_job(ALICE, job.id).server == "sql01.corp.local"


class TestJobTargetAvailability:
    @pytest.fixture
    def registry(self, db_session) -> Registry:
        return Registry(db_session)

    @pytest.mark.parametrize(
        "database, expected",
        [
            ("CRM", True),
            ("crm", True),
            ("NEVER_REGISTERED", True),
            ("LEGACY", False),
            ("legacy", False),
        ],
    )
    def test_registered_databases_must_be_active(self, registry, server, database, expected):
        assert registry.is_available(server.id, database) is expected

    def test_inactive_server_is_unavailable(self, registry, db_session):
        retired = ServerService(db_session).create("Old", "old.corp.local", is_active=False)
        assert registry.is_available(retired.id, "CRM") is False

    def test_unknown_server_is_unavailable(self, registry):
        assert registry.is_available(UNKNOWN_SERVER_ID, "CRM") is False

    def test_ensure_job_target_returns_the_server(self, registry, server):
        assert registry.ensure_job_target(server.id, "NEW_DB").dns == "sql01.corp.local"

    def test_ensure_job_target_names_the_failing_part(self, registry, server):
        with pytest.raises(InvalidInput, match="Server is not available"):
            registry.ensure_job_target(UNKNOWN_SERVER_ID, "CRM")
        with pytest.raises(InvalidInput, match="Database is not active"):
            registry.ensure_job_target(server.id, "LEGACY")


class TestVisibility:
    def test_developer_sees_only_own_jobs(self, coordinator, server):
        mine = create(coordinator, server, principal=ALICE)
        create(coordinator, server, principal=BOB)
        assert [job.id for job in coordinator.list_jobs(ALICE)] == [mine.id]

    @pytest.mark.parametrize("principal", [ADMIN, AUDITOR])
    def test_admin_and_auditor_see_all_jobs(self, coordinator, server, principal):
        create(coordinator, server, principal=ALICE)
        create(coordinator, server, principal=BOB)
        assert len(coordinator.list_jobs(principal)) == 2

    def test_developer_cannot_read_foreign_job(self, coordinator, server):
        job = create(coordinator, server, principal=BOB)
        with pytest.raises(Forbidden) as exc_info:
            coordinator.get_job(ALICE, job.id)
        assert exc_info.value.message == "Job access denied"

    def test_admin_reads_any_job(self, coordinator, server):
        job = create(coordinator, server, principal=BOB)
        assert coordinator.get_job(ADMIN, job.id).id == job.id

    def test_unknown_job_is_not_found(self, coordinator):
        with pytest.raises(NotFound):
            coordinator.get_job(ADMIN, "7d3c5c59-2c3e-4d44-9a55-2f7f0b1b9c11")

    def test_malformed_job_id_is_invalid(self, coordinator):
        with pytest.raises(InvalidInput):
            coordinator.get_job(ADMIN, "not-a-uuid")

    def test_list_filters_by_status_and_ticket(self, coordinator, server):
        first = create(coordinator, server, ticket="T-1")
        create(coordinator, server, ticket="T-2")
        report(coordinator, first.id, status="RUNNING")
        running = coordinator.list_jobs(ADMIN, status="RUNNING")
        assert [job.id for job in running] == [first.id]
        assert [job.ticket for job in coordinator.list_jobs(ADMIN, ticket="T-2")] == ["T-2"]

    def test_unknown_status_filter_is_invalid(self, coordinator):
        with pytest.raises(InvalidInput):
            coordinator.list_jobs(ADMIN, status="DONE")


class TestNextPendingJob:
    def test_fifo_per_server(self, coordinator, server, db_session):
        t1 = create(coordinator, server, ticket="T-1")
        t2 = create(coordinator, server, ticket="T-2")
        t1.created_at = PINNED_NOW - timedelta(minutes=2)
        t2.created_at = PINNED_NOW - timedelta(minutes=1)
        db_session.commit()

        assert coordinator.next_pending_job(RUNNER, "sql01.corp.local").id == t1.id
        report(coordinator, t1.id, status="RUNNING")
        assert coordinator.next_pending_job(RUNNER, "sql01.corp.local").id == t2.id

    def test_exact_server_match(self, coordinator, server):
        create(coordinator, server)
        assert coordinator.next_pending_job(RUNNER, "SQL01.corp.local") is None
        assert coordinator.next_pending_job(RUNNER, "other.corp.local") is None

    def test_no_work_returns_none(self, coordinator):
        assert coordinator.next_pending_job(RUNNER, "sql01.corp.local") is None

    def test_requires_server_dns(self, coordinator):
        with pytest.raises(InvalidInput):
            coordinator.next_pending_job(RUNNER, "  ")

    def test_requires_runner(self, coordinator):
        with pytest.raises(Forbidden) as exc_info:
            coordinator.next_pending_job(ADMIN, "sql01.corp.local")
        assert exc_info.value.message == "Runner credentials required"


class TestReport:
    def test_claim_generates_key_and_upload_url(self, coordinator, server, broker):
        job = create(coordinator, server)
        result = report(coordinator, job.id, status="RUNNING")

        assert result.transition == Transition.CLAIM
        assert result.job.status == "RUNNING"
        assert result.object_key == EXPECTED_KEY
        assert result.upload_url.startswith("https://storage.test/")
        assert broker.writes == [(EXPECTED_KEY, timedelta(minutes=60))]

    def test_claim_accepts_runner_key_under_prefix(self, coordinator, server):
        job = create(coordinator, server)
        key = "raw-backups/custom/CRM.bak"
        result = report(coordinator, job.id, status="RUNNING", blobPath=key)
        assert result.object_key == key

    def test_claim_rejects_key_outside_prefix(self, coordinator, server, broker):
        job = create(coordinator, server)
        with pytest.raises(InvalidInput):
            report(coordinator, job.id, status="RUNNING", blobPath="elsewhere/x.bak")
        assert coordinator.get_job(ADMIN, job.id).status == "PENDING"
        assert broker.writes == []

    def test_resume_keeps_key_and_reissues_url(self, coordinator, server, broker):
        job = create(coordinator, server)
        report(coordinator, job.id, status="RUNNING")
        result = report(coordinator, job.id, status="RUNNING")

        assert result.transition == Transition.RESUME
        assert result.object_key == EXPECTED_KEY
        assert len(broker.writes) == 2

    def test_assigned_key_cannot_change(self, coordinator, server):
        job = create(coordinator, server)
        report(coordinator, job.id, status="RUNNING")
        with pytest.raises(Conflict) as exc_info:
            report(coordinator, job.id, status="RUNNING", blobPath="raw-backups/other.bak")
        assert exc_info.value.message == "Object key already assigned"

    def test_complete_normalizes_checksum(self, coordinator, server):
        job = create(coordinator, server)
        report(coordinator, job.id, status="RUNNING")
        result = report(coordinator, job.id, status="COMPLETED", sha256=DIGEST, etag="0x8D")

        assert result.transition == Transition.COMPLETE
        assert result.upload_url is None
        assert result.job.status == "COMPLETED"
        assert result.job.sha256 == DIGEST.lower()
        assert result.job.etag == "0x8D"
        assert result.job.completed_at is not None
        assert result.job.blob_path == EXPECTED_KEY

    def test_bad_checksum_leaves_job_running(self, coordinator, server):
        job = create(coordinator, server)
        report(coordinator, job.id, status="RUNNING")
        with pytest.raises(InvalidInput) as exc_info:
            report(coordinator, job.id, status="COMPLETED", sha256="a" * 63)
        assert exc_info.value.details["field"] == "sha256"
        assert coordinator.get_job(ADMIN, job.id).status == "RUNNING"

    def test_complete_from_pending_conflicts(self, coordinator, server):
        job = create(coordinator, server)
        with pytest.raises(TransitionConflict) as exc_info:
            report(coordinator, job.id, status="COMPLETED", sha256=DIGEST)
        assert exc_info.value.message == "Job must be running to complete"

    def test_fail_records_error(self, coordinator, server):
        job = create(coordinator, server)
        result = report(coordinator, job.id, status="FAILED", error="disk full")
        assert result.job.status == "FAILED"
        assert result.job.error == "disk full"

    def test_completed_job_cannot_fail(self, coordinator, server):
        job = create(coordinator, server)
        report(coordinator, job.id, status="RUNNING")
        report(coordinator, job.id, status="COMPLETED", sha256=DIGEST)

        with pytest.raises(Conflict) as exc_info:
            report(coordinator, job.id, status="FAILED", error="late failure")
        assert exc_info.value.message == "Completed jobs cannot fail"

        stored = coordinator.get_job(ADMIN, job.id)
        assert stored.status == "COMPLETED"
        assert stored.error is None

    def test_failed_job_is_terminal(self, coordinator, server):
        job = create(coordinator, server)
        report(coordinator, job.id, status="FAILED", error="boom")
        with pytest.raises(Conflict):
            report(coordinator, job.id, status="RUNNING")

    def test_requires_runner(self, coordinator, server):
        job = create(coordinator, server)
        with pytest.raises(Forbidden):
            coordinator.report(ADMIN, job.id, parse_job_update({"status": "RUNNING"}))


class TestCompareAndSwap:
    def test_lost_race_is_re_evaluated(self, coordinator, server, monkeypatch):
        job = create(coordinator, server)
        report(coordinator, job.id, status="RUNNING")

        original = coordinator.jobs.compare_and_swap
        raced = []

        def racing_cas(job_id, expected_status, values):
            if not raced:
                raced.append(expected_status)
                # Another runner fails the job between read and write
                original(job_id, "RUNNING", {"status": "FAILED", "error": "other runner"})
            return original(job_id, expected_status, values)

        monkeypatch.setattr(coordinator.jobs, "compare_and_swap", racing_cas)

        with pytest.raises(TransitionConflict) as exc_info:
            report(coordinator, job.id, status="COMPLETED", sha256=DIGEST)
        assert exc_info.value.message == "Failed jobs are terminal"

        stored = coordinator.get_job(ADMIN, job.id)
        assert stored.status == "FAILED"
        assert stored.sha256 is None

    def test_gives_up_after_repeated_races(self, coordinator, server, monkeypatch):
        job = create(coordinator, server)
        monkeypatch.setattr(
            coordinator.jobs, "compare_and_swap", lambda *args, **kwargs: False
        )
        with pytest.raises(Conflict) as exc_info:
            report(coordinator, job.id, status="RUNNING")
        assert exc_info.value.message == "Job was modified concurrently"
        assert coordinator.get_job(ADMIN, job.id).status == "PENDING"


class TestReadCredential:
    def complete(self, coordinator, server, principal=ALICE):
        job = create(coordinator, server, principal=principal)
        report(coordinator, job.id, status="RUNNING")
        report(coordinator, job.id, status="COMPLETED", sha256=DIGEST)
        return job

    def test_default_ttl(self, coordinator, server, broker):
        job = self.complete(coordinator, server)
        url, ttl = coordinator.issue_read_credential(ALICE, job.id)
        assert ttl == 24
        assert url.startswith("https://storage.test/")
        assert broker.reads == [(EXPECTED_KEY, timedelta(hours=24))]

    def test_custom_ttl(self, coordinator, server, broker):
        job = self.complete(coordinator, server)
        _, ttl = coordinator.issue_read_credential(ALICE, job.id, ttl_hours=2)
        assert ttl == 2
        assert broker.reads[-1][1] == timedelta(hours=2)

    def test_ttl_above_ceiling_is_invalid(self, coordinator, server):
        job = self.complete(coordinator, server)
        with pytest.raises(InvalidInput):
            coordinator.issue_read_credential(ALICE, job.id, ttl_hours=721)

    def test_job_must_be_completed(self, coordinator, server, broker):
        job = create(coordinator, server)
        report(coordinator, job.id, status="RUNNING")
        with pytest.raises(Conflict) as exc_info:
            coordinator.issue_read_credential(ALICE, job.id)
        assert exc_info.value.message == "Job is not completed"
        assert broker.reads == []

    def test_foreign_job_is_forbidden(self, coordinator, server):
        job = self.complete(coordinator, server, principal=BOB)
        with pytest.raises(Forbidden):
            coordinator.issue_read_credential(ALICE, job.id)

    def test_auditor_can_read_any_completed_job(self, coordinator, server):
        job = self.complete(coordinator, server, principal=BOB)
        _, ttl = coordinator.issue_read_credential(AUDITOR, job.id)
        assert ttl == 24
