"""Unit tests for role resolution."""

import pytest

from db_distribution.auth.principal import AuthenticatedPrincipal
from db_distribution.auth.roles import (
    Role,
    RoleConfig,
    require_role,
    resolve_role,
    role_config_from_settings,
)
from db_distribution.config import Settings, parse_csv
from db_distribution.errors import Forbidden

CONFIG = RoleConfig(admin_group_ids=["g-admin"], auditor_group_ids=["g-audit"])


def make_principal(*groups: str) -> AuthenticatedPrincipal:
    return AuthenticatedPrincipal(
        subject_id="oid-1", username="user@example.com", groups=frozenset(groups)
    )


class TestParseCsv:
    def test_strips_whitespace_and_drops_empties(self):
        assert parse_csv("  a , ,b  ") == ["a", "b"]

    def test_empty_string_returns_empty_list(self):
        assert parse_csv("") == []

    def test_none_returns_empty_list(self):
        assert parse_csv(None) == []


class TestResolveRole:
    def test_admin_group_resolves_to_admin(self):
        assert resolve_role(make_principal("g-admin"), CONFIG) == Role.ADMIN

    def test_auditor_group_resolves_to_auditor(self):
        assert resolve_role(make_principal("g-audit"), CONFIG) == Role.AUDITOR

    def test_admin_wins_over_auditor(self):
        assert resolve_role(make_principal("g-audit", "g-admin"), CONFIG) == Role.ADMIN

    def test_unknown_groups_resolve_to_developer(self):
        assert resolve_role(make_principal("g-other"), CONFIG) == Role.DEVELOPER

    def test_no_groups_resolve_to_developer(self):
        assert resolve_role(make_principal(), CONFIG) == Role.DEVELOPER

    def test_empty_configuration_grants_nothing(self):
        config = RoleConfig()
        assert resolve_role(make_principal("g-admin", "g-audit"), config) == Role.DEVELOPER

    @pytest.mark.parametrize(
        "role, expected",
        [(Role.ADMIN, True), (Role.AUDITOR, True), (Role.DEVELOPER, False)],
    )
    def test_sees_all_jobs(self, role, expected):
        assert role.sees_all_jobs is expected


class TestRoleConfigFromSettings:
    def test_reads_comma_separated_groups(self):
        settings = Settings(
            _env_file=None,
            aad_allowed_groups_admins=" a1 , a2 ",
            aad_allowed_groups_auditors="",
        )
        config = role_config_from_settings(settings)
        assert config.admin_group_ids == ["a1", "a2"]
        assert config.auditor_group_ids == []


class TestRequireRole:
    def test_returns_role_when_allowed(self):
        role = require_role(make_principal("g-audit"), (Role.ADMIN, Role.AUDITOR), CONFIG)
        assert role == Role.AUDITOR

    def test_admin_only_message(self):
        with pytest.raises(Forbidden) as exc_info:
            require_role(make_principal("g-audit"), (Role.ADMIN,), CONFIG)
        assert exc_info.value.message == "Admin role required"

    def test_auditor_message(self):
        with pytest.raises(Forbidden) as exc_info:
            require_role(make_principal(), (Role.ADMIN, Role.AUDITOR), CONFIG)
        assert exc_info.value.message == "Auditor role required"
