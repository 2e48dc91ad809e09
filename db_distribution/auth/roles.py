"""
Role resolution from group memberships.

Roles (highest first):
- admin: member of any configured admin group
- auditor: member of any configured auditor group
- developer: everyone else

Configuration:
- AAD_ALLOWED_GROUPS_ADMINS / AAD_ALLOWED_GROUPS_AUDITORS: comma-separated
  group object ids. Empty or unset = nobody gets that role.

The checks run in a fixed order, so a principal in both an admin and an
auditor group always resolves to admin.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel

from ..config import Settings, get_settings, parse_csv
from ..errors import Forbidden
from .principal import AuthenticatedPrincipal


class Role(str, Enum):
    ADMIN = "admin"
    AUDITOR = "auditor"
    DEVELOPER = "developer"

    @property
    def sees_all_jobs(self) -> bool:
        return self in (Role.ADMIN, Role.AUDITOR)


class RoleConfig(BaseModel):
    """Configuration for role resolution."""

    admin_group_ids: List[str] = []
    auditor_group_ids: List[str] = []


def role_config_from_settings(settings: Settings) -> RoleConfig:
    """Build the role configuration from application settings."""
    return RoleConfig(
        admin_group_ids=parse_csv(settings.aad_allowed_groups_admins),
        auditor_group_ids=parse_csv(settings.aad_allowed_groups_auditors),
    )


def _intersects(groups: Iterable[str], allowed: Iterable[str]) -> bool:
    allowed_set = set(allowed)
    return bool(allowed_set) and not allowed_set.isdisjoint(groups)


def resolve_role(
    principal: AuthenticatedPrincipal, config: Optional[RoleConfig] = None
) -> Role:
    """
    Map a principal's groups to exactly one role.

    This is a pure function: no DB access, no FastAPI request objects.
    """
    if config is None:
        config = role_config_from_settings(get_settings())

    if _intersects(principal.groups, config.admin_group_ids):
        return Role.ADMIN
    if _intersects(principal.groups, config.auditor_group_ids):
        return Role.AUDITOR
    return Role.DEVELOPER


def require_role(
    principal: AuthenticatedPrincipal,
    allowed: Iterable[Role],
    config: Optional[RoleConfig] = None,
) -> Role:
    """Resolve the role and raise ``Forbidden`` unless it is allowed."""
    allowed = tuple(allowed)
    role = resolve_role(principal, config)
    if role not in allowed:
        if allowed == (Role.ADMIN,):
            raise Forbidden("Admin role required")
        raise Forbidden("Auditor role required")
    return role
