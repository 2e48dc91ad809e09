"""
Caller authentication and role resolution.
"""

from .azure_jwt import Authenticator, AzureJwtAuthenticator, principal_from_claims
from .principal import AuthenticatedPrincipal, RunnerIdentity
from .roles import Role, RoleConfig, require_role, resolve_role, role_config_from_settings
from .runner import verify_runner_token

__all__ = [
    "AuthenticatedPrincipal",
    "Authenticator",
    "AzureJwtAuthenticator",
    "Role",
    "RoleConfig",
    "RunnerIdentity",
    "principal_from_claims",
    "require_role",
    "resolve_role",
    "role_config_from_settings",
    "verify_runner_token",
]
