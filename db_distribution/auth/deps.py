"""
FastAPI dependencies for caller authentication.

Human callers present an Azure AD access token; runners present the shared
runner secret. Both arrive as ``Authorization: Bearer <token>``.
"""

from __future__ import annotations

import threading
from typing import Optional

import structlog
from fastapi import Depends, Header

from ..config import Settings, get_settings
from ..errors import Unauthenticated, Unavailable
from .azure_jwt import Authenticator, AzureJwtAuthenticator
from .principal import AuthenticatedPrincipal, RunnerIdentity
from .roles import Role, require_role, role_config_from_settings
from .runner import verify_runner_token

_authenticator: Optional[Authenticator] = None
_authenticator_lock = threading.Lock()


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer`` header value."""
    if not authorization:
        raise Unauthenticated("Missing Authorization header")
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthenticated("Authorization header must use the Bearer scheme")
    return token


def get_authenticator(settings: Settings = Depends(get_settings)) -> Authenticator:
    """Process-wide token verifier (FastAPI dependency)."""
    global _authenticator
    if _authenticator is None:
        if not settings.aad_authority_url:
            raise Unavailable("Authentication is not configured")
        with _authenticator_lock:
            if _authenticator is None:
                _authenticator = AzureJwtAuthenticator(
                    authority=settings.aad_authority_url,
                    audiences=settings.allowed_audiences,
                    jwks_timeout=settings.aad_jwks_timeout_seconds,
                )
    return _authenticator


def get_current_principal(
    authorization: Optional[str] = Header(default=None),
    authenticator: Authenticator = Depends(get_authenticator),
) -> AuthenticatedPrincipal:
    token = extract_bearer_token(authorization)
    principal = authenticator.authenticate(token)
    structlog.contextvars.bind_contextvars(subject_id=principal.subject_id)
    return principal


def require_admin(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedPrincipal:
    require_role(principal, (Role.ADMIN,), role_config_from_settings(settings))
    return principal


def get_runner(
    authorization: Optional[str] = Header(default=None),
    x_runner_id: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> RunnerIdentity:
    token = extract_bearer_token(authorization)
    runner = verify_runner_token(token, settings.runner_bearer_token, x_runner_id)
    structlog.contextvars.bind_contextvars(runner_id=runner.runner_id)
    return runner
