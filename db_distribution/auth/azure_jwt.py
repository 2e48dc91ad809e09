"""
Azure AD (Entra ID) access token verification.

Tokens are RS256 JWTs signed by a key published in the tenant's JWKS
document. The signing key is picked by the token's ``kid`` header, and the
key set is cached so a verification does not fetch it every time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import jwt
import structlog

from ..errors import Unauthenticated, Unavailable
from .principal import AuthenticatedPrincipal

logger = structlog.get_logger(__name__)

ALGORITHMS = ["RS256"]
CLOCK_LEEWAY_SECONDS = 60
JWKS_CACHE_LIFESPAN_SECONDS = 3600

_USERNAME_CLAIMS = ("preferred_username", "email", "upn", "sub", "oid")


class Authenticator(ABC):
    """Turns a bearer token into a verified principal."""

    @abstractmethod
    def authenticate(self, token: str) -> AuthenticatedPrincipal:
        """Verify ``token`` or raise ``Unauthenticated``."""
        pass


def _as_groups(raw: Any) -> List[str]:
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, Iterable):
        return [str(item) for item in raw]
    return []


def principal_from_claims(claims: Dict[str, Any]) -> AuthenticatedPrincipal:
    """Build a principal from already-verified token claims."""
    subject_id = claims.get("oid")
    if not subject_id:
        raise Unauthenticated("Token missing object identifier (oid)")

    username = next(
        (str(claims[name]) for name in _USERNAME_CLAIMS if claims.get(name)),
        str(subject_id),
    )

    return AuthenticatedPrincipal(
        subject_id=str(subject_id),
        username=username,
        groups=frozenset(_as_groups(claims.get("groups"))),
        name=claims.get("name"),
        email=claims.get("email"),
        tenant_id=claims.get("tid"),
    )


class AzureJwtAuthenticator(Authenticator):
    """Verifies Azure AD access tokens against the tenant JWKS.

    Args:
        authority: Tenant authority, e.g. ``https://login.microsoftonline.com/<tid>/v2.0``.
            Also the expected ``iss`` claim.
        audiences: Accepted ``aud`` values
        jwks_timeout: Seconds to wait for the JWKS endpoint
        jwks_client: Optional pre-built ``PyJWKClient`` (tests pass a stub)
    """

    def __init__(
        self,
        authority: str,
        audiences: List[str],
        jwks_timeout: int = 10,
        jwks_client: Optional[jwt.PyJWKClient] = None,
    ):
        self.authority = authority.rstrip("/")
        self.audiences = list(audiences)
        base = self.authority
        if base.endswith("/v2.0"):
            base = base[: -len("/v2.0")]
        self.jwks_uri = f"{base}/discovery/v2.0/keys"
        self._jwks_client = jwks_client or jwt.PyJWKClient(
            self.jwks_uri,
            cache_keys=True,
            lifespan=JWKS_CACHE_LIFESPAN_SECONDS,
            timeout=jwks_timeout,
        )

    def authenticate(self, token: str) -> AuthenticatedPrincipal:
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
        except jwt.PyJWKClientConnectionError as exc:
            logger.error("JWKS fetch failed", jwks_uri=self.jwks_uri, error=str(exc))
            raise Unavailable("Identity provider unreachable") from exc
        except (jwt.PyJWKClientError, jwt.InvalidTokenError) as exc:
            logger.info("Token signing key not resolved", error=str(exc))
            raise Unauthenticated("Invalid JWT") from exc

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=ALGORITHMS,
                audience=self.audiences or None,
                issuer=self.authority,
                leeway=CLOCK_LEEWAY_SECONDS,
                options={"require": ["exp", "iss", "aud"]},
            )
        except jwt.InvalidTokenError as exc:
            logger.info("Token rejected", reason=type(exc).__name__)
            raise Unauthenticated("Invalid JWT") from exc

        return principal_from_claims(claims)
