"""Identities the API acts on behalf of."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """A verified human caller. Lives for one request."""

    subject_id: str
    username: str
    groups: FrozenSet[str] = field(default_factory=frozenset)
    name: Optional[str] = None
    email: Optional[str] = None
    tenant_id: Optional[str] = None

    @property
    def identity(self) -> str:
        """Requester identity stored on jobs and download records."""
        return self.email or self.username


@dataclass(frozen=True)
class RunnerIdentity:
    """A backup runner authenticated with the shared runner secret."""

    runner_id: str = "runner"
