"""Shared-secret authentication for backup runners."""

from __future__ import annotations

import hmac
from typing import Optional

from ..errors import Unauthenticated
from .principal import RunnerIdentity


def verify_runner_token(
    token: str, expected: str, runner_id: Optional[str] = None
) -> RunnerIdentity:
    """Compare ``token`` to the configured runner secret in constant time.

    An unset secret rejects every runner.
    """
    if not expected:
        raise Unauthenticated("Runner authorization not configured")
    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise Unauthenticated("Invalid runner token")
    return RunnerIdentity(runner_id=runner_id or "runner")
