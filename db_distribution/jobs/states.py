"""
Job lifecycle state machine.

    PENDING -> RUNNING -> COMPLETED
       |          |
       +----------+----> FAILED

The table below is the only place that decides whether a reported status is
legal for the current status. ``COMPLETED`` and ``FAILED`` are terminal.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

from ..errors import Conflict


class JobStatus(str, Enum):
    """Job status as stored and exposed on the wire."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class Transition(str, Enum):
    """Outcome of a legal (current, requested) pair."""

    CLAIM = "claim"
    RESUME = "resume"
    COMPLETE = "complete"
    FAIL = "fail"


class TransitionConflict(Conflict):
    """Raised when a reported status is not legal for the job's current status."""

    def __init__(self, current: JobStatus, requested: JobStatus, message: str):
        self.current = current
        self.requested = requested
        super().__init__(
            message,
            details={"currentStatus": current.value, "requestedStatus": requested.value},
        )


TRANSITIONS: Dict[Tuple[JobStatus, JobStatus], Transition] = {
    (JobStatus.PENDING, JobStatus.RUNNING): Transition.CLAIM,
    (JobStatus.RUNNING, JobStatus.RUNNING): Transition.RESUME,
    (JobStatus.RUNNING, JobStatus.COMPLETED): Transition.COMPLETE,
    (JobStatus.PENDING, JobStatus.FAILED): Transition.FAIL,
    (JobStatus.RUNNING, JobStatus.FAILED): Transition.FAIL,
}


def _rejection_message(current: JobStatus, requested: JobStatus) -> str:
    if current == JobStatus.COMPLETED:
        if requested == JobStatus.FAILED:
            return "Completed jobs cannot fail"
        return "Completed jobs are immutable"
    if current == JobStatus.FAILED:
        return "Failed jobs are terminal"
    if requested == JobStatus.COMPLETED:
        return "Job must be running to complete"
    if requested == JobStatus.PENDING:
        return "Jobs cannot return to pending"
    return "Job is not pending or running"


def decide_transition(current: JobStatus, requested: JobStatus) -> Transition:
    """
    Look up the transition for a reported status.

    This is a pure function: no DB access, no side effects.

    Raises:
        TransitionConflict: If the pair is not in the transition table
    """
    current = JobStatus(current)
    requested = JobStatus(requested)
    transition = TRANSITIONS.get((current, requested))
    if transition is None:
        raise TransitionConflict(
            current, requested, _rejection_message(current, requested)
        )
    return transition
