"""
Backup job lifecycle: state machine, checksum rules and the coordinator.
"""

from .states import (
    TERMINAL_STATUSES,
    JobStatus,
    Transition,
    TransitionConflict,
    decide_transition,
)

__all__ = [
    "TERMINAL_STATUSES",
    "JobStatus",
    "Transition",
    "TransitionConflict",
    "decide_transition",
]
