"""
DB Distribution

Coordinates database backup jobs between operators and backup runners, and
brokers short-lived storage credentials for the resulting artifacts.
"""

import importlib.metadata

__version__ = importlib.metadata.version("db-distribution")

from .jobs.coordinator import JobCoordinator
from .jobs.states import JobStatus, Transition
from .registry import Registry

__all__ = [
    "JobCoordinator",
    "JobStatus",
    "Registry",
    "Transition",
]
