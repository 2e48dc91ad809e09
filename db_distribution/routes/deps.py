"""Request-scoped service wiring shared by the routers."""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..access_log import AccessLog
from ..config import Settings, get_settings
from ..db.base import get_db
from ..jobs.coordinator import JobCoordinator
from ..registry import Registry
from ..storage.broker import CredentialBroker, get_credential_broker


def get_registry(db: Session = Depends(get_db)) -> Registry:
    return Registry(db)


def get_coordinator(
    db: Session = Depends(get_db),
    broker: CredentialBroker = Depends(get_credential_broker),
    settings: Settings = Depends(get_settings),
) -> JobCoordinator:
    return JobCoordinator(db, broker, settings=settings)


def get_access_log(
    db: Session = Depends(get_db),
    coordinator: JobCoordinator = Depends(get_coordinator),
) -> AccessLog:
    return AccessLog(db, coordinator)
