"""
Liveness and readiness probes.

``live`` only proves the process answers. ``ready`` also checks the
database and the storage container.
"""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.base import get_db, ping_database
from ..errors import Unavailable
from ..storage.broker import CredentialBroker, get_credential_broker

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["system"])


@router.get("/live")
def live() -> Dict[str, Any]:
    return {"ok": True}


@router.get("/ready")
def ready(
    db: Session = Depends(get_db),
    broker: CredentialBroker = Depends(get_credential_broker),
) -> Dict[str, Any]:
    """Ready when the database answers and the storage container is reachable."""
    try:
        ping_database(db)
    except SQLAlchemyError as exc:
        logger.error("Readiness check failed: database", error=str(exc))
        raise Unavailable("Database not reachable") from exc

    broker.check_ready()
    return {"ok": True}
