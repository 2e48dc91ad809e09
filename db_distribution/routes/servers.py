"""
Registry API routes.

Any signed-in user can browse active servers and databases; changes and the
full paginated view are admin only.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from ..auth.deps import get_current_principal, require_admin
from ..auth.principal import AuthenticatedPrincipal
from ..registry import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Registry
from ..schemas.registry import DatabaseCreate, DatabaseUpdate, ServerCreate, ServerUpdate
from .deps import get_registry

router = APIRouter(tags=["registry"])


# =============================================================================
# Servers
# =============================================================================


@router.get("/servers")
def list_servers(
    _principal: AuthenticatedPrincipal = Depends(get_current_principal),
    registry: Registry = Depends(get_registry),
) -> Dict[str, Any]:
    """List active servers."""
    return {"data": [server.to_dict() for server in registry.list_active_servers()]}


@router.post("/servers")
def create_server(
    body: ServerCreate,
    _admin: AuthenticatedPrincipal = Depends(require_admin),
    registry: Registry = Depends(get_registry),
) -> Dict[str, Any]:
    return {"data": registry.create_server(body).to_dict()}


@router.patch("/servers/{server_id}")
def update_server(
    server_id: str,
    body: ServerUpdate,
    _admin: AuthenticatedPrincipal = Depends(require_admin),
    registry: Registry = Depends(get_registry),
) -> Dict[str, Any]:
    return {"data": registry.update_server(server_id, body).to_dict()}


@router.get("/admin/servers")
def page_servers(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    _admin: AuthenticatedPrincipal = Depends(require_admin),
    registry: Registry = Depends(get_registry),
) -> Dict[str, Any]:
    """All servers, including inactive ones, with their databases."""
    return {"data": registry.page_servers(page=page, page_size=page_size)}


# =============================================================================
# Databases
# =============================================================================


@router.get("/servers/{server_id}/databases")
def list_databases(
    server_id: str,
    _principal: AuthenticatedPrincipal = Depends(get_current_principal),
    registry: Registry = Depends(get_registry),
) -> Dict[str, Any]:
    """List active databases of a server."""
    databases = registry.list_active_databases(server_id)
    return {"data": [database.to_dict() for database in databases]}


@router.post("/servers/{server_id}/databases")
def create_database(
    server_id: str,
    body: DatabaseCreate,
    _admin: AuthenticatedPrincipal = Depends(require_admin),
    registry: Registry = Depends(get_registry),
) -> Dict[str, Any]:
    return {"data": registry.create_database(server_id, body).to_dict()}


@router.patch("/databases/{database_id}")
def update_database(
    database_id: str,
    body: DatabaseUpdate,
    _admin: AuthenticatedPrincipal = Depends(require_admin),
    registry: Registry = Depends(get_registry),
) -> Dict[str, Any]:
    return {"data": registry.update_database(database_id, body).to_dict()}
