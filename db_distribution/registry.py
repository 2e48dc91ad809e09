"""
Server and database registry.

The registry is the source of truth for what may be backed up. Jobs copy
the server DNS and database name at creation time, so later edits here
never rewrite job history.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db.models import DatabaseModel, ServerModel
from .db.services import DatabaseService, ServerService
from .errors import Conflict, InvalidInput, NotFound
from .primitives import parse_id
from .schemas.registry import DatabaseCreate, DatabaseUpdate, ServerCreate, ServerUpdate

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class Registry:
    """Registry operations with their business rules."""

    def __init__(self, db: Session):
        self.db = db
        self.servers = ServerService(db)
        self.databases = DatabaseService(db)

    # ------------------------------------------------------------------
    # Servers
    # ------------------------------------------------------------------

    def list_active_servers(self) -> List[ServerModel]:
        return self.servers.list(active_only=True)

    def get_server(self, server_id: str) -> ServerModel:
        server = self.servers.get(parse_id(server_id, "serverId"))
        if server is None:
            raise NotFound("Server not found")
        return server

    def create_server(self, body: ServerCreate) -> ServerModel:
        if self.servers.get_by_dns(body.dns):
            raise Conflict(
                "Server DNS already registered", details={"field": "dns"}
            )
        is_active = True if body.is_active is None else body.is_active
        try:
            server = self.servers.create(body.name, body.dns, is_active)
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Server DNS already registered", details={"field": "dns"})
        logger.info("Server registered", server_id=server.id, dns=server.dns)
        return server

    def update_server(self, server_id: str, body: ServerUpdate) -> ServerModel:
        server = self.get_server(server_id)
        changes = body.model_dump(exclude_unset=True)
        if not changes:
            return server

        new_dns = changes.get("dns")
        if new_dns and new_dns != server.dns:
            existing = self.servers.get_by_dns(new_dns)
            if existing and existing.id != server.id:
                raise Conflict(
                    "Server DNS already registered", details={"field": "dns"}
                )
        try:
            server = self.servers.update(server, changes)
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Server DNS already registered", details={"field": "dns"})
        logger.info("Server updated", server_id=server.id, fields=sorted(changes))
        return server

    def page_servers(
        self, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Dict[str, Any]:
        """All servers, active or not, with nested databases and counts."""
        if page < 1:
            raise InvalidInput("Invalid page", details={"field": "page"})
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise InvalidInput(
                "Invalid pageSize",
                details={"field": "pageSize", "reason": f"must be 1-{MAX_PAGE_SIZE}"},
            )

        items, total = self.servers.page(
            offset=(page - 1) * page_size, limit=page_size
        )
        return {
            "items": [server.to_dict_with_databases() for server in items],
            "page": page,
            "pageSize": page_size,
            "total": total,
            "totalPages": math.ceil(total / page_size) if total else 0,
        }

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    def list_active_databases(self, server_id: str) -> List[DatabaseModel]:
        server = self.get_server(server_id)
        return self.databases.list_for_server(server.id, active_only=True)

    def create_database(self, server_id: str, body: DatabaseCreate) -> DatabaseModel:
        server = self.get_server(server_id)
        if not server.is_active:
            raise InvalidInput("Server is inactive", details={"field": "serverId"})
        if self.databases.find_by_name(server.id, body.db_name):
            raise Conflict(
                "Database already registered on this server",
                details={"field": "dbName"},
            )
        is_active = True if body.is_active is None else body.is_active
        try:
            database = self.databases.create(server.id, body.db_name, is_active)
        except IntegrityError:
            self.db.rollback()
            raise Conflict(
                "Database already registered on this server",
                details={"field": "dbName"},
            )
        logger.info(
            "Database registered",
            server_id=server.id,
            database_id=database.id,
            db_name=database.db_name,
        )
        return database

    def update_database(self, database_id: str, body: DatabaseUpdate) -> DatabaseModel:
        database = self.databases.get(parse_id(database_id, "databaseId"))
        if database is None:
            raise NotFound("Database not found")
        changes = body.model_dump(exclude_unset=True)
        if not changes:
            return database

        new_name = changes.get("db_name")
        if new_name:
            existing = self.databases.find_by_name(database.server_id, new_name)
            if existing and existing.id != database.id:
                raise Conflict(
                    "Database already registered on this server",
                    details={"field": "dbName"},
                )
        try:
            database = self.databases.update(database, changes)
        except IntegrityError:
            self.db.rollback()
            raise Conflict(
                "Database already registered on this server",
                details={"field": "dbName"},
            )
        logger.info("Database updated", database_id=database.id, fields=sorted(changes))
        return database

    # ------------------------------------------------------------------
    # Job targets
    # ------------------------------------------------------------------

    def is_available(self, server_id: str, database: str) -> bool:
        """True if a job may target ``database`` on ``server_id``.

        Databases that were never registered are allowed; registered ones
        must be active.
        """
        server = self.servers.get(server_id)
        if server is None or not server.is_active:
            return False
        registered = self.databases.find_by_name(server.id, database)
        return registered is None or bool(registered.is_active)

    def ensure_job_target(self, server_id: str, database: str) -> ServerModel:
        """Return the server a new job will run against.

        Raises:
            InvalidInput: If the server or the registered database is not active
        """
        server: Optional[ServerModel] = self.servers.get(server_id)
        if self.is_available(server_id, database):
            return server
        if server is None or not server.is_active:
            raise InvalidInput("Server is not available", details={"field": "serverId"})
        raise InvalidInput("Database is not active", details={"field": "database"})
