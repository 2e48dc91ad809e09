"""
HTTP routers. All of them are mounted under ``/api``.
"""

from fastapi import APIRouter

from . import downloads, health, jobs, servers

api_router = APIRouter(prefix="/api")
api_router.include_router(health.router)
api_router.include_router(servers.router)
api_router.include_router(jobs.router)
api_router.include_router(downloads.router)

__all__ = ["api_router"]
