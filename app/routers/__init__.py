"""API routers for the escrow reservation backend."""
from fastapi import APIRouter

from . import apikeys, escrow, health, ops, users


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(users.router)
    api_router.include_router(apikeys.router)
    api_router.include_router(escrow.router)
    api_router.include_router(ops.router)
    return api_router
