"""API router initialization."""

from fastapi import APIRouter

from soulgate.api.routers import health, whitelist

# Mounted at /api in main.py; health is mounted separately at the root.
api_router = APIRouter()
api_router.include_router(whitelist.router, prefix="/whitelist", tags=["Whitelist"])

__all__ = ["api_router", "health", "whitelist"]
