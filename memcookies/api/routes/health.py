"""Health check endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from memcookies import __version__

router = APIRouter(tags=["health"])


@router.get("/api/v1/health")
async def health_check() -> dict[str, Any]:
    return {"status": "healthy", "version": __version__}
