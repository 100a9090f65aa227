"""Health check endpoint."""
from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from caremeter.__version__ import __version__

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health_check() -> JSONResponse:
    """Liveness probe."""
    return JSONResponse(content={"healthy": True, "version": __version__})
