"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter, Depends

from ..core.dependencies import get_caller
from .contracts import contracts_router

router = APIRouter()


# ── Health (no caller) ───────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "docreview"}


# ── V1 routes ────────────────────────────────────────────────────────

router.include_router(contracts_router, prefix="/v1", dependencies=[Depends(get_caller)])
