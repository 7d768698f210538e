"""
FastAPI dependencies. Injected into route handlers.
"""

from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from .flags import get_flags
from ..services.engine import ReviewEngine


@dataclass
class Caller:
    """Identity resolved upstream (gateway authorizer). The engine never authorizes."""
    caller_id: str
    anonymous: bool = False


# Returned when FF_REQUIRE_CALLER=false and no id was forwarded
DEV_CALLER = Caller(caller_id="dev-user", anonymous=True)


def resolve_caller(caller_id: str | None) -> Caller:
    """Shared by the HTTP and Lambda adapters. Raises PermissionError when an id is required."""
    caller_id = (caller_id or "").strip()
    if caller_id:
        return Caller(caller_id=caller_id)
    if get_flags().require_caller:
        raise PermissionError("Missing caller identity")
    return DEV_CALLER


async def get_caller(x_caller_id: str = Header(default="")) -> Caller:
    """
    Resolve the caller from the X-Caller-Id header.
    Returns the dev caller if FF_REQUIRE_CALLER=false.
    """
    try:
        return resolve_caller(x_caller_id)
    except PermissionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )


def get_engine() -> ReviewEngine:
    """A fresh engine per request, wired from settings and flags."""
    return ReviewEngine.from_settings()
