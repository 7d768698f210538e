"""
Contract review, fix, rewrite and version endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import Caller, get_caller, get_engine
from ..core.errors import MissingInputError, ReviewError, http_status
from ..models import (
    DocumentRef,
    FixOutcome,
    Issue,
    ReviewResult,
    Version,
    VersionHistory,
    VersionType,
)
from ..models.review import CamelModel
from ..services.engine import ReviewEngine

logger = logging.getLogger(__name__)

contracts_router = APIRouter(tags=["contracts"])


class ReviewRequest(CamelModel):
    storage_key: str = ""
    case_id: str = ""
    document_id: str = ""
    content_type: str = ""
    selected_issue_id: Optional[str] = None


class FixRequest(CamelModel):
    text: str = ""
    issues: list[Issue] = []
    issue_id: str = ""
    save: bool = False
    document_id: str = ""
    case_id: str = ""
    storage_key: str = ""


class RewriteRequest(CamelModel):
    text: str = ""


class RewriteResponse(CamelModel):
    text: str
    source: str


class SaveVersionRequest(CamelModel):
    case_id: str = ""
    text: Optional[str] = None
    version_type: VersionType = VersionType.MANUAL
    fixed_issue_ids: list[str] = []
    original_filename: str = ""


def _as_http(e: ReviewError) -> HTTPException:
    code = http_status(e)
    if code >= 500:
        logger.error("Request failed: %s", e)
    return HTTPException(status_code=code, detail=str(e))


@contracts_router.post("/contracts/review", response_model=ReviewResult)
async def review_contract(
    request: ReviewRequest,
    caller: Caller = Depends(get_caller),
    engine: ReviewEngine = Depends(get_engine),
):
    """Extract, analyze and annotate a stored contract."""
    if not request.storage_key:
        raise _as_http(MissingInputError("storageKey"))

    ref = DocumentRef(
        storage_key=request.storage_key,
        case_id=request.case_id,
        document_id=request.document_id,
        content_type=request.content_type,
    )
    logger.info("Review of %s requested by %s", ref.storage_key, caller.caller_id)
    return await engine.review(ref, request.selected_issue_id)


@contracts_router.post("/contracts/fix", response_model=FixOutcome)
async def fix_issue(
    request: FixRequest,
    caller: Caller = Depends(get_caller),
    engine: ReviewEngine = Depends(get_engine),
):
    """Apply one issue's fix policy. With save=true the result becomes a new version."""
    if not request.issue_id:
        raise _as_http(MissingInputError("issueId"))

    save = None
    if request.save:
        save = DocumentRef(
            storage_key=request.storage_key,
            case_id=request.case_id,
            document_id=request.document_id,
        )

    try:
        return await engine.fix(request.text, request.issues, request.issue_id, save=save)
    except ReviewError as e:
        raise _as_http(e)


@contracts_router.post("/contracts/rewrite", response_model=RewriteResponse)
async def rewrite_contract(
    request: RewriteRequest,
    caller: Caller = Depends(get_caller),
    engine: ReviewEngine = Depends(get_engine),
):
    if not request.text.strip():
        raise _as_http(MissingInputError("text"))
    result = await engine.rewrite(request.text)
    return RewriteResponse(text=result.text, source=result.source)


@contracts_router.post("/documents/{document_id}/versions", response_model=Version)
async def save_version(
    document_id: str,
    request: SaveVersionRequest,
    caller: Caller = Depends(get_caller),
    engine: ReviewEngine = Depends(get_engine),
):
    """Persist text as the next version of a document."""
    try:
        return await engine.save_version(
            document_id=document_id,
            case_id=request.case_id,
            text=request.text,
            version_type=request.version_type,
            fixed_issue_ids=request.fixed_issue_ids,
            original_filename=request.original_filename,
        )
    except ReviewError as e:
        raise _as_http(e)


@contracts_router.get("/documents/{document_id}/versions", response_model=VersionHistory)
async def list_versions(
    document_id: str,
    case_id: str = Query(default="", alias="caseId"),
    storage_key: str = Query(default="", alias="storageKey"),
    caller: Caller = Depends(get_caller),
    engine: ReviewEngine = Depends(get_engine),
):
    """Version history, oldest first. Listing failures come back degraded, not as errors."""
    return await engine.list_versions(document_id, case_id, storage_key)
