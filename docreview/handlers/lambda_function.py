"""
AWS Lambda entry point for API Gateway proxy events.

Routes the same endpoints as the FastAPI app to the same engine. Paths may
carry the "/dev" stage prefix and may omit "/v1".
"""

import asyncio
import base64
import json
import logging
import re
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from ..api.contracts import FixRequest, ReviewRequest, RewriteRequest, SaveVersionRequest
from ..core.config import configure_logging
from ..core.dependencies import get_engine, resolve_caller
from ..core.errors import MissingInputError, ReviewError, http_status
from ..models import DocumentRef

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, Accept, X-Caller-Id",
}

_VERSIONS_PATH = re.compile(r"^/documents/(?P<document_id>[^/]+)/versions/?$")


def response(status_code: int, data: Any) -> dict:
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json; charset=utf-8",
            "Cache-Control": "no-cache, no-store, must-revalidate",
            **CORS_HEADERS,
        },
        "body": json.dumps(data),
    }


def _dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def normalize_path(path: str) -> str:
    for prefix in ("/dev", "/v1"):
        if path == prefix or path.startswith(prefix + "/"):
            path = path[len(prefix):] or "/"
    return path.rstrip("/") or "/"


def _header(event: dict, name: str) -> str:
    for key, value in (event.get("headers") or {}).items():
        if key.lower() == name.lower():
            return value or ""
    return ""


def _caller_id(event: dict) -> str:
    """Forwarded header first, then the gateway authorizer principal."""
    forwarded = _header(event, "x-caller-id")
    if forwarded:
        return forwarded
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    claims = authorizer.get("claims") or {}
    return authorizer.get("principalId") or claims.get("sub") or ""


def _body(event: dict) -> dict:
    raw = event.get("body") or ""
    if event.get("isBase64Encoded") and raw:
        raw = base64.b64decode(raw).decode("utf-8")
    if not raw:
        return {}
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


async def dispatch(event: dict) -> dict:
    http_context = (event.get("requestContext") or {}).get("http") or {}
    method = (event.get("httpMethod") or http_context.get("method") or "GET").upper()
    path = normalize_path(event.get("path") or event.get("rawPath") or "")
    logger.info("%s %s", method, path)

    if method == "OPTIONS":
        return response(200, {"success": True, "message": "CORS preflight"})
    if path == "/health":
        return response(200, {"status": "ok", "service": "docreview"})

    try:
        caller = resolve_caller(_caller_id(event))
    except PermissionError as e:
        return response(401, {"detail": str(e)})

    try:
        body = _body(event) if method == "POST" else {}
    except ValueError as e:
        return response(400, {"detail": f"Invalid JSON body: {e}"})

    try:
        return await _route(method, path, body, event, caller.caller_id)
    except ValidationError as e:
        return response(422, {"detail": e.errors(include_url=False, include_context=False)})
    except ReviewError as e:
        code = http_status(e)
        if code >= 500:
            logger.error("Request failed: %s", e)
        return response(code, {"detail": str(e)})


async def _route(method: str, path: str, body: dict, event: dict, caller_id: str) -> dict:
    versions_match: Optional[re.Match] = _VERSIONS_PATH.match(path)

    if method == "POST" and path == "/contracts/review":
        request = ReviewRequest.model_validate(body)
        if not request.storage_key:
            raise MissingInputError("storageKey")
        ref = DocumentRef(
            storage_key=request.storage_key,
            case_id=request.case_id,
            document_id=request.document_id,
            content_type=request.content_type,
        )
        logger.info("Review of %s requested by %s", ref.storage_key, caller_id)
        result = await get_engine().review(ref, request.selected_issue_id)
        return response(200, _dump(result))

    if method == "POST" and path == "/contracts/fix":
        request = FixRequest.model_validate(body)
        if not request.issue_id:
            raise MissingInputError("issueId")
        save = None
        if request.save:
            save = DocumentRef(
                storage_key=request.storage_key,
                case_id=request.case_id,
                document_id=request.document_id,
            )
        outcome = await get_engine().fix(request.text, request.issues, request.issue_id, save=save)
        return response(200, _dump(outcome))

    if method == "POST" and path == "/contracts/rewrite":
        request = RewriteRequest.model_validate(body)
        if not request.text.strip():
            raise MissingInputError("text")
        result = await get_engine().rewrite(request.text)
        return response(200, {"text": result.text, "source": result.source})

    if versions_match and method == "POST":
        request = SaveVersionRequest.model_validate(body)
        version = await get_engine().save_version(
            document_id=versions_match.group("document_id"),
            case_id=request.case_id,
            text=request.text,
            version_type=request.version_type,
            fixed_issue_ids=request.fixed_issue_ids,
            original_filename=request.original_filename,
        )
        return response(200, _dump(version))

    if versions_match and method == "GET":
        query = event.get("queryStringParameters") or {}
        history = await get_engine().list_versions(
            versions_match.group("document_id"),
            query.get("caseId", ""),
            query.get("storageKey", ""),
        )
        return response(200, _dump(history))

    return response(404, {"detail": f"Route not found: {method} {path}"})


def handler(event: dict, context: Any = None) -> dict:
    configure_logging()
    return asyncio.run(dispatch(event))
