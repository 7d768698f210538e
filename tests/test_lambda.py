"""
Lambda adapter tests with API Gateway proxy events.
"""

import asyncio
import json

import pytest
from conftest import LIABILITY_TEXT

import docreview.core.dependencies as dependencies
import docreview.handlers.lambda_function as lambda_function
from docreview.core.flags import FeatureFlags
from docreview.handlers.lambda_function import handler, normalize_path


@pytest.fixture(autouse=True)
def use_test_engine(engine, monkeypatch):
    monkeypatch.setattr(lambda_function, "get_engine", lambda: engine)


def _event(method, path, body=None, headers=None, query=None):
    return {
        "httpMethod": method,
        "path": path,
        "headers": headers or {},
        "queryStringParameters": query,
        "body": json.dumps(body) if body is not None else None,
    }


def _call(*args, **kwargs):
    resp = handler(_event(*args, **kwargs), None)
    return resp["statusCode"], json.loads(resp["body"]), resp["headers"]


@pytest.mark.parametrize("path, expected", [
    ("/dev/v1/contracts/review", "/contracts/review"),
    ("/v1/contracts/review", "/contracts/review"),
    ("/contracts/review/", "/contracts/review"),
    ("/dev/health", "/health"),
    ("/developers", "/developers"),
])
def test_normalize_path(path, expected):
    assert normalize_path(path) == expected


def test_health_with_stage_prefix():
    status, body, headers = _call("GET", "/dev/health")
    assert status == 200
    assert body["status"] == "ok"
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_preflight():
    status, _, headers = _call("OPTIONS", "/dev/v1/contracts/review")
    assert status == 200
    assert "POST" in headers["Access-Control-Allow-Methods"]


def test_review_and_fix(storage):
    asyncio.run(storage.put("cases/1/c.txt", LIABILITY_TEXT.encode(), "text/plain"))

    status, review, _ = _call("POST", "/dev/contracts/review", {"storageKey": "cases/1/c.txt"})
    assert status == 200
    issue = review["issues"][0]
    assert issue["category"] == "no-liability"

    status, outcome, _ = _call("POST", "/dev/contracts/fix", {
        "text": review["extracted"]["text"],
        "issues": review["issues"],
        "issueId": issue["id"],
    })
    assert status == 200
    assert "liability cap of $100,000" in outcome["fixedText"]
    assert outcome["issues"][0]["id"] == "none"


def test_versions_round_trip():
    for text in ("one", "two"):
        status, _, _ = _call("POST", "/v1/documents/doc-3/versions", {"caseId": "c", "text": text})
        assert status == 200

    status, history, _ = _call("GET", "/v1/documents/doc-3/versions", query={"caseId": "c"})

    assert status == 200
    assert [v["versionNumber"] for v in history["versions"]] == [1, 2]


def test_caller_errors_map_to_status():
    assert _call("POST", "/contracts/review", {})[0] == 400
    assert _call("POST", "/contracts/fix", {"text": "x", "issues": [], "issueId": "ghost"})[0] == 404
    assert _call("POST", "/contracts/fix", {"issues": "not-a-list", "issueId": "a"})[0] == 422


def test_invalid_json_body():
    event = _event("POST", "/contracts/review")
    event["body"] = "{not json"
    assert handler(event, None)["statusCode"] == 400


def test_unknown_route():
    assert _call("GET", "/cases")[0] == 404


def test_caller_required_when_flagged(monkeypatch):
    monkeypatch.setattr(dependencies, "get_flags", lambda: FeatureFlags(FF_REQUIRE_CALLER=True))

    assert _call("POST", "/contracts/rewrite", {"text": "x"})[0] == 401
    status, body, _ = _call("POST", "/contracts/rewrite", {"text": "shall"}, headers={"x-caller-id": "u1"})
    assert status == 200
    assert body["text"] == "must"
