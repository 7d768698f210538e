"""
HTTP adapter tests through FastAPI's TestClient.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from conftest import LIABILITY_TEXT
from fastapi.testclient import TestClient

import docreview.core.dependencies as dependencies
from docreview.core.dependencies import get_engine
from docreview.core.errors import StorageError
from docreview.core.flags import FeatureFlags
from docreview.factory import create_app
from docreview.services.engine import ReviewEngine


@pytest.fixture
def client(engine):
    app = create_app()
    app.dependency_overrides[get_engine] = lambda: engine
    return TestClient(app)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_review_returns_camel_case_issues(client, storage):
    asyncio.run(storage.put("cases/1/c.txt", LIABILITY_TEXT.encode(), "text/plain"))

    r = client.post("/v1/contracts/review", json={"storageKey": "cases/1/c.txt", "caseId": "1"})

    assert r.status_code == 200
    payload = r.json()
    assert payload["extracted"]["provenance"] == "plain-read"
    issue = payload["issues"][0]
    assert issue["category"] == "no-liability"
    assert issue["severity"] == "high"
    assert {"matchStart", "matchLength", "suggestedText"} <= set(issue)
    assert "<mark" in payload["view"]["html"]


def test_review_requires_storage_key(client):
    r = client.post("/v1/contracts/review", json={})
    assert r.status_code == 400
    assert "storageKey" in r.json()["detail"]


def test_fix_and_save_round(client):
    review = client.post("/v1/contracts/review", json={"storageKey": "cases/1/scan.pdf"}).json()
    target = next(i for i in review["issues"] if i["category"] == "shall-passive")

    r = client.post("/v1/contracts/fix", json={
        "text": review["extracted"]["text"],
        "issues": review["issues"],
        "issueId": target["id"],
        "save": True,
        "documentId": "doc-1",
        "caseId": "case-1",
        "storageKey": "cases/1/scan.pdf",
    })

    assert r.status_code == 200
    outcome = r.json()
    assert "SHALL" not in outcome["fixedText"]
    assert outcome["savedVersion"]["versionNumber"] == 1
    assert outcome["savedVersion"]["versionType"] == "fixed"

    history = client.get("/v1/documents/doc-1/versions").json()
    assert [v["versionType"] for v in history["versions"]] == ["fixed"]


def test_fix_unknown_issue_is_404(client):
    r = client.post("/v1/contracts/fix", json={"text": "x", "issues": [], "issueId": "ghost"})
    assert r.status_code == 404


def test_fix_without_policy_is_422(client):
    issue = {"id": "t_0", "category": "termination", "matchStart": 0, "matchLength": 1}
    r = client.post("/v1/contracts/fix", json={"text": "x", "issues": [issue], "issueId": "t_0"})
    assert r.status_code == 422


def test_save_and_list_versions(client):
    for text in ("first", "second"):
        r = client.post("/v1/documents/doc-7/versions", json={"caseId": "c", "text": text})
        assert r.status_code == 200

    history = client.get("/v1/documents/doc-7/versions", params={"caseId": "c"}).json()

    assert [v["versionNumber"] for v in history["versions"]] == [1, 2]
    assert history["degraded"] is False


def test_save_version_requires_text(client):
    r = client.post("/v1/documents/doc-7/versions", json={"caseId": "c"})
    assert r.status_code == 400


def test_empty_history_lists_original(client):
    history = client.get("/v1/documents/new-doc/versions", params={"storageKey": "cases/2/lease.pdf"}).json()
    assert history["versions"][0]["versionId"] == "original"
    assert history["versions"][0]["synthetic"] is True


def test_version_write_failure_is_502(settings, flags):
    storage = AsyncMock()
    storage.list_by_prefix.return_value = []
    storage.put.side_effect = StorageError("bucket gone")
    app = create_app()
    app.dependency_overrides[get_engine] = lambda: ReviewEngine(storage, settings=settings, flags=flags)

    r = TestClient(app).post("/v1/documents/doc-1/versions", json={"caseId": "c", "text": "t"})

    assert r.status_code == 502


def test_listing_failure_is_degraded_200(settings, flags):
    storage = AsyncMock()
    storage.list_by_prefix.side_effect = StorageError("access denied")
    app = create_app()
    app.dependency_overrides[get_engine] = lambda: ReviewEngine(storage, settings=settings, flags=flags)

    r = TestClient(app).get("/v1/documents/doc-1/versions")

    assert r.status_code == 200
    assert r.json()["degraded"] is True


def test_rewrite(client):
    r = client.post("/v1/contracts/rewrite", json={"text": "You shall pay."})
    assert r.json() == {"text": "You must pay.", "source": "rules"}


def test_caller_required_when_flagged(client, monkeypatch):
    monkeypatch.setattr(dependencies, "get_flags", lambda: FeatureFlags(FF_REQUIRE_CALLER=True))

    assert client.post("/v1/contracts/rewrite", json={"text": "x"}).status_code == 401
    r = client.post("/v1/contracts/rewrite", json={"text": "x"}, headers={"X-Caller-Id": "user-1"})
    assert r.status_code == 200
