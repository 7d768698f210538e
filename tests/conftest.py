"""
Pytest configuration and fixtures for docreview tests.
"""

import pytest

from docreview.core.config import Settings
from docreview.core.errors import ModelError
from docreview.core.flags import FeatureFlags
from docreview.core.storage import LocalStorage
from docreview.services.engine import ReviewEngine
from docreview.services.llm import TextModel
from docreview.services.ocr import OCRJob, OCRProvider, OCRStatus


LIABILITY_TEXT = "The company disclaims liability without limitation."


class FakeOCR(OCRProvider):
    """Returns the scripted statuses in order, then keeps returning the last one."""

    def __init__(self, statuses=None, lines=None, fail_start=False):
        self.statuses = list(statuses or [OCRStatus.SUCCEEDED])
        self.lines = lines or []
        self.fail_start = fail_start
        self.started = []
        self.polls = 0

    async def start_job(self, storage_key):
        if self.fail_start:
            raise RuntimeError("textract unavailable")
        self.started.append(storage_key)
        return "job-1"

    async def poll_job(self, job_id):
        status = self.statuses[min(self.polls, len(self.statuses) - 1)]
        self.polls += 1
        lines = self.lines if status == OCRStatus.SUCCEEDED else []
        return OCRJob(status=status, lines=lines)


class FakeModel(TextModel):
    def __init__(self, analysis="[]", rewritten="", fail=False):
        self.analysis = analysis
        self.rewritten = rewritten
        self.fail = fail
        self.analyzed = []

    async def analyze(self, text):
        if self.fail:
            raise ModelError("model down")
        self.analyzed.append(text)
        return self.analysis

    async def rewrite(self, text):
        if self.fail:
            raise ModelError("model down")
        return self.rewritten


@pytest.fixture
def settings(tmp_path):
    return Settings(
        LOCAL_STORAGE_PATH=str(tmp_path / "store"),
        OCR_POLL_INTERVAL_SECONDS=0,
        OCR_MAX_POLL_ATTEMPTS=5,
        VERSION_KEY_PREFIX="documents",
    )


@pytest.fixture
def flags():
    return FeatureFlags(FF_USE_S3=False, FF_USE_OCR=False, FF_USE_LLM=False)


@pytest.fixture
def storage(settings):
    return LocalStorage(settings.local_storage_path)


@pytest.fixture
def engine(storage, settings, flags):
    return ReviewEngine(storage, settings=settings, flags=flags)
