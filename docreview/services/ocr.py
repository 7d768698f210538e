"""
OCR providers for asynchronous text detection jobs.

Async wrapper around the sync boto3 Textract client (same pattern as the
S3 backend): start a job for a stored document, then poll its status.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class OCRStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class OCRJob:
    status: OCRStatus
    lines: list[str] = field(default_factory=list)


class OCRProvider(ABC):
    @abstractmethod
    async def start_job(self, storage_key: str) -> str:
        """Submit a stored document. Returns the job id."""
        ...

    @abstractmethod
    async def poll_job(self, job_id: str) -> OCRJob:
        """Current job status; lines are filled once it succeeded."""
        ...


# Textract JobStatus → ours. PARTIAL_SUCCESS still carries usable lines.
_TEXTRACT_STATUS = {
    "IN_PROGRESS": OCRStatus.RUNNING,
    "SUCCEEDED": OCRStatus.SUCCEEDED,
    "PARTIAL_SUCCESS": OCRStatus.SUCCEEDED,
    "FAILED": OCRStatus.FAILED,
}


class TextractOCR(OCRProvider):
    """AWS Textract StartDocumentTextDetection / GetDocumentTextDetection."""

    def __init__(self, settings: Optional[Settings] = None, client=None):
        self.settings = settings or get_settings()
        self.bucket = self.settings.s3_bucket_name
        self._client = client

    def _get_client(self):
        if self._client is None:
            import boto3

            kwargs = {"region_name": self.settings.aws_region}
            if self.settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = self.settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = self.settings.aws_secret_access_key
            self._client = boto3.client("textract", **kwargs)
        return self._client

    async def start_job(self, storage_key: str) -> str:
        def _start() -> str:
            resp = self._get_client().start_document_text_detection(
                DocumentLocation={"S3Object": {"Bucket": self.bucket, "Name": storage_key}},
            )
            return resp["JobId"]

        job_id = await asyncio.to_thread(_start)
        logger.info("Textract job started: %s (key=%s)", job_id, storage_key)
        return job_id

    async def poll_job(self, job_id: str) -> OCRJob:
        return await asyncio.to_thread(self._sync_poll, job_id)

    def _sync_poll(self, job_id: str) -> OCRJob:
        client = self._get_client()
        resp = client.get_document_text_detection(JobId=job_id)
        status = _TEXTRACT_STATUS.get(resp.get("JobStatus", ""), OCRStatus.RUNNING)
        if status != OCRStatus.SUCCEEDED:
            return OCRJob(status=status)

        # Results are paginated; collect LINE blocks from every page in order
        lines = _line_texts(resp)
        next_token = resp.get("NextToken")
        while next_token:
            resp = client.get_document_text_detection(JobId=job_id, NextToken=next_token)
            lines.extend(_line_texts(resp))
            next_token = resp.get("NextToken")

        return OCRJob(status=OCRStatus.SUCCEEDED, lines=lines)


def _line_texts(resp: dict) -> list[str]:
    return [
        block.get("Text", "")
        for block in resp.get("Blocks", [])
        if block.get("BlockType") == "LINE"
    ]
