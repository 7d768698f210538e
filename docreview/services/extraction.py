"""
Text extraction for review.

Stages, each best-effort:
  1. OCR job (flagged), polled on a fixed interval, bounded attempts
  2. Direct read of the stored object, textual content types only
  3. Placeholder demo text naming the storage key

extract() never raises. The provenance tag tells callers which stage won.
"""

import asyncio
import logging
from typing import Optional

from ..core.config import Settings, get_settings
from ..core.errors import ReviewError
from ..core.flags import FeatureFlags, get_flags
from ..core.storage import ObjectStore
from ..models import DocumentRef, ExtractedText, Provenance
from .ocr import OCRProvider, OCRStatus

logger = logging.getLogger(__name__)

PLACEHOLDER_TEMPLATE = (
    "This is a demo contract extracted from {key}.\n"
    "It contains several clauses. The parties SHALL be responsible for any loss.\n"
    "The company disclaims liability without limitation. The term is indefinite and ambiguous."
)


def placeholder_text(storage_key: str) -> str:
    return PLACEHOLDER_TEMPLATE.format(key=storage_key)


def is_textual(content_type: str) -> bool:
    """text/* or application/json, ignoring parameters like charset."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    return media_type.startswith("text/") or media_type == "application/json"


class ExtractionPipeline:
    def __init__(
        self,
        storage: ObjectStore,
        ocr: Optional[OCRProvider] = None,
        settings: Optional[Settings] = None,
        flags: Optional[FeatureFlags] = None,
    ):
        self.storage = storage
        self.ocr = ocr
        self.settings = settings or get_settings()
        self.flags = flags or get_flags()

    async def extract(self, ref: DocumentRef) -> ExtractedText:
        key = ref.storage_key

        if self.flags.use_ocr and self.ocr is not None:
            text = await self._ocr_extract(key)
            if text:
                return ExtractedText(text=text, provenance=Provenance.OCR, storage_key=key)

        text = await self._plain_read(key)
        if text:
            return ExtractedText(text=text, provenance=Provenance.PLAIN_READ, storage_key=key)

        logger.info("No extractable text for %s, using placeholder", key)
        return ExtractedText(
            text=placeholder_text(key),
            provenance=Provenance.PLACEHOLDER,
            storage_key=key,
        )

    async def _ocr_extract(self, key: str) -> str:
        interval = self.settings.ocr_poll_interval_seconds
        max_attempts = self.settings.ocr_max_poll_attempts
        try:
            job_id = await self.ocr.start_job(key)
            for _ in range(max_attempts):
                await asyncio.sleep(interval)
                job = await self.ocr.poll_job(job_id)
                if job.status == OCRStatus.SUCCEEDED:
                    logger.info("OCR job %s succeeded: %d lines", job_id, len(job.lines))
                    return "\n".join(job.lines)
                if job.status == OCRStatus.FAILED:
                    logger.warning("OCR job %s failed, falling back", job_id)
                    return ""
            logger.warning("OCR job %s timed out after %d polls, falling back", job_id, max_attempts)
        except Exception as e:
            # Provider SDK errors are not ours to classify; any failure falls through
            logger.warning("OCR failed for %s, falling back: %s", key, e)
        return ""

    async def _plain_read(self, key: str) -> str:
        try:
            obj = await self.storage.get(key)
        except ReviewError as e:
            logger.warning("Could not read %s for review: %s", key, e)
            return ""

        if not is_textual(obj.content_type):
            logger.info("Skipping direct read of %s (content type %r)", key, obj.content_type)
            return ""
        return obj.body.decode("utf-8", errors="replace")
