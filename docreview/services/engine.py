"""
Review engine: the one implementation behind the HTTP and Lambda adapters.

review: extract → detect → render
fix:    apply policy → re-detect → render → optionally save a "fixed" version
"""

import logging
from typing import Optional

from ..core.config import Settings, get_settings
from ..core.flags import FeatureFlags, get_flags
from ..core.storage import ObjectStore, get_storage
from ..models import (
    DocumentRef,
    FixOutcome,
    Issue,
    ReviewResult,
    Version,
    VersionHistory,
    VersionType,
)
from .annotator import render
from .detector import IssueDetector
from .extraction import ExtractionPipeline
from .fixer import RewriteResult, apply_fix, remove_issue, rewrite_document
from .llm import GenerativeModel, TextModel
from .ocr import OCRProvider, TextractOCR
from .versions import VersionManager

logger = logging.getLogger(__name__)


class ReviewEngine:
    """Request-scoped. Build one per request with from_settings() or inject collaborators."""

    def __init__(
        self,
        storage: ObjectStore,
        settings: Optional[Settings] = None,
        flags: Optional[FeatureFlags] = None,
        ocr: Optional[OCRProvider] = None,
        model: Optional[TextModel] = None,
    ):
        self.storage = storage
        self.settings = settings or get_settings()
        self.flags = flags or get_flags()
        self.model = model
        self.extraction = ExtractionPipeline(storage, ocr=ocr, settings=self.settings, flags=self.flags)
        self.detector = IssueDetector(model=model, flags=self.flags)
        self.versions = VersionManager(storage, settings=self.settings)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        flags: Optional[FeatureFlags] = None,
    ) -> "ReviewEngine":
        settings = settings or get_settings()
        flags = flags or get_flags()

        ocr = TextractOCR(settings) if flags.use_ocr else None
        model = None
        if flags.use_llm:
            candidate = GenerativeModel(settings, flags)
            if candidate.configured:
                model = candidate
            else:
                logger.warning("FF_USE_LLM is on but %s has no API key; using rules only", flags.llm_provider)

        return cls(get_storage(settings, flags), settings=settings, flags=flags, ocr=ocr, model=model)

    # ── Review ───────────────────────────────────────────────────────

    async def review(self, ref: DocumentRef, selected_issue_id: Optional[str] = None) -> ReviewResult:
        extracted = await self.extraction.extract(ref)
        issues, analyzer = await self.detector.analyze(extracted)
        view = render(extracted.text, issues, selected_issue_id)
        logger.info(
            "Reviewed %s: %d issues via %s (text from %s)",
            ref.storage_key, len(issues), analyzer, extracted.provenance.value,
        )
        return ReviewResult(extracted=extracted, issues=issues, view=view, analyzer=analyzer)

    # ── Fix ──────────────────────────────────────────────────────────

    async def fix(
        self,
        text: str,
        issues: list[Issue],
        issue_id: str,
        save: Optional[DocumentRef] = None,
    ) -> FixOutcome:
        """
        Apply the fix policy of one active issue.

        The returned issue set is a fresh rule scan of the fixed text (old
        offsets are stale once the text changes), minus the fixed issue.
        A fix that replaced nothing leaves the issue active and unrecorded.
        When save is given the fixed text becomes a new "fixed" version of
        that document.
        """
        target = next((i for i in issues if i.id == issue_id), None)
        remove_issue(issues, issue_id)  # raises when issue_id is not active

        result = apply_fix(text, target)
        applied = result.replacements > 0
        remaining = self.detector.detect(result.text)
        if applied:
            remaining = [i for i in remaining if i.id != issue_id]
        else:
            logger.warning("Fix for %s changed nothing; issue stays active", issue_id)
            if all(i.id != issue_id for i in remaining):
                # text is unchanged, so the target's offsets still hold
                remaining = [i for i in remaining if i.has_offsets] + [target]
        view = render(result.text, remaining)

        saved: Optional[Version] = None
        if save is not None:
            saved = await self.versions.save_version(
                document_id=save.document_id,
                case_id=save.case_id,
                text=result.text,
                version_type=VersionType.FIXED,
                fixed_issue_ids=[issue_id] if applied else [],
                original_filename=save.storage_key.rsplit("/", 1)[-1],
            )

        return FixOutcome(
            fixed_text=result.text,
            applied_issue=target,
            applied=applied,
            replacements=result.replacements,
            issues=remaining,
            view=view,
            saved_version=saved,
        )

    async def rewrite(self, text: str) -> RewriteResult:
        model = self.model if self.flags.use_llm else None
        return await rewrite_document(text, model)

    # ── Versions ─────────────────────────────────────────────────────

    async def save_version(
        self,
        document_id: str,
        case_id: str,
        text: str,
        version_type: VersionType = VersionType.MANUAL,
        fixed_issue_ids: Optional[list[str]] = None,
        original_filename: str = "",
    ) -> Version:
        return await self.versions.save_version(
            document_id, case_id, text, version_type, fixed_issue_ids, original_filename,
        )

    async def list_versions(self, document_id: str, case_id: str = "", storage_key: str = "") -> VersionHistory:
        return await self.versions.list_versions(document_id, case_id, storage_key)
