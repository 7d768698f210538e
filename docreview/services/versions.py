"""
Document version history in the object store.

Layout:
  {prefix}/{document_id}/versions/{version_id}.txt    content snapshot
  object metadata                                     number, type, timestamps
  {prefix}/{document_id}/versions/{version_id}.json   fixed issue ids, only when
                                                      too long for metadata

S3 user metadata is ASCII only and capped at 2 KB, so free-text values are
percent-encoded and the fixed issue id list is a percent-encoded JSON array.

Version numbers are derived by listing and reading every version's metadata:
next = floor(max) + 1. There is no conditional write, so two concurrent saves
for one document can compute the same number. Both are kept under distinct
version ids.
"""

import json
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote, unquote

from ..core.config import Settings, get_settings
from ..core.errors import MissingInputError, ReviewError, StorageError, VersionWriteError
from ..core.storage import ObjectInfo, ObjectStore
from ..models import Version, VersionHistory, VersionType

logger = logging.getLogger(__name__)

CONTENT_SUFFIX = ".txt"
SIDECAR_SUFFIX = ".json"
CONTENT_TYPE = "text/plain; charset=utf-8"
DEFAULT_VERSION_NUMBER = 1.0
MAX_INLINE_FIXED_IDS = 1024  # encoded bytes; leaves room under the 2 KB metadata cap

# Object metadata keys (S3 lower-cases user metadata anyway)
META_NUMBER = "version-number"
META_TYPE = "version-type"
META_CREATED = "created-at"
META_FILENAME = "original-filename"
META_CASE = "case-id"
META_DOCUMENT = "document-id"
META_FIXED = "fixed-issue-ids"
META_FIXED_SIDECAR = "fixed-issue-ids-sidecar"


def parse_version_number(metadata: dict[str, str]) -> float:
    try:
        number = float(metadata.get(META_NUMBER, ""))
    except (TypeError, ValueError):
        return DEFAULT_VERSION_NUMBER
    if not math.isfinite(number) or number <= 0:
        return DEFAULT_VERSION_NUMBER
    return number


def _parse_created(metadata: dict[str, str], fallback: Optional[datetime]) -> datetime:
    raw = metadata.get(META_CREATED, "")
    try:
        created = datetime.fromisoformat(raw)
    except (TypeError, ValueError):
        created = fallback or datetime.fromtimestamp(0, tz=timezone.utc)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


def encode_meta(value: str) -> str:
    return quote(value or "", safe="")


def decode_meta(value: Optional[str]) -> str:
    return unquote(value or "")


def encode_issue_ids(ids: list[str]) -> str:
    return encode_meta(json.dumps(ids, ensure_ascii=False, separators=(",", ":")))


def decode_issue_ids(raw: Optional[str]) -> list[str]:
    text = decode_meta(raw)
    if not text:
        return []
    try:
        ids = json.loads(text)
    except ValueError:
        return [i for i in text.split(",") if i]  # written before ids were JSON
    if not isinstance(ids, list):
        return [i for i in text.split(",") if i]
    return [str(i) for i in ids]


def _parse_type(metadata: dict[str, str]) -> VersionType:
    try:
        return VersionType(metadata.get(META_TYPE, ""))
    except ValueError:
        return VersionType.MANUAL


class VersionManager:
    def __init__(self, storage: ObjectStore, settings: Optional[Settings] = None):
        self.storage = storage
        self.settings = settings or get_settings()

    def version_prefix(self, document_id: str) -> str:
        root = self.settings.version_key_prefix.strip("/")
        return f"{root}/{document_id}/versions/" if root else f"{document_id}/versions/"

    def version_key(self, document_id: str, version_id: str) -> str:
        return f"{self.version_prefix(document_id)}{version_id}{CONTENT_SUFFIX}"

    def sidecar_key(self, document_id: str, version_id: str) -> str:
        return f"{self.version_prefix(document_id)}{version_id}{SIDECAR_SUFFIX}"

    async def _list_version_objects(self, document_id: str) -> list[ObjectInfo]:
        objects = await self.storage.list_by_prefix(self.version_prefix(document_id))
        return [o for o in objects if o.key.endswith(CONTENT_SUFFIX)]

    async def _read_metadata(self, key: str) -> dict[str, str]:
        try:
            return await self.storage.head(key)
        except ReviewError as e:
            logger.warning("Unreadable version metadata %s: %s", key, e)
            return {}

    async def next_version_number(self, document_id: str) -> int:
        """floor(highest stored number) + 1, or 1 for a document with no versions."""
        objects = await self._list_version_objects(document_id)
        if not objects:
            return 1

        highest = DEFAULT_VERSION_NUMBER
        for obj in objects:
            highest = max(highest, parse_version_number(await self._read_metadata(obj.key)))
        return math.floor(highest) + 1

    async def save_version(
        self,
        document_id: str,
        case_id: str,
        text: str,
        version_type: VersionType = VersionType.MANUAL,
        fixed_issue_ids: Optional[list[str]] = None,
        original_filename: str = "",
    ) -> Version:
        if not document_id:
            raise MissingInputError("documentId")
        if not case_id:
            raise MissingInputError("caseId")
        if text is None:
            raise MissingInputError("text")

        try:
            number = await self.next_version_number(document_id)
        except StorageError as e:
            raise VersionWriteError(f"Could not number new version of {document_id}: {e}") from e

        version_id = uuid.uuid4().hex
        key = self.version_key(document_id, version_id)
        version = Version(
            version_id=version_id,
            document_id=document_id,
            case_id=case_id,
            version_number=number,
            version_type=version_type,
            created_at=datetime.now(timezone.utc),
            storage_key=key,
            content_snapshot=text,
            fixed_issue_ids=list(fixed_issue_ids or []),
            original_filename=original_filename,
        )

        metadata = {
            META_NUMBER: str(number),
            META_TYPE: version.version_type.value,
            META_CREATED: version.created_at.isoformat(),
            META_FILENAME: encode_meta(original_filename),
            META_CASE: encode_meta(case_id),
            META_DOCUMENT: encode_meta(document_id),
        }
        fixed = encode_issue_ids(version.fixed_issue_ids)
        try:
            if len(fixed) > MAX_INLINE_FIXED_IDS:
                # Sidecar first: a listed snapshot always has its ids available
                sidecar = json.dumps({"fixedIssueIds": version.fixed_issue_ids}).encode("utf-8")
                await self.storage.put(
                    self.sidecar_key(document_id, version_id), sidecar, "application/json",
                )
                metadata[META_FIXED_SIDECAR] = "1"
            else:
                metadata[META_FIXED] = fixed
            await self.storage.put(key, text.encode("utf-8"), CONTENT_TYPE, metadata)
        except StorageError as e:
            raise VersionWriteError(f"Could not write version {number} of {document_id}: {e}") from e

        logger.info(
            "Saved version %d of %s (%s, %d chars, fixed=%d)",
            number, document_id, version.version_type.value, len(text), len(version.fixed_issue_ids),
        )
        return version

    async def list_versions(
        self,
        document_id: str,
        case_id: str = "",
        storage_key: str = "",
    ) -> VersionHistory:
        """Ascending by creation time. Listing failures degrade to an empty history."""
        try:
            objects = await self._list_version_objects(document_id)
        except ReviewError as e:
            logger.warning("Could not list versions of %s: %s", document_id, e)
            return VersionHistory(
                document_id=document_id,
                degraded=True,
                diagnostic=f"version listing failed: {e}",
            )

        if not objects:
            return VersionHistory(
                document_id=document_id,
                versions=[self._original_upload(document_id, case_id, storage_key)],
            )

        versions = []
        for obj in objects:
            metadata = await self._read_metadata(obj.key)
            version_id = obj.key.rsplit("/", 1)[-1][:-len(CONTENT_SUFFIX)]
            versions.append(Version(
                version_id=version_id,
                document_id=document_id,
                case_id=decode_meta(metadata.get(META_CASE)) or case_id,
                version_number=parse_version_number(metadata),
                version_type=_parse_type(metadata),
                created_at=_parse_created(metadata, obj.last_modified),
                storage_key=obj.key,
                fixed_issue_ids=await self._read_fixed_ids(document_id, version_id, metadata),
                original_filename=decode_meta(metadata.get(META_FILENAME)),
            ))

        versions.sort(key=lambda v: (v.created_at, v.version_number))
        return VersionHistory(document_id=document_id, versions=versions)

    async def _read_fixed_ids(self, document_id: str, version_id: str, metadata: dict[str, str]) -> list[str]:
        if metadata.get(META_FIXED_SIDECAR) != "1":
            return decode_issue_ids(metadata.get(META_FIXED))
        key = self.sidecar_key(document_id, version_id)
        try:
            obj = await self.storage.get(key)
            ids = json.loads(obj.body.decode("utf-8")).get("fixedIssueIds", [])
        except (ReviewError, ValueError, AttributeError) as e:
            logger.warning("Unreadable fixed issue ids %s: %s", key, e)
            return []
        return [str(i) for i in ids] if isinstance(ids, list) else []

    async def load_content(self, version: Version) -> str:
        """Snapshot text of a listed version."""
        if version.synthetic or not version.storage_key:
            raise MissingInputError("storageKey")
        obj = await self.storage.get(version.storage_key)
        return obj.body.decode("utf-8", errors="replace")

    @staticmethod
    def _original_upload(document_id: str, case_id: str, storage_key: str) -> Version:
        """Synthetic first entry so history views are never empty."""
        return Version(
            version_id="original",
            document_id=document_id,
            case_id=case_id,
            version_number=1,
            version_type=VersionType.ORIGINAL,
            created_at=datetime.fromtimestamp(0, tz=timezone.utc),
            storage_key=storage_key,
            original_filename=storage_key.rsplit("/", 1)[-1] if storage_key else "",
            synthetic=True,
        )
