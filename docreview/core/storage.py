"""
Object store abstraction. S3 OR local filesystem. Controlled by FF_USE_S3 flag.

Both backends expose the same four calls: get, put, list_by_prefix, head.
Missing objects raise ObjectNotFoundError; any other failure StorageError.
"""

import asyncio
import json
import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import Settings, get_settings
from .errors import ObjectNotFoundError, StorageError
from .flags import FeatureFlags, get_flags

logger = logging.getLogger(__name__)

META_DIR = ".meta"


@dataclass
class StoredObject:
    body: bytes
    content_type: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ObjectInfo:
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None


class ObjectStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> StoredObject:
        """Read an object body with its content type and metadata."""
        ...

    @abstractmethod
    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        """Write an object, replacing any existing one under the same key."""
        ...

    @abstractmethod
    async def list_by_prefix(self, prefix: str) -> list[ObjectInfo]:
        """List every object whose key starts with prefix."""
        ...

    @abstractmethod
    async def head(self, key: str) -> dict[str, str]:
        """Return the user metadata of an object."""
        ...


class S3Storage(ObjectStore):
    """boto3 is synchronous; every call runs in a worker thread."""

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
            self._client = boto3.client("s3", **kwargs)
        return self._client

    async def get(self, key: str) -> StoredObject:
        def _get() -> StoredObject:
            resp = self._get_client().get_object(Bucket=self.bucket, Key=key)
            return StoredObject(
                body=resp["Body"].read(),
                content_type=resp.get("ContentType", ""),
                metadata=resp.get("Metadata", {}),
            )

        return await self._call(_get, key)

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        def _put() -> None:
            self._get_client().put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                Metadata=metadata or {},
            )

        await self._call(_put, key)
        logger.info("Uploaded to S3: %s (%d bytes)", key, len(body))

    async def list_by_prefix(self, prefix: str) -> list[ObjectInfo]:
        def _list() -> list[ObjectInfo]:
            paginator = self._get_client().get_paginator("list_objects_v2")
            found = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    found.append(ObjectInfo(
                        key=obj["Key"],
                        size=obj.get("Size", 0),
                        last_modified=obj.get("LastModified"),
                    ))
            return found

        return await self._call(_list, prefix)

    async def head(self, key: str) -> dict[str, str]:
        def _head() -> dict[str, str]:
            resp = self._get_client().head_object(Bucket=self.bucket, Key=key)
            return resp.get("Metadata", {})

        return await self._call(_head, key)

    async def _call(self, fn, key: str):
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(fn)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("NoSuchKey", "404", "NotFound"):
                raise ObjectNotFoundError(key) from e
            raise StorageError(f"S3 error on {key}: {code or e}") from e
        except BotoCoreError as e:
            raise StorageError(f"S3 error on {key}: {e}") from e


class LocalStorage(ObjectStore):
    """Keys map to files under base_path. Metadata sits in base_path/.meta/<key>.json."""

    def __init__(self, base_path: str = "./local_storage"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        root = self.base_path.resolve()
        if "\x00" in key:
            raise StorageError(f"Invalid object key: {key!r}")
        try:
            path = (root / key).resolve()
        except (OSError, ValueError) as e:
            raise StorageError(f"Invalid object key: {key!r}") from e
        if root not in path.parents or path.parts[len(root.parts)] == META_DIR:
            raise StorageError(f"Invalid object key: {key}")
        return path

    def _meta_path(self, key: str) -> Path:
        return self.base_path.resolve() / META_DIR / f"{key}.json"

    def _read_meta(self, key: str) -> dict:
        meta_path = self._meta_path(key)
        if not meta_path.exists():
            return {}
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Unreadable metadata for {key}: {e}") from e

    async def get(self, key: str) -> StoredObject:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        meta = self._read_meta(key)
        try:
            body = path.read_bytes()
        except OSError as e:
            raise StorageError(f"Could not read {key}: {e}") from e
        content_type = meta.get("content_type") or _guess_content_type(key)
        return StoredObject(body=body, content_type=content_type, metadata=meta.get("metadata", {}))

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        path = self._path(key)
        meta_path = self._meta_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
            meta_path.parent.mkdir(parents=True, exist_ok=True)
            meta_path.write_text(
                json.dumps({"content_type": content_type, "metadata": metadata or {}}),
                encoding="utf-8",
            )
        except OSError as e:
            raise StorageError(f"Could not write {key}: {e}") from e
        logger.info("Saved locally: %s (%d bytes)", key, len(body))

    async def list_by_prefix(self, prefix: str) -> list[ObjectInfo]:
        root = self.base_path.resolve()
        if not root.exists():
            return []

        found = []
        try:
            for path in root.rglob("*"):
                rel = path.relative_to(root)
                if not path.is_file() or rel.parts[0] == META_DIR:
                    continue
                key = rel.as_posix()
                if not key.startswith(prefix):
                    continue
                stat = path.stat()
                found.append(ObjectInfo(
                    key=key,
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                ))
        except OSError as e:
            raise StorageError(f"Could not list {prefix}: {e}") from e
        return sorted(found, key=lambda o: o.key)

    async def head(self, key: str) -> dict[str, str]:
        if not self._path(key).is_file():
            raise ObjectNotFoundError(key)
        return self._read_meta(key).get("metadata", {})


def get_storage(
    settings: Optional[Settings] = None,
    flags: Optional[FeatureFlags] = None,
) -> ObjectStore:
    """Return the active storage backend based on feature flags."""
    settings = settings or get_settings()
    flags = flags or get_flags()
    if flags.use_s3:
        return S3Storage(settings)
    return LocalStorage(settings.local_storage_path)


def _guess_content_type(filename: str) -> str:
    ct, _ = mimetypes.guess_type(filename)
    return ct or "application/octet-stream"
