"""
Tests for version numbering, persistence and history listing.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import boto3
import pytest
from botocore.stub import Stubber

from docreview.core.errors import MissingInputError, StorageError, VersionWriteError
from docreview.models import VersionType
from docreview.core.storage import S3Storage
from docreview.services.versions import (
    VersionManager,
    decode_issue_ids,
    decode_meta,
    encode_issue_ids,
    encode_meta,
    parse_version_number,
)


@pytest.fixture
def manager(storage, settings):
    return VersionManager(storage, settings)


def _seed(storage, manager, document_id, number, version_id):
    key = manager.version_key(document_id, version_id)
    asyncio.run(storage.put(key, b"text", "text/plain", {"version-number": number}))


class TestNextVersionNumber:
    def test_first_version_is_one(self, manager):
        assert asyncio.run(manager.next_version_number("doc-1")) == 1

    def test_fractional_numbers_round_down(self, storage, manager):
        for n, number in enumerate(["1", "2", "2.5"]):
            _seed(storage, manager, "doc-1", number, f"v{n}")
        assert asyncio.run(manager.next_version_number("doc-1")) == 3

    def test_unparseable_metadata_counts_as_one(self, storage, manager):
        _seed(storage, manager, "doc-1", "garbage", "v0")
        assert asyncio.run(manager.next_version_number("doc-1")) == 2

    def test_other_documents_are_ignored(self, storage, manager):
        _seed(storage, manager, "doc-2", "7", "v0")
        assert asyncio.run(manager.next_version_number("doc-1")) == 1


def test_parse_version_number():
    assert parse_version_number({"version-number": "2.5"}) == 2.5
    assert parse_version_number({"version-number": "-3"}) == 1.0
    assert parse_version_number({"version-number": "nan"}) == 1.0
    assert parse_version_number({}) == 1.0


class TestSaveVersion:
    def test_sequential_saves_number_one_then_two(self, manager):
        first = asyncio.run(manager.save_version("doc-1", "case-1", "Version one."))
        second = asyncio.run(manager.save_version("doc-1", "case-1", "Version two.", VersionType.FIXED, ["shall-passive_4"]))

        assert first.version_number == 1
        assert second.version_number == 2

        history = asyncio.run(manager.list_versions("doc-1"))
        assert [v.version_id for v in history.versions] == [first.version_id, second.version_id]
        assert history.latest.version_id == second.version_id
        assert history.latest.version_type == VersionType.FIXED
        assert history.latest.fixed_issue_ids == ["shall-passive_4"]
        assert not history.degraded

    def test_content_snapshot_is_stored(self, storage, manager):
        version = asyncio.run(manager.save_version("doc-1", "case-1", "Snapshot text."))

        stored = asyncio.run(storage.get(version.storage_key))

        assert stored.body == b"Snapshot text."
        assert stored.content_type.startswith("text/plain")
        assert stored.metadata["case-id"] == "case-1"
        assert version.storage_key == f"documents/doc-1/versions/{version.version_id}.txt"

    def test_missing_inputs_are_rejected(self, manager):
        with pytest.raises(MissingInputError):
            asyncio.run(manager.save_version("", "case-1", "text"))
        with pytest.raises(MissingInputError):
            asyncio.run(manager.save_version("doc-1", "", "text"))
        with pytest.raises(MissingInputError):
            asyncio.run(manager.save_version("doc-1", "case-1", None))

    def test_write_failure_is_fatal(self, settings):
        storage = AsyncMock()
        storage.list_by_prefix.return_value = []
        storage.put.side_effect = StorageError("bucket gone")

        with pytest.raises(VersionWriteError):
            asyncio.run(VersionManager(storage, settings).save_version("doc-1", "case-1", "text"))

    def test_listing_failure_blocks_numbering(self, settings):
        storage = AsyncMock()
        storage.list_by_prefix.side_effect = StorageError("access denied")

        with pytest.raises(VersionWriteError):
            asyncio.run(VersionManager(storage, settings).save_version("doc-1", "case-1", "text"))
        storage.put.assert_not_called()


class TestListVersions:
    def test_empty_history_has_synthetic_original(self, manager):
        history = asyncio.run(manager.list_versions("doc-1", "case-1", "cases/1/contract.pdf"))

        assert len(history.versions) == 1
        original = history.versions[0]
        assert original.synthetic
        assert original.version_type == VersionType.ORIGINAL
        assert original.version_number == 1
        assert original.original_filename == "contract.pdf"

    def test_listing_failure_degrades(self, settings):
        storage = AsyncMock()
        storage.list_by_prefix.side_effect = StorageError("access denied")

        history = asyncio.run(VersionManager(storage, settings).list_versions("doc-1"))

        assert history.degraded
        assert history.versions == []
        assert "access denied" in history.diagnostic

    def test_versions_sort_by_creation_time(self, storage, manager):
        for version_id, created, number in [
            ("b", "2024-05-02T10:00:00+00:00", "2"),
            ("a", "2024-05-01T10:00:00+00:00", "1"),
        ]:
            key = manager.version_key("doc-1", version_id)
            metadata = {"version-number": number, "created-at": created, "version-type": "reviewed"}
            asyncio.run(storage.put(key, b"t", "text/plain", metadata))

        history = asyncio.run(manager.list_versions("doc-1"))

        assert [v.version_id for v in history.versions] == ["a", "b"]
        assert history.versions[0].version_type == VersionType.REVIEWED

    def test_load_content(self, manager):
        saved = asyncio.run(manager.save_version("doc-1", "case-1", "Body."))
        listed = asyncio.run(manager.list_versions("doc-1")).latest
        assert asyncio.run(manager.load_content(listed)) == "Body."
        assert saved.version_id == listed.version_id


class TestMetadataEncoding:
    def test_non_ascii_values_round_trip(self, storage, manager):
        version = asyncio.run(manager.save_version(
            "doc-1", "Fall-Köln", "Inhalt.", VersionType.FIXED,
            fixed_issue_ids=["a,b", "ü_1"], original_filename="Vertrag_Müller.pdf",
        ))

        stored = asyncio.run(storage.head(version.storage_key))
        listed = asyncio.run(manager.list_versions("doc-1")).latest

        assert all(value.isascii() for value in stored.values())
        assert listed.case_id == "Fall-Köln"
        assert listed.original_filename == "Vertrag_Müller.pdf"
        assert listed.fixed_issue_ids == ["a,b", "ü_1"]

    def test_long_id_list_goes_to_sidecar(self, storage, manager):
        ids = [f"ambiguous-term_{n:06d}" for n in range(200)]

        version = asyncio.run(manager.save_version("doc-1", "case-1", "text", VersionType.FIXED, ids))

        stored = asyncio.run(storage.head(version.storage_key))
        assert "fixed-issue-ids" not in stored
        assert stored["fixed-issue-ids-sidecar"] == "1"
        sidecar = asyncio.run(storage.get(manager.sidecar_key("doc-1", version.version_id)))
        assert sidecar.content_type == "application/json"

        history = asyncio.run(manager.list_versions("doc-1"))
        assert [v.version_id for v in history.versions] == [version.version_id]
        assert history.latest.fixed_issue_ids == ids
        assert asyncio.run(manager.next_version_number("doc-1")) == 2

    def test_missing_sidecar_reads_as_no_ids(self, storage, manager):
        key = manager.version_key("doc-1", "v0")
        asyncio.run(storage.put(key, b"t", "text/plain", {"version-number": "1", "fixed-issue-ids-sidecar": "1"}))

        assert asyncio.run(manager.list_versions("doc-1")).latest.fixed_issue_ids == []

    def test_s3_put_metadata_is_ascii_and_small(self, settings):
        client = Mock()
        client.get_paginator.return_value.paginate.return_value = [{}]
        manager = VersionManager(S3Storage(settings, client=client), settings)

        asyncio.run(manager.save_version(
            "doc-1", "case-1", "text", fixed_issue_ids=["shall-passive_0"], original_filename="Vertrag_Müller.pdf",
        ))

        metadata = client.put_object.call_args.kwargs["Metadata"]
        assert all(value.isascii() for value in metadata.values())
        assert sum(len(k) + len(v) for k, v in metadata.items()) < 2048
        assert decode_meta(metadata["original-filename"]) == "Vertrag_Müller.pdf"

    def test_s3_client_accepts_non_ascii_filename(self, settings):
        client = boto3.client(
            "s3", region_name="us-east-1", aws_access_key_id="test", aws_secret_access_key="test",
        )
        manager = VersionManager(S3Storage(settings, client=client), settings)

        with Stubber(client) as stubber:
            stubber.add_response("list_objects_v2", {"IsTruncated": False, "KeyCount": 0})
            stubber.add_response("put_object", {"ETag": '"etag"'})

            version = asyncio.run(manager.save_version(
                "doc-1", "case-1", "text", VersionType.FIXED,
                fixed_issue_ids=["ü_1"], original_filename="Vertrag_Müller.pdf",
            ))

            stubber.assert_no_pending_responses()
        assert version.version_number == 1


def test_issue_id_encoding():
    assert decode_issue_ids(encode_issue_ids(["a,b", "c"])) == ["a,b", "c"]
    assert decode_issue_ids("shall-passive_4,none") == ["shall-passive_4", "none"]
    assert decode_issue_ids("") == []
    assert decode_issue_ids(None) == []
    assert encode_meta("Müller & Co.pdf").isascii()
    assert decode_meta(encode_meta("Müller & Co.pdf")) == "Müller & Co.pdf"
