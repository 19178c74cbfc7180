"""Tests for the NDJSON document store."""

import json
import os
from datetime import datetime, timezone

import pytest

from log_ingest.exceptions import StoreError
from log_ingest.store import LOG_ENTRIES, NdjsonDocumentStore


def _entry(line_number=1, source_file="mongod", **extra):
    doc = {
        "sourceFile": source_file,
        "uploadDate": datetime(2024, 1, 15, tzinfo=timezone.utc),
        "batchId": "batch-1",
        "lineNumber": line_number,
        "classification": "primary",
        "versionTag": "7.0",
        "userEmail": "dana@example.com",
        "userName": "Dana",
        "userId": "u-42",
        "logTimestamp": None,
        "queryStartTime": None,
    }
    doc.update(extra)
    return doc


class TestInsertMany:
    def test_inserts_and_assigns_ids(self, store):
        result = store.insert_many(LOG_ENTRIES, [_entry(1), _entry(2)])
        assert result.inserted_count == 2
        assert set(result.inserted_ids) == {0, 1}
        assert not result.write_errors
        stored = list(store.find(LOG_ENTRIES))
        assert [d["_id"] for d in stored] == [result.inserted_ids[0], result.inserted_ids[1]]

    def test_datetimes_stored_as_iso(self, store):
        store.insert_many(LOG_ENTRIES, [_entry(1)])
        (doc,) = store.find(LOG_ENTRIES)
        assert doc["uploadDate"] == "2024-01-15T00:00:00+00:00"

    def test_unordered_rejection_skips_only_bad_document(self, store):
        bad = _entry(2)
        del bad["sourceFile"]
        result = store.insert_many(LOG_ENTRIES, [_entry(1), bad, _entry(3)])
        assert result.inserted_count == 2
        assert set(result.inserted_ids) == {0, 2}
        assert len(result.write_errors) == 1
        assert result.write_errors[0].index == 1
        assert "sourceFile" in result.write_errors[0].message
        assert store.count(LOG_ENTRIES) == 2

    def test_ordered_stops_at_first_rejection(self, store):
        result = store.insert_many(LOG_ENTRIES, [_entry(1), _entry(0), _entry(3)], ordered=True)
        assert set(result.inserted_ids) == {0}
        assert store.count(LOG_ENTRIES) == 1

    def test_unserializable_document_rejected(self, store):
        result = store.insert_many(LOG_ENTRIES, [_entry(1, blob=object())])
        assert result.inserted_count == 0
        assert "not serializable" in result.write_errors[0].message

    def test_unknown_collection_not_validated(self, store):
        result = store.insert_many("scratch", [{"anything": 1}])
        assert result.inserted_count == 1

    def test_write_failure_raises_store_error(self, store):
        os.makedirs(os.path.join(store.storage_dir, f"{LOG_ENTRIES}.ndjson"))
        with pytest.raises(StoreError):
            store.insert_many(LOG_ENTRIES, [_entry(1)])


class TestQueries:
    def test_find_with_filter(self, store):
        store.insert_many(LOG_ENTRIES, [_entry(1, "a"), _entry(2, "b"), _entry(3, "a")])
        assert [d["lineNumber"] for d in store.find(LOG_ENTRIES, {"sourceFile": "a"})] == [1, 3]
        assert store.count(LOG_ENTRIES, {"sourceFile": "b"}) == 1

    def test_find_missing_collection(self, store):
        assert list(store.find("nothing")) == []

    def test_delete_many(self, store):
        store.insert_many(LOG_ENTRIES, [_entry(1, "a"), _entry(2, "b"), _entry(3, "a")])
        assert store.delete_many(LOG_ENTRIES, {"sourceFile": "a"}) == 2
        remaining = list(store.find(LOG_ENTRIES))
        assert [d["sourceFile"] for d in remaining] == ["b"]
        assert not [f for f in os.listdir(store.storage_dir) if f.startswith("tmp")]

    def test_delete_from_missing_collection(self, store):
        assert store.delete_many(LOG_ENTRIES, {"sourceFile": "a"}) == 0

    def test_file_is_ndjson(self, store):
        store.insert_many(LOG_ENTRIES, [_entry(1), _entry(2)])
        with open(os.path.join(store.storage_dir, f"{LOG_ENTRIES}.ndjson")) as f:
            lines = f.read().splitlines()
        assert len(lines) == 2
        assert all(json.loads(line)["batchId"] == "batch-1" for line in lines)


def test_storage_dir_created(tmp_path):
    target = tmp_path / "nested" / "store"
    NdjsonDocumentStore(str(target))
    assert target.is_dir()
