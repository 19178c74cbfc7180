import gzip
from datetime import datetime, timezone

import pytest

from log_ingest.byte_source import ByteSource
from log_ingest.loader import BulkLoader
from log_ingest.models import OwnerIdentity, RecordContext, UploadBatch
from log_ingest.orchestrator import BatchOrchestrator
from log_ingest.store import NdjsonDocumentStore

UPLOAD_TIME = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def owner():
    return OwnerIdentity(name="Dana Reyes", email="dana@example.com", user_id="u-42")


@pytest.fixture
def context():
    return RecordContext(
        source_file="mongod",
        upload_date=UPLOAD_TIME,
        batch_id="2024-01-15T10:30:00.000Z_abc123xyz",
        line_number=7,
        classification="secondary",
        version_tag="7.0",
        user_email="dana@example.com",
        user_name="Dana Reyes",
        user_id="u-42",
    )


@pytest.fixture
def sample_log_line():
    return (
        '{"t":{"$date":"2024-01-15T10:30:00.500+00:00"},"s":"I","c":"COMMAND",'
        '"id":51803,"ctx":"conn12","msg":"Slow query",'
        '"attr":{"durationMillis":250,"command":{"find":"orders"}}}'
    )


@pytest.fixture
def store(tmp_path):
    return NdjsonDocumentStore(str(tmp_path / "store"))


@pytest.fixture
def loader(store):
    return BulkLoader(store, batch_size=100, timeout_seconds=10.0)


@pytest.fixture
def orchestrator(loader):
    return BatchOrchestrator(loader, chunk_size=64, max_workers=3)


@pytest.fixture
def write_file(tmp_path):
    """Write *content* to tmp_path/name, gzip-compressing when name ends in .gz."""

    def _write(name: str, content: bytes) -> str:
        path = tmp_path / name
        data = gzip.compress(content) if name.endswith(".gz") else content
        path.write_bytes(data)
        return str(path)

    return _write


@pytest.fixture
def make_batch(owner):
    """Build an UploadBatch from (name, raw_bytes[, classification]) tuples.

    Payloads are spooled into owned temp files, like uploaded files.
    """

    def _make(files, version_tag="7.0", tmp_dir=None):
        descriptors = []
        for item in files:
            name, payload = item[0], item[1]
            classification = item[2] if len(item) > 2 else "primary"
            descriptors.append({
                "name": name,
                "source": ByteSource.spool(payload, name, tmp_dir),
                "classification": classification,
            })
        return UploadBatch.create(owner, version_tag, descriptors, now=UPLOAD_TIME)

    return _make
