"""Document store used by the bulk loader.

``DocumentStore`` is the contract the pipeline relies on. ``NdjsonDocumentStore``
keeps one newline-delimited JSON file per collection and validates documents
against a per-collection JSON schema, rejecting individual documents without
aborting the rest of an unordered write.
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional, Protocol

import jsonschema

from log_ingest.exceptions import StoreError
from log_ingest.models import WriteError

logger = logging.getLogger(__name__)

LOG_ENTRIES = "log_entries"
UPLOAD_SESSIONS = "upload_sessions"

_METADATA_PROPERTIES = {
    "sourceFile": {"type": "string", "minLength": 1},
    "uploadDate": {"type": "string"},
    "batchId": {"type": "string", "minLength": 1},
    "lineNumber": {"type": "integer", "minimum": 1},
    "classification": {"enum": ["primary", "secondary"]},
    "versionTag": {"type": "string"},
    "userEmail": {"type": "string", "minLength": 1},
    "userName": {"type": "string"},
    "userId": {"type": "string", "minLength": 1},
}

SCHEMAS = {
    LOG_ENTRIES: {
        "type": "object",
        "required": list(_METADATA_PROPERTIES),
        "properties": dict(
            _METADATA_PROPERTIES,
            logTimestamp={"type": ["string", "null"]},
            queryStartTime={"type": ["string", "null"]},
            parseError={"type": "boolean"},
            originalLine={"type": "string"},
        ),
    },
    UPLOAD_SESSIONS: {
        "type": "object",
        "required": ["userEmail", "sessionId", "filesCount", "uploadedFiles"],
        "properties": {
            "userEmail": {"type": "string", "minLength": 1},
            "sessionId": {"type": "string", "minLength": 1},
            "filesCount": {"type": "integer", "minimum": 0},
            "uploadedFiles": {"type": "array"},
        },
    },
}


@dataclass
class InsertManyResult:
    inserted_ids: dict = field(default_factory=dict)
    write_errors: list[WriteError] = field(default_factory=list)

    @property
    def inserted_count(self) -> int:
        return len(self.inserted_ids)


class DocumentStore(Protocol):
    def insert_many(self, collection: str, documents: list[dict],
                    ordered: bool = False) -> InsertManyResult: ...

    def find(self, collection: str, query: Optional[dict] = None) -> Iterator[dict]: ...

    def count(self, collection: str, query: Optional[dict] = None) -> int: ...

    def delete_many(self, collection: str, query: dict) -> int: ...


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json_document(doc: dict) -> dict:
    """Round-trip through JSON so datetimes become ISO strings."""
    return json.loads(json.dumps(doc, default=_json_default))


def _matches(doc: dict, query: Optional[dict]) -> bool:
    if not query:
        return True
    return all(doc.get(k) == v for k, v in query.items())


class NdjsonDocumentStore:
    """Directory of ``<collection>.ndjson`` files with thread-safe writes."""

    def __init__(self, storage_dir: str, schemas: Optional[dict] = None):
        self._storage_dir = storage_dir
        self._lock = threading.Lock()
        schemas = SCHEMAS if schemas is None else schemas
        self._validators = {
            name: jsonschema.Draft202012Validator(schema)
            for name, schema in schemas.items()
        }
        try:
            os.makedirs(storage_dir, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Cannot create storage directory {storage_dir}: {exc}") from exc

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    def _path(self, collection: str) -> str:
        return os.path.join(self._storage_dir, f"{collection}.ndjson")

    def _prepare(self, collection: str, doc: dict) -> tuple[str, str]:
        """Validate one document and return its id and NDJSON line. Raises ValueError."""
        if not isinstance(doc, dict):
            raise ValueError("Document must be an object")
        try:
            plain = to_json_document(doc)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Document is not serializable: {exc}") from exc

        validator = self._validators.get(collection)
        if validator is not None:
            error = jsonschema.exceptions.best_match(validator.iter_errors(plain))
            if error is not None:
                raise ValueError(f"Schema validation failed: {error.message}")

        doc_id = uuid.uuid4().hex
        plain["_id"] = doc_id
        return doc_id, json.dumps(plain, separators=(",", ":"))

    def insert_many(self, collection: str, documents: list[dict],
                    ordered: bool = False) -> InsertManyResult:
        """Insert documents; with ``ordered=False`` a rejected one skips only itself."""
        result = InsertManyResult()
        lines = []
        for index, doc in enumerate(documents):
            try:
                doc_id, line = self._prepare(collection, doc)
            except ValueError as exc:
                result.write_errors.append(WriteError(index=index, message=str(exc)))
                if ordered:
                    break
                continue
            lines.append(line)
            result.inserted_ids[index] = doc_id

        if not lines:
            return result

        try:
            with self._lock, open(self._path(collection), "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
                f.flush()
        except OSError as exc:
            raise StoreError(f"Bulk write to {collection} failed: {exc}") from exc
        return result

    def find(self, collection: str, query: Optional[dict] = None) -> Iterator[dict]:
        path = self._path(collection)
        if not os.path.exists(path):
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    doc = json.loads(line)
                    if _matches(doc, query):
                        yield doc
        except OSError as exc:
            raise StoreError(f"Read from {collection} failed: {exc}") from exc

    def count(self, collection: str, query: Optional[dict] = None) -> int:
        return sum(1 for _ in self.find(collection, query))

    def delete_many(self, collection: str, query: dict) -> int:
        """Remove matching documents by atomically rewriting the collection file."""
        path = self._path(collection)
        with self._lock:
            if not os.path.exists(path):
                return 0
            deleted = 0
            fd, tmp = tempfile.mkstemp(dir=self._storage_dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as out, \
                        open(path, "r", encoding="utf-8") as src:
                    for line in src:
                        if not line.strip():
                            continue
                        if _matches(json.loads(line), query):
                            deleted += 1
                            continue
                        out.write(line if line.endswith("\n") else line + "\n")
                os.replace(tmp, path)
            except Exception:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        logger.info("Deleted %d documents from %s matching %s", deleted, collection, query)
        return deleted
