"""Batch, file and record models shared by every pipeline stage."""

import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from log_ingest.byte_source import ByteSource
from log_ingest.exceptions import ValidationError

CLASSIFICATIONS = ("primary", "secondary")

_BATCH_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def clean_file_name(file_name: str) -> str:
    """Return everything before the first dot ("mongod.log.gz" -> "mongod")."""
    dot = file_name.find(".")
    if dot != -1:
        return file_name[:dot]
    return file_name


def is_gzip_name(file_name: str) -> bool:
    return file_name.lower().endswith(".gz")


def generate_batch_id(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC time plus a random base-36 suffix."""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z")
    suffix = "".join(random.choices(_BATCH_SUFFIX_ALPHABET, k=9))
    return f"{stamp}_{suffix}"


@dataclass(frozen=True)
class OwnerIdentity:
    name: str
    email: str
    user_id: str

    @classmethod
    def from_dict(cls, d: dict) -> "OwnerIdentity":
        return cls(
            name=d.get("name") or "",
            email=d.get("email") or "",
            user_id=d.get("userId") or d.get("user_id") or "",
        )


@dataclass(frozen=True)
class FileJob:
    original_name: str
    cleaned_name: str
    compressed: bool
    classification: str
    version_tag: str
    source: ByteSource

    @classmethod
    def create(
        cls,
        original_name: str,
        source: ByteSource,
        classification: str = "primary",
        version_tag: str = "",
    ) -> "FileJob":
        return cls(
            original_name=original_name,
            cleaned_name=clean_file_name(original_name),
            compressed=is_gzip_name(original_name),
            classification=classification,
            version_tag=version_tag,
            source=source,
        )


@dataclass(frozen=True)
class UploadBatch:
    owner: OwnerIdentity
    version_tag: str
    batch_id: str
    created_at: datetime
    files: tuple

    @classmethod
    def create(
        cls,
        owner: OwnerIdentity,
        version_tag: str,
        files: list[dict],
        now: Optional[datetime] = None,
    ) -> "UploadBatch":
        """Build a batch from file descriptors.

        Each descriptor holds ``name`` and ``source`` and optionally
        ``classification`` and ``version_tag``; a per-file version tag
        overrides the batch-wide one.
        """
        now = now or datetime.now(timezone.utc)
        jobs = tuple(
            FileJob.create(
                original_name=f["name"],
                source=f["source"],
                classification=f.get("classification") or "primary",
                version_tag=f.get("version_tag") or version_tag,
            )
            for f in files
        )
        return cls(
            owner=owner,
            version_tag=version_tag,
            batch_id=generate_batch_id(now),
            created_at=now,
            files=jobs,
        )


def validate_upload(owner: Optional[OwnerIdentity], version_tag: str,
                    file_count: int) -> None:
    """Reject an upload before any file is touched."""
    if owner is None or not owner.email or not owner.user_id:
        raise ValidationError("USER_AUTH_REQUIRED", "User authentication required")
    if not version_tag or not version_tag.strip():
        raise ValidationError("VERSION_TAG_MISSING", "A version tag is required")
    if file_count == 0:
        raise ValidationError("FILES_MISSING", "No files uploaded")


def validate_batch(batch: UploadBatch) -> None:
    validate_upload(batch.owner, batch.version_tag, len(batch.files))
    for job in batch.files:
        if job.classification not in CLASSIFICATIONS:
            raise ValidationError(
                "INVALID_CLASSIFICATION",
                f"Invalid classification {job.classification!r} for {job.original_name}",
            )


# ---------------------------------------------------------------------------
# Normalized records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordContext:
    """Metadata attached to every record produced from one file."""

    source_file: str
    upload_date: datetime
    batch_id: str
    line_number: int
    classification: str
    version_tag: str
    user_email: str
    user_name: str
    user_id: str

    def to_fields(self) -> dict:
        return {
            "sourceFile": self.source_file,
            "uploadDate": self.upload_date,
            "batchId": self.batch_id,
            "lineNumber": self.line_number,
            "classification": self.classification,
            "versionTag": self.version_tag,
            "userEmail": self.user_email,
            "userName": self.user_name,
            "userId": self.user_id,
        }


@dataclass(frozen=True)
class ParsedRecord:
    fields: dict
    log_timestamp: Optional[datetime]
    query_start_time: Optional[datetime]
    context: RecordContext

    parse_error = False

    def to_document(self) -> dict:
        doc = dict(self.fields)
        doc["logTimestamp"] = self.log_timestamp
        doc["queryStartTime"] = self.query_start_time
        doc.update(self.context.to_fields())
        return doc


@dataclass(frozen=True)
class ParseFailure:
    original_line: str
    context: RecordContext

    parse_error = True

    def to_document(self) -> dict:
        doc: dict[str, Any] = {"originalLine": self.original_line, "parseError": True}
        doc.update(self.context.to_fields())
        return doc


NormalizedRecord = Union[ParsedRecord, ParseFailure]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileResult:
    filename: str
    cleaned_filename: str
    classification: str
    success: bool
    entries_created: int = 0
    lines_processed: int = 0
    error: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            "filename": self.filename,
            "cleanedFilename": self.cleaned_filename,
            "classification": self.classification,
            "success": self.success,
            "entriesCreated": self.entries_created,
            "linesProcessed": self.lines_processed,
        }
        if not self.success:
            d["error"] = self.error
            d["message"] = self.message
        return d


@dataclass(frozen=True)
class WriteError:
    """One document the store refused during an unordered bulk write."""

    index: int
    message: str


@dataclass
class BatchResult:
    batch_id: str
    file_results: list[FileResult] = field(default_factory=list)
    inserted_count: int = 0
    inserted_ids: dict = field(default_factory=dict)
    rejected: list[WriteError] = field(default_factory=list)
    persisted: bool = False
    stats: dict = field(default_factory=dict)
    error: Optional[str] = None
    error_message: Optional[str] = None
    cancelled: bool = False

    @property
    def entries_created(self) -> int:
        return sum(r.entries_created for r in self.file_results if r.success)

    @property
    def successful_files(self) -> int:
        return sum(1 for r in self.file_results if r.success)

    @property
    def failed_files(self) -> int:
        return sum(1 for r in self.file_results if not r.success)

    @property
    def success(self) -> bool:
        return self.successful_files > 0 and self.error is None

    @property
    def message(self) -> str:
        text = (
            f"Processed {len(self.file_results)} files. "
            f"{self.successful_files} successful, {self.failed_files} failed. "
            f"Created {self.entries_created} total documents."
        )
        if self.error is not None and self.inserted_count:
            text += (f" Only {self.inserted_count} documents were persisted "
                     f"before the store failed: {self.error_message}")
        elif self.error is not None:
            text += f" Documents were parsed but not persisted: {self.error_message}"
        return text

    def to_dict(self) -> dict:
        d = {
            "success": self.success,
            "message": self.message,
            "batchId": self.batch_id,
            "entriesCreated": self.entries_created,
            "totalFiles": len(self.file_results),
            "successfulFiles": self.successful_files,
            "failedFiles": self.failed_files,
            "persisted": self.persisted,
            "insertedCount": self.inserted_count,
            "insertedIds": {str(k): v for k, v in self.inserted_ids.items()},
            "rejected": [{"index": w.index, "message": w.message} for w in self.rejected],
            "stats": self.stats,
            "fileResults": [r.to_dict() for r in self.file_results],
        }
        if self.error is not None:
            d["error"] = self.error
        if self.cancelled:
            d["cancelled"] = True
        return d
