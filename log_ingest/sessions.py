"""Upload-session bookkeeping and per-file flushing against the document store."""

import logging
from datetime import datetime, timezone
from typing import Optional

from log_ingest.models import BatchResult, UploadBatch
from log_ingest.store import LOG_ENTRIES, UPLOAD_SESSIONS, DocumentStore

logger = logging.getLogger(__name__)

RECENT_SESSION_LIMIT = 10


def session_document(batch: UploadBatch, result: BatchResult,
                     now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    return {
        "userEmail": batch.owner.email,
        "sessionId": batch.batch_id,
        "filesCount": len(result.file_results),
        "uploadedFiles": [
            {
                "fileName": r.filename,
                "cleanedFilename": r.cleaned_filename,
                "classification": r.classification,
                "success": r.success,
                "entriesCreated": r.entries_created,
            }
            for r in result.file_results
        ],
        "persisted": result.persisted,
        "createdAt": now,
        "updatedAt": now,
    }


def record_session(store: DocumentStore, batch: UploadBatch, result: BatchResult) -> None:
    """Store a summary of the upload so the files can be listed later."""
    outcome = store.insert_many(UPLOAD_SESSIONS, [session_document(batch, result)])
    if outcome.write_errors:
        logger.warning("Upload session %s not recorded: %s",
                       batch.batch_id, outcome.write_errors[0].message)
    else:
        logger.info("Recorded upload session %s (%d files)",
                    batch.batch_id, len(result.file_results))


def recent_sessions(store: DocumentStore, user_email: str,
                    session_id: Optional[str] = None) -> list[dict]:
    """Newest sessions first: one when *session_id* is given, else up to ten."""
    query = {"userEmail": user_email}
    if session_id:
        query["sessionId"] = session_id
    sessions = sorted(store.find(UPLOAD_SESSIONS, query),
                      key=lambda s: s.get("updatedAt") or "", reverse=True)
    return sessions[:1 if session_id else RECENT_SESSION_LIMIT]


def flush_source_file(store: DocumentStore, source_file: str,
                      user_email: Optional[str] = None) -> int:
    """Delete every stored entry of one cleaned source-file name."""
    query = {"sourceFile": source_file}
    if user_email:
        query["userEmail"] = user_email
    deleted = store.delete_many(LOG_ENTRIES, query)
    logger.info("Flushed %d entries for %s", deleted, source_file)
    return deleted
