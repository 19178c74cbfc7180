"""Flask HTTP surface: batch upload, per-file flush, upload sessions, health."""

import json
import logging
from typing import Optional

from flask import Flask, jsonify, request

from log_ingest.byte_source import ByteSource
from log_ingest.config import Config
from log_ingest.exceptions import StoreError, ValidationError
from log_ingest.loader import BulkLoader
from log_ingest.metrics import IngestMetrics
from log_ingest.models import OwnerIdentity, UploadBatch, validate_upload
from log_ingest.orchestrator import BatchOrchestrator
from log_ingest.sessions import flush_source_file, recent_sessions, record_session
from log_ingest.store import DocumentStore, NdjsonDocumentStore

logger = logging.getLogger(__name__)

_AUTH_ERRORS = ("USER_AUTH_REQUIRED",)


def _error(message: str, code: str, status: int, **extra):
    body = {"success": False, "message": message, "error": code}
    body.update(extra)
    return jsonify(body), status


def _parse_owner(raw: Optional[str]) -> Optional[OwnerIdentity]:
    """Decode the ``user`` form field. Raises ValueError on malformed JSON."""
    if not raw:
        return None
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("user must be a JSON object")
    return OwnerIdentity.from_dict(data)


def _parse_classifications(raw: Optional[str]) -> dict[int, dict]:
    if not raw:
        return {}
    try:
        items = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse file classifications, using defaults")
        return {}
    if not isinstance(items, list):
        return {}
    by_index = {}
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        try:
            index = int(item.get("index", position))
        except (TypeError, ValueError):
            index = position
        by_index[index] = item
    return by_index


def create_app(config: Optional[Config] = None,
               store: Optional[DocumentStore] = None,
               metrics: Optional[IngestMetrics] = None) -> Flask:
    """Flask application factory."""
    config = config or Config()
    store = store if store is not None else NdjsonDocumentStore(config.storage_dir)
    metrics = metrics or IngestMetrics()

    loader = BulkLoader(
        store,
        batch_size=config.bulk_batch_size,
        timeout_seconds=config.bulk_timeout_seconds,
        timeout_per_document=config.bulk_timeout_per_document_ms / 1000.0,
    )
    orchestrator = BatchOrchestrator(
        loader,
        chunk_size=config.chunk_size_bytes,
        max_workers=config.workers,
        metrics=metrics,
    )

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_mb * 1024 * 1024
    # Store components on app for access in tests
    app.config["components"] = {
        "config": config,
        "store": store,
        "metrics": metrics,
        "orchestrator": orchestrator,
    }

    @app.route("/health")
    def health():
        return jsonify({"status": "healthy", "metrics": metrics.snapshot()})

    @app.route("/api/upload", methods=["POST"])
    def upload():
        try:
            owner = _parse_owner(request.form.get("user"))
        except ValueError:
            return _error("Invalid user information", "INVALID_USER_DATA", 400)

        version_tag = request.form.get("versionTag", "")
        uploads = request.files.getlist("file")
        try:
            validate_upload(owner, version_tag, len(uploads))
        except ValidationError as exc:
            status = 401 if exc.code in _AUTH_ERRORS else 400
            return _error(exc.message, exc.code, status)

        classifications = _parse_classifications(request.form.get("fileClassifications"))
        files = []
        spooled = False
        try:
            for index, storage in enumerate(uploads):
                info = classifications.get(index, {})
                name = info.get("fileName") or storage.filename or f"uploaded_{index}.log"
                files.append({
                    "name": name,
                    "source": ByteSource.spool(storage.stream, name, config.tmp_dir),
                    "classification": info.get("classification") or "primary",
                    "version_tag": info.get("versionTag") or info.get("mongodbVersion"),
                })
            spooled = True
        except OSError:
            logger.exception("Failed to spool uploaded files")
            return _error("Could not store uploaded files", "SERVER_ERROR", 500)
        finally:
            # Any interruption (disk error, client disconnect) drops what was spooled.
            if not spooled:
                for f in files:
                    f["source"].release()

        batch = UploadBatch.create(owner, version_tag, files)
        try:
            result = orchestrator.run(batch)
        except ValidationError as exc:
            return _error(exc.message, exc.code, 400)

        if config.record_sessions:
            try:
                record_session(store, batch, result)
            except StoreError:
                logger.exception("Failed to record upload session %s", batch.batch_id)

        if result.error is not None:
            return jsonify(result.to_dict()), 500
        return jsonify(result.to_dict())

    @app.route("/api/flush", methods=["DELETE"])
    def flush():
        source_file = request.args.get("sourceFile")
        if not source_file:
            return _error("sourceFile parameter is required", "SOURCE_FILE_MISSING", 400)
        try:
            deleted = flush_source_file(store, source_file, request.args.get("userEmail"))
        except StoreError:
            logger.exception("Flush of %s failed", source_file)
            return _error("Failed to flush log entries", "FLUSH_ERROR", 500)
        return jsonify({
            "success": True,
            "message": f"Successfully deleted {deleted} log entries for file: {source_file}",
            "deletedCount": deleted,
        })

    @app.route("/api/upload-session")
    def upload_sessions():
        user_email = request.args.get("userEmail")
        if not user_email:
            return _error("userEmail parameter is required", "USER_EMAIL_MISSING", 400)
        try:
            sessions = recent_sessions(store, user_email, request.args.get("sessionId"))
        except StoreError:
            logger.exception("Upload session lookup failed")
            return _error("Failed to retrieve upload session", "RETRIEVAL_ERROR", 500)
        return jsonify({
            "success": True,
            "data": {
                "sessions": sessions,
                "latestSession": sessions[0] if sessions else None,
            },
        })

    return app
