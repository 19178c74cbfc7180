"""Entry point: ingest local log files into the store, or serve the upload API."""

import argparse
import dataclasses
import json
import logging
import os
import signal
import sys
import threading

from log_ingest.byte_source import ByteSource
from log_ingest.config import load_config
from log_ingest.exceptions import ConfigError, StoreError, ValidationError
from log_ingest.loader import BulkLoader
from log_ingest.models import OwnerIdentity, UploadBatch
from log_ingest.orchestrator import BatchOrchestrator
from log_ingest.sessions import record_session
from log_ingest.store import NdjsonDocumentStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="log-ingest",
        description="Normalize JSON server logs (plain or .gz) into a document store.",
    )
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("--storage-dir", default=None, help="Document store directory")
    parser.add_argument("--workers", type=int, default=None, help="Files processed in parallel")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Ingest local log files as one batch")
    ingest.add_argument("files", nargs="+", help="Log files (.log, .json, .gz)")
    ingest.add_argument("--email", required=True, help="Owner email")
    ingest.add_argument("--user-id", required=True, help="Owner id")
    ingest.add_argument("--name", default="", help="Owner display name")
    ingest.add_argument("--version-tag", required=True, help="Server version tag, e.g. 7.0")
    ingest.add_argument(
        "--secondary",
        action="append",
        default=[],
        metavar="FILE",
        help="Classify FILE as secondary (repeatable); others are primary",
    )

    serve = sub.add_parser("serve", help="Run the HTTP upload API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


def run_ingest(args, config) -> int:
    store = NdjsonDocumentStore(config.storage_dir)
    loader = BulkLoader(
        store,
        batch_size=config.bulk_batch_size,
        timeout_seconds=config.bulk_timeout_seconds,
        timeout_per_document=config.bulk_timeout_per_document_ms / 1000.0,
    )
    orchestrator = BatchOrchestrator(loader, chunk_size=config.chunk_size_bytes,
                                     max_workers=config.workers)

    secondary = set(args.secondary)
    files = [
        {
            "name": os.path.basename(path),
            "source": ByteSource(path),
            "classification": "secondary" if path in secondary else "primary",
        }
        for path in args.files
    ]
    owner = OwnerIdentity(name=args.name, email=args.email, user_id=args.user_id)
    batch = UploadBatch.create(owner, args.version_tag, files)

    cancel = threading.Event()

    def _cancel(signum, frame):
        logger.info("Received signal %d, cancelling batch...", signum)
        cancel.set()

    previous = {sig: signal.signal(sig, _cancel) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        result = orchestrator.run(batch, cancel_event=cancel)
    except ValidationError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 2
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    if config.record_sessions:
        try:
            record_session(store, batch, result)
        except StoreError:
            logger.exception("Failed to record upload session %s", batch.batch_id)

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def run_server(args, config) -> int:
    from log_ingest.web import create_app

    app = create_app(config)
    app.run(host=args.host or config.server_host, port=args.port or config.server_port)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    overrides = {}
    if args.storage_dir:
        overrides["storage_dir"] = args.storage_dir
    if args.workers is not None:
        overrides["max_workers"] = args.workers
    if args.log_level:
        overrides["log_level"] = args.log_level
    try:
        config = dataclasses.replace(config, **overrides).validate()
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command == "ingest":
        return run_ingest(args, config)
    return run_server(args, config)


if __name__ == "__main__":
    sys.exit(main())
