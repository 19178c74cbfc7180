"""Thread-safe ingest counters."""

import threading
import time
from datetime import datetime, timezone

COUNTERS = (
    "batches",
    "files_processed",
    "files_failed",
    "lines_processed",
    "documents_created",
    "parse_errors",
    "documents_inserted",
    "documents_rejected",
    "load_failures",
)


class IngestMetrics:
    def __init__(self):
        self._lock = threading.Lock()
        self._counters = dict.fromkeys(COUNTERS, 0)
        self._start_time = time.time()

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def record_file(self, success: bool, lines: int, documents: int, parse_errors: int) -> None:
        with self._lock:
            if success:
                self._counters["files_processed"] += 1
                self._counters["documents_created"] += documents
                self._counters["parse_errors"] += parse_errors
            else:
                self._counters["files_failed"] += 1
            self._counters["lines_processed"] += lines

    def record_load(self, inserted: int, rejected: int) -> None:
        with self._lock:
            self._counters["documents_inserted"] += inserted
            self._counters["documents_rejected"] += rejected

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def snapshot(self) -> dict:
        with self._lock:
            counters = dict(self._counters)
        return {
            "counters": counters,
            "uptime_seconds": round(time.time() - self._start_time, 1),
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }
