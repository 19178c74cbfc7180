"""Batch orchestration: drives every file of an upload through the pipeline.

Per file: open (and decompress) the byte source, split it into numbered
lines, normalize each line, and collect the records. Files run concurrently
on a bounded thread pool; inside a file everything is sequential so line
numbers follow file order. A file either contributes all of its records or
none of them. The records of all successful files go to the bulk loader in
one call.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from log_ingest.byte_source import open_stream
from log_ingest.exceptions import BatchCancelled, StoreError, ValidationError
from log_ingest.loader import BulkLoader
from log_ingest.metrics import IngestMetrics
from log_ingest.models import (
    BatchResult,
    FileJob,
    FileResult,
    NormalizedRecord,
    RecordContext,
    UploadBatch,
    validate_batch,
)
from log_ingest.normalizer import normalize
from log_ingest.splitter import DEFAULT_CHUNK_SIZE, split_lines
from log_ingest.stats import compute_upload_stats

logger = logging.getLogger(__name__)

FILE_PROCESSING_ERROR = "FILE_PROCESSING_ERROR"
BATCH_CANCELLED = "BATCH_CANCELLED"


@dataclass
class FileOutcome:
    result: FileResult
    records: list[NormalizedRecord] = field(default_factory=list)


class BatchOrchestrator:
    def __init__(
        self,
        loader: BulkLoader,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = 4,
        metrics: Optional[IngestMetrics] = None,
    ):
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self._loader = loader
        self._chunk_size = chunk_size
        self._max_workers = max_workers
        self._metrics = metrics or IngestMetrics()

    @property
    def metrics(self) -> IngestMetrics:
        return self._metrics

    def run(self, batch: UploadBatch,
            cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """Process every file of *batch* and bulk-load the records.

        Raises :class:`ValidationError` before touching any file when the
        batch is incomplete. File failures and store failures are reported in
        the returned :class:`BatchResult`.
        """
        try:
            validate_batch(batch)
        except ValidationError:
            for job in batch.files:
                job.source.release()
            raise

        self._metrics.increment("batches")
        logger.info("Batch %s: processing %d files for %s",
                    batch.batch_id, len(batch.files), batch.owner.email)

        outcomes = self._process_files(batch, cancel_event)

        records: list[NormalizedRecord] = []
        for outcome in outcomes:
            if outcome.result.success:
                records.extend(outcome.records)

        result = BatchResult(
            batch_id=batch.batch_id,
            file_results=[outcome.result for outcome in outcomes],
            stats=compute_upload_stats(records).to_dict(),
        )

        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            result.error = BATCH_CANCELLED
            result.error_message = "Batch cancelled before loading"
            logger.warning("Batch %s cancelled; nothing persisted", batch.batch_id)
            return result

        if records:
            try:
                loaded = self._loader.load(records)
            except StoreError as exc:
                self._metrics.increment("load_failures")
                result.error = exc.code
                result.error_message = str(exc)
                if exc.partial is not None:
                    result.inserted_count = exc.partial.inserted_count
                    result.inserted_ids = exc.partial.inserted_ids
                    result.rejected = exc.partial.rejected
                    self._metrics.record_load(exc.partial.inserted_count,
                                              len(exc.partial.rejected))
                logger.error("Batch %s: %s", batch.batch_id, exc)
                return result
            result.inserted_count = loaded.inserted_count
            result.inserted_ids = loaded.inserted_ids
            result.rejected = loaded.rejected
            self._metrics.record_load(loaded.inserted_count, len(loaded.rejected))
        result.persisted = True

        logger.info("Batch %s: %s", batch.batch_id, result.message)
        return result

    def _process_files(self, batch: UploadBatch,
                       cancel_event: Optional[threading.Event]) -> list[FileOutcome]:
        workers = min(self._max_workers, len(batch.files))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest-file") as executor:
            futures = [
                executor.submit(self.process_file, batch, job, cancel_event)
                for job in batch.files
            ]
            # Submission order keeps file results aligned with the batch.
            return [future.result() for future in futures]

    def process_file(self, batch: UploadBatch, job: FileJob,
                     cancel_event: Optional[threading.Event] = None) -> FileOutcome:
        """Run one file to a terminal state. Never raises; always releases the source."""
        records: list[NormalizedRecord] = []
        lines_processed = 0
        try:
            if cancel_event is not None and cancel_event.is_set():
                raise BatchCancelled("Batch cancelled before file started")

            with open_stream(job.source, job.compressed) as stream:
                for line_number, line in split_lines(stream, self._chunk_size, cancel_event):
                    lines_processed += 1
                    record = normalize(line, self._context(batch, job, line_number))
                    if record is not None:
                        records.append(record)
        except BatchCancelled as exc:
            outcome = self._failed(job, lines_processed, BATCH_CANCELLED, str(exc))
            logger.warning("File %s: %s", job.original_name, exc)
            return outcome
        except Exception as exc:
            logger.exception("Error processing file %s", job.original_name)
            return self._failed(job, lines_processed, FILE_PROCESSING_ERROR,
                                str(exc) or exc.__class__.__name__)
        finally:
            job.source.release()

        parse_errors = sum(1 for r in records if r.parse_error)
        self._metrics.record_file(True, lines_processed, len(records), parse_errors)
        logger.info("File %s: %d entries from %d lines (%d parse errors)",
                    job.original_name, len(records), lines_processed, parse_errors)
        return FileOutcome(
            result=FileResult(
                filename=job.original_name,
                cleaned_filename=job.cleaned_name,
                classification=job.classification,
                success=True,
                entries_created=len(records),
                lines_processed=lines_processed,
            ),
            records=records,
        )

    def _failed(self, job: FileJob, lines_processed: int, code: str, message: str) -> FileOutcome:
        self._metrics.record_file(False, lines_processed, 0, 0)
        return FileOutcome(result=FileResult(
            filename=job.original_name,
            cleaned_filename=job.cleaned_name,
            classification=job.classification,
            success=False,
            lines_processed=lines_processed,
            error=code,
            message=message,
        ))

    @staticmethod
    def _context(batch: UploadBatch, job: FileJob, line_number: int) -> RecordContext:
        return RecordContext(
            source_file=job.cleaned_name,
            upload_date=batch.created_at,
            batch_id=batch.batch_id,
            line_number=line_number,
            classification=job.classification,
            version_tag=job.version_tag,
            user_email=batch.owner.email,
            user_name=batch.owner.name,
            user_id=batch.owner.user_id,
        )
