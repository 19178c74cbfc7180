"""Unordered, time-bounded bulk loading of normalized records."""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Iterable

from log_ingest.exceptions import BulkWriteTimeout, StoreError
from log_ingest.models import NormalizedRecord, WriteError
from log_ingest.store import LOG_ENTRIES, DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    inserted_count: int = 0
    inserted_ids: dict = field(default_factory=dict)
    rejected: list[WriteError] = field(default_factory=list)


class BulkLoader:
    """Writes a batch's records to an injected store with ``ordered=False``.

    Large batches go out as consecutive slices of ``batch_size`` documents.
    Each slice must finish within ``timeout_seconds`` plus
    ``timeout_per_document`` per document; a slice that does not is a hard
    failure and is never retried, because part of it may already be stored.

    A timed-out write is abandoned, not cancelled: its worker thread keeps
    running and the documents can still land after the load has been
    reported as failed. Callers see at-least-once, not exactly-once,
    outcomes for a timed-out slice.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = LOG_ENTRIES,
        batch_size: int = 10000,
        timeout_seconds: float = 30.0,
        timeout_per_document: float = 0.001,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._store = store
        self._collection = collection
        self._batch_size = batch_size
        self._timeout_seconds = timeout_seconds
        self._timeout_per_document = timeout_per_document

    @property
    def store(self) -> DocumentStore:
        return self._store

    def timeout_for(self, count: int) -> float:
        return self._timeout_seconds + self._timeout_per_document * count

    def load(self, records: Iterable[NormalizedRecord]) -> LoadResult:
        """Insert every record; per-document rejections are returned, not raised.

        Inserted ids and rejection indexes refer to positions in *records*.
        Raises :class:`StoreError` (or :class:`BulkWriteTimeout`) when the
        store fails as a whole; its ``partial`` attribute carries the
        slices written before the failure.
        """
        documents = [record.to_document() for record in records]
        result = LoadResult()
        if not documents:
            return result

        for offset in range(0, len(documents), self._batch_size):
            part = documents[offset:offset + self._batch_size]
            try:
                outcome = self._insert_with_timeout(part)
            except StoreError as exc:
                result.inserted_count = len(result.inserted_ids)
                exc.partial = result
                logger.error("Bulk write failed at document %d of %d after %d inserted",
                             offset, len(documents), result.inserted_count)
                raise
            for index, doc_id in outcome.inserted_ids.items():
                result.inserted_ids[offset + index] = doc_id
            for error in outcome.write_errors:
                result.rejected.append(WriteError(index=offset + error.index, message=error.message))

        result.inserted_count = len(result.inserted_ids)
        if result.rejected:
            logger.warning("Store rejected %d of %d documents (first: %s)",
                           len(result.rejected), len(documents), result.rejected[0].message)
        logger.info("Inserted %d documents into %s", result.inserted_count, self._collection)
        return result

    def _insert_with_timeout(self, documents: list[dict]):
        timeout = self.timeout_for(len(documents))
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bulk-insert")
        try:
            future = executor.submit(self._store.insert_many, self._collection, documents, False)
            try:
                return future.result(timeout=timeout)
            except FutureTimeout:
                raise BulkWriteTimeout(
                    f"Bulk write of {len(documents)} documents exceeded {timeout:.1f}s "
                    f"(the abandoned write may still complete)"
                ) from None
            except StoreError:
                raise
            except Exception as exc:
                raise StoreError(f"Bulk write failed: {exc}") from exc
        finally:
            executor.shutdown(wait=False)
