"""Incremental line splitting over bounded reads of a byte stream."""

import threading
from typing import BinaryIO, Generator, Iterable, Optional

from log_ingest.exceptions import BatchCancelled

DEFAULT_CHUNK_SIZE = 32 * 1024 * 1024


def iter_chunks(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE,
                cancel_event: Optional[threading.Event] = None
                ) -> Generator[bytes, None, None]:
    """Yield reads of at most *chunk_size* bytes until the stream is exhausted."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise BatchCancelled("Batch cancelled while reading")
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield chunk


def split_chunks(chunks: Iterable[bytes]) -> Generator[str, None, None]:
    """Reassemble complete lines from arbitrary chunks.

    The partial line left after the last newline of a chunk is carried into
    the next one, so a line straddling a boundary comes out exactly once.
    Lines are decoded only once complete, so multi-byte UTF-8 sequences split
    across reads survive. CRLF endings lose their carriage return. A final
    line without a trailing newline is emitted at end of stream.
    """
    buffer = b""
    for chunk in chunks:
        buffer += chunk
        last_newline = buffer.rfind(b"\n")
        if last_newline == -1:
            continue
        complete, buffer = buffer[:last_newline], buffer[last_newline + 1:]
        for raw in complete.split(b"\n"):
            yield _decode(raw)
    if buffer:
        yield _decode(buffer)


def _decode(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


def split_lines(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE,
                cancel_event: Optional[threading.Event] = None
                ) -> Generator[tuple[int, str], None, None]:
    """Yield ``(line_number, text)`` for each non-blank line of *stream*.

    Whitespace-only lines are dropped and do not consume a line number, so
    numbering is 1-based and dense over the lines that reach the normalizer.
    """
    line_number = 0
    for line in split_chunks(iter_chunks(stream, chunk_size, cancel_event)):
        if not line.strip():
            continue
        line_number += 1
        yield line_number, line
