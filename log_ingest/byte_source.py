"""On-disk byte sources for uploaded files and the gzip decompression stage."""

import gzip
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional, Union

logger = logging.getLogger(__name__)

_COPY_BUFFER = 1024 * 1024


class ByteSource:
    """A file on disk exposed as a sequential byte stream.

    Sources created by :meth:`spool` own their temporary file and delete it
    on :meth:`release`. Sources wrapping an existing path never delete it.
    """

    def __init__(self, path: str, owned: bool = False):
        self._path = path
        self._owned = owned
        self._released = False

    @classmethod
    def spool(
        cls,
        payload: Union[bytes, BinaryIO],
        name: str = "upload",
        tmp_dir: Optional[str] = None,
    ) -> "ByteSource":
        """Copy an uploaded payload into a temporary file owned by the source."""
        if tmp_dir:
            os.makedirs(tmp_dir, exist_ok=True)
        safe_name = os.path.basename(name) or "upload"
        fd, tmp = tempfile.mkstemp(prefix="upload_", suffix=f"_{safe_name}", dir=tmp_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                if isinstance(payload, (bytes, bytearray, memoryview)):
                    f.write(payload)
                else:
                    shutil.copyfileobj(payload, f, _COPY_BUFFER)
        except Exception:
            os.unlink(tmp)
            raise
        return cls(tmp, owned=True)

    @property
    def path(self) -> str:
        return self._path

    @property
    def owned(self) -> bool:
        return self._owned

    @property
    def released(self) -> bool:
        return self._released

    def open(self) -> BinaryIO:
        return open(self._path, "rb")

    def release(self) -> None:
        """Delete the temporary file if this source owns it. Safe to call twice."""
        if self._released:
            return
        self._released = True
        if not self._owned:
            return
        try:
            os.unlink(self._path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.error("Failed to delete temp file %s", self._path, exc_info=True)


@contextmanager
def open_stream(source: ByteSource, compressed: bool) -> Iterator[BinaryIO]:
    """Yield one sequential stream over the whole (decompressed) content.

    A gzip file is always decompressed front to back through a single
    ``GzipFile``; compressed members cannot be decoded from arbitrary offsets.
    Corrupt data raises ``gzip.BadGzipFile``, ``EOFError`` or ``zlib.error``
    from the read that hits it.
    """
    raw = source.open()
    try:
        if compressed:
            with gzip.GzipFile(fileobj=raw, mode="rb") as gz:
                yield gz
        else:
            yield raw
    finally:
        raw.close()
