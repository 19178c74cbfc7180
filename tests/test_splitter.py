"""Tests for chunked line splitting."""

import io
import threading

import pytest

from log_ingest.exceptions import BatchCancelled
from log_ingest.splitter import iter_chunks, split_chunks, split_lines


def _chunked(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestSplitChunks:
    STREAM = b'{"a":1}\n{"b":"two"}\nthird line is longer\n\nlast-no-newline'

    def test_whole_stream(self):
        assert list(split_chunks([self.STREAM])) == [
            '{"a":1}', '{"b":"two"}', "third line is longer", "", "last-no-newline",
        ]

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 8, 13, 64, 1000])
    def test_any_chunk_size_matches_whole_stream(self, size):
        expected = list(split_chunks([self.STREAM]))
        assert list(split_chunks(_chunked(self.STREAM, size))) == expected

    def test_trailing_newline_adds_no_empty_line(self):
        assert list(split_chunks([b"a\nb\n"])) == ["a", "b"]

    def test_empty_stream(self):
        assert list(split_chunks([])) == []
        assert list(split_chunks([b""])) == []

    def test_multibyte_character_split_across_chunks(self):
        data = "café ☕\nnext\n".encode("utf-8")
        for size in range(1, len(data) + 1):
            assert list(split_chunks(_chunked(data, size))) == ["café ☕", "next"]

    def test_crlf_endings(self):
        assert list(split_chunks([b"one\r\ntwo\r\n"])) == ["one", "two"]

    def test_invalid_utf8_replaced(self):
        assert list(split_chunks([b"ok\xff\n"])) == ["ok\ufffd"]


class TestIterChunks:
    def test_bounded_reads(self):
        chunks = list(iter_chunks(io.BytesIO(b"x" * 10), chunk_size=4))
        assert [len(c) for c in chunks] == [4, 4, 2]

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            list(iter_chunks(io.BytesIO(b"x"), chunk_size=0))

    def test_cancel_between_chunks(self):
        cancel = threading.Event()
        gen = iter_chunks(io.BytesIO(b"x" * 10), chunk_size=4, cancel_event=cancel)
        assert next(gen) == b"xxxx"
        cancel.set()
        with pytest.raises(BatchCancelled):
            next(gen)


class TestSplitLines:
    def test_numbers_are_one_based(self):
        stream = io.BytesIO(b"a\nb\nc")
        assert list(split_lines(stream, chunk_size=2)) == [(1, "a"), (2, "b"), (3, "c")]

    def test_blank_lines_skipped_without_consuming_numbers(self):
        stream = io.BytesIO(b"a\n\n   \n\t\nb\n\n")
        assert list(split_lines(stream, chunk_size=3)) == [(1, "a"), (2, "b")]

    def test_line_straddling_chunk_boundary(self):
        line = '{"msg":"' + "x" * 50 + '"}'
        stream = io.BytesIO((line + "\n" + line).encode())
        result = list(split_lines(stream, chunk_size=16))
        assert result == [(1, line), (2, line)]

    def test_lines_keep_surrounding_whitespace(self):
        stream = io.BytesIO(b"  padded  \n")
        assert list(split_lines(stream)) == [(1, "  padded  ")]
