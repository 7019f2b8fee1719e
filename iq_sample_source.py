"""
Sample source for raw interleaved u8 I/Q capture files.

Owns the open file handle and exposes it either as a stream of fixed-size
chunks read from the start of the file, or as a single seek-and-read of an
exact byte range.
"""

import logging
import os
from pathlib import Path
from typing import Iterator, Union

log = logging.getLogger(__name__)

BYTES_PER_PAIR = 2  # one I byte + one Q byte


class ClipScanError(Exception):
    """Base class for fatal clipping-scan errors."""


class SampleIOError(ClipScanError):
    """The capture file could not be opened or read."""


class BreakoutRangeError(ClipScanError):
    """A requested byte range lies beyond the end of the capture file."""

    def __init__(self, second: int, max_seconds: float):
        self.second = second
        self.max_seconds = max_seconds
        super().__init__(
            f"second {second} is beyond file length "
            f"(max duration: {max_seconds:.2f} seconds)"
        )


class SampleSource:
    """Read-only view of an I/Q capture file."""

    def __init__(self, filepath: Path, handle):
        self.filepath = filepath
        self._handle = handle
        self.size = os.fstat(handle.fileno()).st_size

    @classmethod
    def open(cls, filepath: Union[str, Path]) -> "SampleSource":
        filepath = Path(filepath)
        try:
            handle = open(filepath, 'rb')
        except OSError as e:
            raise SampleIOError(f"Error opening file '{filepath}': {e}") from e
        source = cls(filepath, handle)
        log.info(f"Opened {filepath.name} ({source.size / 1e6:.2f} MB)")
        return source

    def close(self):
        self._handle.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def read_chunk(self, max_bytes: int) -> bytes:
        """Read up to ``max_bytes`` from the current position.

        An empty result means end of file.
        """
        try:
            return self._handle.read(max_bytes)
        except OSError as e:
            raise SampleIOError(f"Error reading '{self.filepath}': {e}") from e

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        """Yield sequential chunks from the start of the file until EOF."""
        self._seek(0)
        while True:
            chunk = self.read_chunk(chunk_size)
            if len(chunk) == 0:
                break
            yield chunk

    def duration_seconds(self, sample_rate: float) -> float:
        return self.size / (sample_rate * BYTES_PER_PAIR)

    def read_range(self, start_byte: int, length: int, *,
                   second: int, sample_rate: float) -> bytes:
        """
        Seek to ``start_byte`` and read exactly ``length`` bytes.

        The range is checked against the file size before anything is read.
        ``second`` and ``sample_rate`` only feed the error raised for an
        out-of-range request, which reports the file's duration.
        """
        if start_byte < 0 or length < 0:
            raise ValueError(f"Invalid byte range: start={start_byte}, length={length}")
        if start_byte + length > self.size:
            raise BreakoutRangeError(second, self.duration_seconds(sample_rate))

        self._seek(start_byte)
        data = self.read_chunk(length)
        if len(data) != length:
            raise SampleIOError(
                f"Short read from '{self.filepath}': expected {length} bytes "
                f"at offset {start_byte}, got {len(data)}"
            )
        return data

    def _seek(self, offset: int):
        try:
            self._handle.seek(offset)
        except OSError as e:
            raise SampleIOError(f"Error seeking '{self.filepath}': {e}") from e
