from __future__ import annotations

import os
from typing import Any, Iterator, Optional

from .constants import DEFAULT_CHUNK_SIZE
from .errors import InvalidMetadata


_BUFFER_TYPES = (bytes, bytearray, memoryview)


def _iter_buffer(data: bytes, chunk_size: int) -> Iterator[bytes]:
    for off in range(0, len(data), chunk_size):
        yield data[off : off + chunk_size]


def _iter_fileobj(fh, chunk_size: int) -> Iterator[bytes]:
    while True:
        raw = fh.read(chunk_size)
        if not raw:
            break
        yield raw


def _iter_path(path: str, chunk_size: int) -> Iterator[bytes]:
    # opened on first pull, closed on exhaustion or generator close
    with open(path, "rb") as rf:
        yield from _iter_fileobj(rf, chunk_size)


class FileSource:
    """Factory for a filesystem file's content, opened only when pulled."""

    def __init__(self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.path = os.fspath(path)
        self.chunk_size = chunk_size

    def __call__(self) -> Iterator[bytes]:
        return _iter_path(self.path, self.chunk_size)

    def __repr__(self) -> str:
        return f"FileSource({self.path!r})"


class SourceStream:
    """Single-use iterator of non-empty ``bytes`` chunks over one content source.

    Accepts a bytes-like object, an iterable of bytes-like chunks, a binary
    file object with ``read(n)``, or a zero-argument factory returning one of
    those. Factories are invoked here, i.e. when the entry starts emitting.
    """

    def __init__(self, source: Any, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if callable(source) and not hasattr(source, "read"):
            source = source()
        self._obj = source
        if isinstance(source, _BUFFER_TYPES):
            self._it: Iterator = _iter_buffer(bytes(source), chunk_size)
        elif hasattr(source, "read"):
            self._it = _iter_fileobj(source, chunk_size)
        else:
            try:
                self._it = iter(source)
            except TypeError:
                raise InvalidMetadata(f"Unsupported content source: {type(source).__name__}") from None
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        if self.closed:
            raise StopIteration
        while True:
            chunk = next(self._it)
            if not isinstance(chunk, _BUFFER_TYPES):
                raise InvalidMetadata(f"Content source yielded {type(chunk).__name__}, expected bytes")
            if chunk:
                return bytes(chunk) if not isinstance(chunk, bytes) else chunk

    def close(self) -> None:
        """Release the iterator and the underlying object, if closable."""
        if self.closed:
            return
        self.closed = True
        for target in (self._it, self._obj):
            close = getattr(target, "close", None)
            if close is not None:
                close()


def open_source(source: Any, chunk_size: Optional[int] = None) -> SourceStream:
    return SourceStream(source, chunk_size or DEFAULT_CHUNK_SIZE)
