from __future__ import annotations

import logging
import os
import stat
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, Deque, Iterator, Optional

from .constants import (
    BLOCK_SIZE,
    CONTENT_TYPE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DIR_MODE,
    DEFAULT_MODE,
    RECORD_TERMINATOR,
    blocks_for,
    padding_for,
)
from .errors import InvalidMetadata, InvalidState, SizeMismatch
from .header import EntryMetadata, FileType, encode_header
from .pathutil import norm_path
from .sources import FileSource, open_source


logger = logging.getLogger(__name__)

_SPECIAL_TYPES = (FileType.FIFO, FileType.CHAR_SPECIAL, FileType.BLOCK_SPECIAL)


class WriterState(Enum):
    OPEN = "open"
    FINALIZING = "finalizing"
    PRODUCING = "producing"
    CLOSED = "closed"
    ABORTED = "aborted"


@dataclass
class Entry:
    meta: EntryMetadata
    source: Any  # bytes-like, iterable of chunks, file object, or factory


class ArchiveStream:
    """Single-use iterator of archive chunks returned by :meth:`ArchiveWriter.produce`.

    Closing it before the first pull cancels production just like closing it
    mid-stream: the writer moves to ``ABORTED``.
    """

    def __init__(self, writer: "ArchiveWriter", pump: Iterator[bytes]):
        self._writer = writer
        self._pump = pump
        self._started = False

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        self._started = True
        return next(self._pump)

    def close(self) -> None:
        if not self._started and self._writer.state is WriterState.FINALIZING:
            self._writer._abort("cancelled before first pull")
        self._started = True
        self._pump.close()


class ArchiveWriter:
    """Streaming writer that lays out queued entries as a USTAR byte stream.

    Entries are queued with :meth:`append` (no I/O happens there) and the
    archive is pulled chunk by chunk from :meth:`produce`. Each pull advances
    the writer only as far as needed: header, content, padding, next entry,
    and finally the two zero blocks that terminate the archive.
    """

    content_type = CONTENT_TYPE

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self.state = WriterState.OPEN
        self.pending: Deque[Entry] = deque()
        self.in_flight: Optional[Entry] = None
        self.emitted = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.finalize()

    # -------- queueing --------

    def append(self, meta: EntryMetadata, source: Any = b"") -> "ArchiveWriter":
        """Queue an entry; its header is validated now, its source is not touched."""
        if self.state is not WriterState.OPEN:
            raise InvalidState(f"Cannot append {meta.name!r}: writer is {self.state.value}")
        encode_header(meta)
        self.pending.append(Entry(meta, source))
        logger.debug("Queued %s (%d bytes, type %s)", meta.name, meta.size, meta.file_type.name)
        return self

    def append_bytes(self, name: str, data: bytes, **fields) -> "ArchiveWriter":
        """Queue an in-memory regular file."""
        data = bytes(data)
        return self.append(EntryMetadata(name=name, size=len(data), **fields), data)

    def append_file(
        self,
        fs_path: str,
        arcname: Optional[str] = None,
        *,
        chunk_size: Optional[int] = None,
        **fields,
    ) -> "ArchiveWriter":
        """Queue a filesystem file; it is opened only when its entry is produced.

        Size, permission bits, owner ids and mtime are taken from ``os.stat``
        unless overridden through keyword arguments.
        """
        st = os.stat(fs_path)
        if not stat.S_ISREG(st.st_mode):
            raise InvalidMetadata(f"{fs_path}: not a regular file")
        arc = norm_path(arcname if arcname is not None else os.path.basename(os.fspath(fs_path)))
        meta = {
            "size": st.st_size,
            "mode": st.st_mode & 0o7777,
            "uid": getattr(st, "st_uid", 0),
            "gid": getattr(st, "st_gid", 0),
            "mtime": int(st.st_mtime),
        }
        meta.update(fields)
        source = FileSource(fs_path, chunk_size or self.chunk_size)
        return self.append(EntryMetadata(name=arc, **meta), source)

    def append_dir(self, arcname: str, *, mode: int = DEFAULT_DIR_MODE, **fields) -> "ArchiveWriter":
        """Record a directory entry to preserve hierarchy and metadata."""
        name = norm_path(arcname) + "/"
        return self.append(EntryMetadata(name=name, mode=mode, file_type=FileType.DIRECTORY, **fields))

    def append_symlink(self, arcname: str, target: str, *, mode: int = 0o777, **fields) -> "ArchiveWriter":
        """Record a symbolic link pointing to ``target``."""
        meta = EntryMetadata(
            name=norm_path(arcname), mode=mode, file_type=FileType.SYMLINK, linkname=target, **fields
        )
        return self.append(meta)

    def append_special(self, arcname: str, file_type: FileType, *, mode: int = DEFAULT_MODE, **fields) -> "ArchiveWriter":
        """Record a FIFO or device node. These entries carry no data."""
        if file_type not in _SPECIAL_TYPES:
            raise InvalidMetadata(f"{arcname}: {file_type!r} is not a FIFO or device type")
        return self.append(EntryMetadata(name=norm_path(arcname), mode=mode, file_type=file_type, **fields))

    def finalize(self) -> None:
        """Stop accepting entries; the archive terminator follows the last one."""
        if self.state is WriterState.OPEN:
            self.state = WriterState.FINALIZING
            logger.debug("Finalized with %d pending entries", len(self.pending))

    @property
    def size(self) -> int:
        """Byte length of the archive still to be produced, terminator included."""
        body = sum(BLOCK_SIZE + blocks_for(e.meta.size) * BLOCK_SIZE for e in self.pending)
        return body + len(RECORD_TERMINATOR)

    # -------- production --------

    def produce(self, chunk_size: Optional[int] = None) -> ArchiveStream:
        """Return a single-use iterator of archive byte chunks.

        Calling this on an open writer finalizes it. Once the archive has been
        fully produced further calls yield nothing; after an abort, or while
        another stream is producing, pulling raises :class:`InvalidState`.
        """
        self.finalize()
        return ArchiveStream(self, self._pump(chunk_size or self.chunk_size))

    def to_bytes(self) -> bytes:
        return b"".join(self.produce())

    def write_to(self, fh: BinaryIO, chunk_size: Optional[int] = None) -> int:
        """Drain the archive into a writable binary file object."""
        total = 0
        for chunk in self.produce(chunk_size):
            fh.write(chunk)
            total += len(chunk)
        return total

    def _pump(self, chunk_size: int) -> Iterator[bytes]:
        if self.state is WriterState.CLOSED:
            return
        if self.state is WriterState.ABORTED:
            raise InvalidState("Archive production was aborted; create a new writer")
        if self.state is WriterState.PRODUCING:
            raise InvalidState("Archive is already being produced")
        self.state = WriterState.PRODUCING
        try:
            while self.pending:
                entry = self.pending.popleft()
                self.in_flight = entry
                yield from self._emit_entry(entry, chunk_size)
                self.in_flight = None
                self.emitted += 1
        except GeneratorExit:
            self._abort("cancelled by consumer")
            raise
        except BaseException as exc:
            self._abort(str(exc))
            raise
        self.state = WriterState.CLOSED
        logger.debug("Archive complete: %d entries", self.emitted)
        yield RECORD_TERMINATOR

    def _emit_entry(self, entry: Entry, chunk_size: int) -> Iterator[bytes]:
        meta = entry.meta
        stream = open_source(entry.source, chunk_size)
        written = 0
        try:
            yield encode_header(meta)
            for chunk in stream:
                written += len(chunk)
                if written > meta.size:
                    raise SizeMismatch(meta.name, meta.size, written, overrun=True)
                yield chunk
        finally:
            stream.close()
        if written != meta.size:
            raise SizeMismatch(meta.name, meta.size, written)
        pad = padding_for(written)
        if pad:
            yield b"\x00" * pad
        logger.debug("Emitted %s (%d bytes + %d padding)", meta.name, written, pad)

    def _abort(self, reason: str) -> None:
        name = self.in_flight.meta.name if self.in_flight is not None else None
        self.state = WriterState.ABORTED
        self.in_flight = None
        logger.warning("Archive production aborted at %s: %s", name or "<between entries>", reason)
