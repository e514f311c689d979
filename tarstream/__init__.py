"""
tarstream: streaming POSIX ustar archive writer.

Entries (metadata plus a lazy content source) are queued on an ArchiveWriter
and the archive is pulled out as a sequence of byte chunks, so arbitrarily
large trees can be archived without holding the archive in memory:

- Byte-exact ustar headers with two-pass checksums and name/prefix splitting
- Pull-based production: header, content, block padding, end-of-archive marker
- Declared sizes verified against the bytes each source actually yields
- Cancellation closes the in-flight source and aborts the writer

GNU/PAX extensions, compression and extraction are deliberately absent; any
standard tar reader can consume the output.
"""

from .errors import (
    TarStreamError,
    NameTooLong,
    FieldOverflow,
    InvalidMetadata,
    SizeMismatch,
    InvalidState,
)
from .header import EntryMetadata, FileType, encode_header, split_name, compute_checksum
from .sources import FileSource
from .writer import ArchiveStream, ArchiveWriter, WriterState

__version__ = "0.1"

__all__ = [
    "ArchiveWriter",
    "ArchiveStream",
    "WriterState",
    "EntryMetadata",
    "FileType",
    "FileSource",
    "encode_header",
    "split_name",
    "compute_checksum",
    "TarStreamError",
    "NameTooLong",
    "FieldOverflow",
    "InvalidMetadata",
    "SizeMismatch",
    "InvalidState",
]
