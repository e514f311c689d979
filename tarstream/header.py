from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union

from .constants import (
    BLOCK_SIZE,
    CHKSUM_BLANK,
    DEFAULT_MODE,
    FIELD_CHKSUM,
    FIELD_DEVMAJOR,
    FIELD_DEVMINOR,
    FIELD_GID,
    FIELD_GNAME,
    FIELD_LINKNAME,
    FIELD_MAGIC,
    FIELD_MODE,
    FIELD_MTIME,
    FIELD_NAME,
    FIELD_PREFIX,
    FIELD_SIZE,
    FIELD_TYPEFLAG,
    FIELD_UID,
    FIELD_UNAME,
    FIELD_VERSION,
    NAME_MAX,
    PREFIX_MAX,
    USTAR_MAGIC,
    USTAR_VERSION,
)
from .errors import FieldOverflow, InvalidMetadata, NameTooLong


class FileType(Enum):
    """USTAR typeflag values (the single byte stored at offset 156)."""

    NORMAL = b"0"
    HARD_LINK = b"1"
    SYMLINK = b"2"
    CHAR_SPECIAL = b"3"
    BLOCK_SPECIAL = b"4"
    DIRECTORY = b"5"
    FIFO = b"6"
    CONTIGUOUS = b"7"
    GLOBAL_EXT_HEADER = b"g"
    EXT_HEADER = b"x"


_LINK_TYPES = frozenset({FileType.HARD_LINK, FileType.SYMLINK})
_DEVICE_TYPES = frozenset({FileType.CHAR_SPECIAL, FileType.BLOCK_SPECIAL})
# Types whose header is followed by data blocks; everything else must declare size 0
_DATA_TYPES = frozenset(
    {FileType.NORMAL, FileType.CONTIGUOUS, FileType.GLOBAL_EXT_HEADER, FileType.EXT_HEADER}
)


@dataclass
class EntryMetadata:
    name: str
    size: int = 0
    mode: int = DEFAULT_MODE
    uid: int = 0
    gid: int = 0
    mtime: Optional[Union[int, float, datetime]] = None
    file_type: FileType = FileType.NORMAL
    linkname: Optional[str] = None
    uname: Optional[str] = None
    gname: Optional[str] = None
    devmajor: Optional[int] = None
    devminor: Optional[int] = None

    def __post_init__(self):
        if self.mtime is None:
            self.mtime = int(time.time())

    def mtime_seconds(self) -> int:
        """Return mtime as integer seconds since the epoch."""
        mt = self.mtime
        if isinstance(mt, datetime):
            return int(mt.timestamp())
        if isinstance(mt, bool) or not isinstance(mt, (int, float)):
            raise InvalidMetadata(f"{self.name}: unsupported mtime {mt!r}")
        if isinstance(mt, float) and not math.isfinite(mt):
            raise InvalidMetadata(f"{self.name}: mtime must be finite, got {mt!r}")
        return int(mt)

    @property
    def has_data(self) -> bool:
        return self.file_type in _DATA_TYPES


def _octal(value, width: int, field: str) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidMetadata(f"{field} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidMetadata(f"{field} may not be negative: {value}")
    digits = width - 1
    if value >= 8 ** digits:
        raise FieldOverflow(f"{field} value {value} does not fit in {digits} octal digits")
    return f"{value:0{digits}o}".encode("ascii") + b"\x00"


def _text(value: Optional[str], width: int, field: str) -> bytes:
    if not value:
        return b""
    raw = value.encode("utf-8")
    if len(raw) > width:
        raise FieldOverflow(f"{field} is {len(raw)} bytes, field holds {width}")
    return raw


def _put(buf: bytearray, field: Tuple[int, int], data: bytes) -> None:
    off, _ = field
    buf[off : off + len(data)] = data


def split_name(path: str) -> Tuple[str, str]:
    """Split ``path`` into USTAR ``(prefix, name)`` fields.

    Paths of up to 100 bytes are stored verbatim in ``name``. Longer paths are
    split at the last '/' for which the suffix fits 100 bytes and the prefix
    fits 155 bytes, so that ``prefix + "/" + name == path``.
    """
    raw = path.encode("utf-8")
    if not raw:
        raise InvalidMetadata("Entry name may not be empty")
    if len(raw) <= NAME_MAX:
        return "", path
    idx = raw.rfind(b"/")
    while idx > 0:
        prefix, name = raw[:idx], raw[idx + 1 :]
        # moving left only lengthens the suffix
        if len(name) > NAME_MAX:
            break
        if name and len(prefix) <= PREFIX_MAX:
            return prefix.decode("utf-8"), name.decode("utf-8")
        idx = raw.rfind(b"/", 0, idx)
    raise NameTooLong(
        f"{path!r} ({len(raw)} bytes) cannot be split into a {PREFIX_MAX}-byte prefix "
        f"and a {NAME_MAX}-byte name"
    )


def compute_checksum(block: bytes) -> int:
    """Sum of all header bytes with the checksum field counted as spaces."""
    if len(block) != BLOCK_SIZE:
        raise ValueError(f"header block must be {BLOCK_SIZE} bytes, got {len(block)}")
    off, length = FIELD_CHKSUM
    return sum(block[:off]) + sum(CHKSUM_BLANK) + sum(block[off + length :])


def encode_header(meta: EntryMetadata) -> bytes:
    """Encode ``meta`` as one 512-byte USTAR header block."""
    ft = meta.file_type
    if not isinstance(ft, FileType):
        raise InvalidMetadata(f"{meta.name}: unknown file type {ft!r}")
    prefix, name = split_name(meta.name)
    if ft in _LINK_TYPES and not meta.linkname:
        raise InvalidMetadata(f"{meta.name}: {ft.name} entry requires a linkname")
    if ft not in _LINK_TYPES and meta.linkname:
        raise InvalidMetadata(f"{meta.name}: linkname is only valid for link entries, not {ft.name}")
    if ft not in _DATA_TYPES and meta.size != 0:
        raise InvalidMetadata(f"{meta.name}: {ft.name} entry must declare size 0, not {meta.size}")

    buf = bytearray(BLOCK_SIZE)
    _put(buf, FIELD_NAME, _text(name, FIELD_NAME[1], "name"))
    _put(buf, FIELD_MODE, _octal(meta.mode, FIELD_MODE[1], "mode"))
    _put(buf, FIELD_UID, _octal(meta.uid, FIELD_UID[1], "uid"))
    _put(buf, FIELD_GID, _octal(meta.gid, FIELD_GID[1], "gid"))
    _put(buf, FIELD_SIZE, _octal(meta.size, FIELD_SIZE[1], "size"))
    _put(buf, FIELD_MTIME, _octal(meta.mtime_seconds(), FIELD_MTIME[1], "mtime"))
    _put(buf, FIELD_TYPEFLAG, ft.value)
    _put(buf, FIELD_LINKNAME, _text(meta.linkname, FIELD_LINKNAME[1], "linkname"))
    _put(buf, FIELD_MAGIC, USTAR_MAGIC)
    _put(buf, FIELD_VERSION, USTAR_VERSION)
    _put(buf, FIELD_UNAME, _text(meta.uname, FIELD_UNAME[1], "uname"))
    _put(buf, FIELD_GNAME, _text(meta.gname, FIELD_GNAME[1], "gname"))
    if ft in _DEVICE_TYPES or meta.devmajor is not None or meta.devminor is not None:
        _put(buf, FIELD_DEVMAJOR, _octal(meta.devmajor or 0, FIELD_DEVMAJOR[1], "devmajor"))
        _put(buf, FIELD_DEVMINOR, _octal(meta.devminor or 0, FIELD_DEVMINOR[1], "devminor"))
    _put(buf, FIELD_PREFIX, _text(prefix, FIELD_PREFIX[1], "prefix"))

    # Two-pass: sum with the checksum field blanked, then fill it in
    _put(buf, FIELD_CHKSUM, CHKSUM_BLANK)
    chksum = sum(buf)
    _put(buf, FIELD_CHKSUM, f"{chksum:06o}".encode("ascii") + b"\x00 ")
    return bytes(buf)
