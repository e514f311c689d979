# Block geometry
BLOCK_SIZE = 512
RECORD_TERMINATOR = b"\x00" * (2 * BLOCK_SIZE)  # two zero blocks mark end-of-archive

# Header field layout: name -> (offset, length)
FIELD_NAME = (0, 100)
FIELD_MODE = (100, 8)
FIELD_UID = (108, 8)
FIELD_GID = (116, 8)
FIELD_SIZE = (124, 12)
FIELD_MTIME = (136, 12)
FIELD_CHKSUM = (148, 8)
FIELD_TYPEFLAG = (156, 1)
FIELD_LINKNAME = (157, 100)
FIELD_MAGIC = (257, 6)
FIELD_VERSION = (263, 2)
FIELD_UNAME = (265, 32)
FIELD_GNAME = (297, 32)
FIELD_DEVMAJOR = (329, 8)
FIELD_DEVMINOR = (337, 8)
FIELD_PREFIX = (345, 155)

NAME_MAX = FIELD_NAME[1]
PREFIX_MAX = FIELD_PREFIX[1]

# Magic and version
USTAR_MAGIC = b"ustar\x00"  # 6 bytes: "ustar\0"
USTAR_VERSION = b"00"

# Checksum field is summed as eight spaces
CHKSUM_BLANK = b" " * FIELD_CHKSUM[1]


DEFAULT_MODE = 0o644
DEFAULT_DIR_MODE = 0o755
DEFAULT_CHUNK_SIZE = 65_536  # 64 KiB

CONTENT_TYPE = "application/x-tar"


def padding_for(size: int) -> int:
    """Number of zero bytes needed to round ``size`` up to a block boundary."""
    return -size % BLOCK_SIZE


def blocks_for(size: int) -> int:
    return (size + BLOCK_SIZE - 1) // BLOCK_SIZE
