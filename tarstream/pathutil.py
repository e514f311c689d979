from __future__ import annotations

from .errors import InvalidMetadata


def norm_path(p: str) -> str:
    """Normalize archive member names to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise InvalidMetadata(f"Path may not contain '..': {p!r}")
    if not parts:
        raise InvalidMetadata("Path is empty after normalization")
    return "/".join(parts)
