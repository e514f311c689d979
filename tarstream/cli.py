from __future__ import annotations

import os
import stat
import sys
import time
import logging
import argparse

from pathlib import Path
from typing import List, Optional, Tuple

from tarstream.constants import DEFAULT_CHUNK_SIZE
from tarstream.header import FileType
from tarstream.writer import ArchiveWriter
from tarstream.errors import TarStreamError


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)

_SPECIAL_KINDS = {
    "fifo": FileType.FIFO,
    "chardev": FileType.CHAR_SPECIAL,
    "blockdev": FileType.BLOCK_SPECIAL,
}


def configure_logging(level: str) -> None:
    """Configure the root logger once for command-line use.

    Args:
        level: Standard level name (DEBUG, INFO, WARNING, ERROR).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


def _classify(full: str) -> Optional[str]:
    """Map an lstat result to an entry kind, or None for unarchivable nodes."""
    mode = os.lstat(full).st_mode
    if stat.S_ISLNK(mode):
        return "symlink"
    if stat.S_ISDIR(mode):
        return "dir"
    if stat.S_ISREG(mode):
        return "file"
    if stat.S_ISFIFO(mode):
        return "fifo"
    if stat.S_ISCHR(mode):
        return "chardev"
    if stat.S_ISBLK(mode):
        return "blockdev"
    return None


def collect_inputs(inputs: List[str]) -> List[Tuple[str, str, str]]:
    """Expand filesystem inputs into ``(kind, arcname, fs_path)`` tuples.

    Directories are walked recursively and stored relative to their parent, so
    ``tarstream create out.tar photos`` yields members under ``photos/``.
    Symlinks are recorded as links and never followed. FIFOs and device nodes
    become data-less entries; sockets are skipped with a warning.
    """
    items: List[Tuple[str, str, str]] = []
    seen = set()

    def _add(kind: Optional[str], arc: str, full: str) -> None:
        if kind is None:
            print(f"Warning: skipping unsupported file type: {full}", file=sys.stderr)
            return
        arc = arc.replace(os.sep, "/")
        if arc in seen:
            return
        seen.add(arc)
        items.append((kind, arc, full))

    for raw in inputs:
        p = Path(raw)
        if p.is_symlink():
            _add("symlink", p.name, str(p))
        elif p.is_dir():
            base = p.resolve().name
            _add("dir", base, str(p))
            for root, dirnames, filenames in os.walk(str(p)):
                dirnames.sort()
                for d in dirnames:
                    sub = os.path.join(root, d)
                    arc = os.path.join(base, os.path.relpath(sub, start=str(p)))
                    if os.path.islink(sub):
                        _add("symlink", arc, sub)
                    else:
                        _add("dir", arc, sub)
                # prune symlink directories to avoid walking into them
                dirnames[:] = [d for d in dirnames if not os.path.islink(os.path.join(root, d))]
                for f in sorted(filenames):
                    full = os.path.join(root, f)
                    arc = os.path.join(base, os.path.relpath(full, start=str(p)))
                    _add(_classify(full), arc, full)
        elif p.exists():
            _add(_classify(str(p)), p.name, str(p))
        else:
            raise FileNotFoundError(f"No such file or directory: {raw}")
    return items


def build_writer(inputs: List[str], *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> ArchiveWriter:
    """Queue every collected input on a fresh writer."""
    w = ArchiveWriter(chunk_size=chunk_size)
    for kind, arc, full in collect_inputs(inputs):
        if kind == "dir":
            st = os.stat(full)
            w.append_dir(arc, mode=st.st_mode & 0o7777, mtime=int(st.st_mtime))
        elif kind == "symlink":
            st = os.lstat(full)
            w.append_symlink(arc, os.readlink(full), mtime=int(st.st_mtime))
        elif kind in _SPECIAL_KINDS:
            st = os.lstat(full)
            fields = {"mode": st.st_mode & 0o7777, "mtime": int(st.st_mtime)}
            if kind != "fifo":
                fields["devmajor"] = os.major(st.st_rdev)
                fields["devminor"] = os.minor(st.st_rdev)
            w.append_special(arc, _SPECIAL_KINDS[kind], **fields)
        else:
            w.append_file(full, arc)
    return w


def cmd_create(output: str, inputs: List[str], *, chunk_size: int = DEFAULT_CHUNK_SIZE, quiet: bool = False) -> int:
    """Stream a new tar archive built from filesystem paths.

    Args:
        output: Destination path, or "-" for standard output.
        inputs: Files and directories to store.
        chunk_size: Read size used for file contents.
        quiet: Suppress per-entry progress lines.

    Returns:
        Number of archive bytes written.
    """
    w = build_writer(inputs, chunk_size=chunk_size)
    names = [e.meta.name for e in w.pending]
    expected = w.size
    # progress goes to stderr when the archive itself is on stdout
    msg = sys.stderr if output == "-" else sys.stdout

    t0 = time.time()
    written = 0
    reported = 0
    fh = sys.stdout.buffer if output == "-" else open(output, "wb")
    try:
        for chunk in w.produce():
            fh.write(chunk)
            written += len(chunk)
            while not quiet and reported < w.emitted:
                pct = written * 100.0 / expected
                print(f" {pct:6.2f}% archived: {names[reported]}", file=msg)
                reported += 1
        fh.flush()
    finally:
        if fh is not sys.stdout.buffer:
            fh.close()

    dt = max(0.000001, time.time() - t0)
    mib = written / (1024.0 * 1024.0)
    print(f"Wrote {len(names)} entries, {written} bytes in {dt:.2f}s ({mib / dt:.2f} MiB/s)", file=msg)
    logger.info("Created %s with %d entries", output, len(names))
    return written


def cmd_size(inputs: List[str]) -> int:
    """Print the exact archive size the inputs would produce."""
    size = build_writer(inputs).size
    print(size)
    return size


def main(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(
        prog="tarstream",
        description="Stream POSIX ustar archives without buffering them in memory",
    )
    ap.add_argument(
        "--log-level",
        default=os.environ.get("TARSTREAM_LOG_LEVEL", "WARNING"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging verbosity (default: $TARSTREAM_LOG_LEVEL or WARNING)",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_create = sub.add_parser("create", help="Create archive")
    ap_create.add_argument("output", help="Output .tar path, or - for stdout")
    ap_create.add_argument("inputs", nargs="+", help="Input files/directories")
    ap_create.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Read size in bytes (default 65536)")
    ap_create.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_size = sub.add_parser("size", help="Print the archive size the inputs would produce")
    ap_size.add_argument("inputs", nargs="+", help="Input files/directories")

    args = ap.parse_args(argv)
    configure_logging(args.log_level)
    try:
        if args.cmd == "create":
            if args.chunk_size <= 0:
                raise ValueError("--chunk-size must be positive")
            cmd_create(args.output, args.inputs, chunk_size=args.chunk_size, quiet=args.quiet)
        elif args.cmd == "size":
            cmd_size(args.inputs)
        else:
            raise RuntimeError("Unknown command")
    except (TarStreamError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
