from __future__ import annotations

import tarfile
import unittest
from datetime import datetime, timezone

from tarstream.constants import BLOCK_SIZE
from tarstream.errors import FieldOverflow, InvalidMetadata, NameTooLong
from tarstream.header import (
    EntryMetadata,
    FileType,
    compute_checksum,
    encode_header,
    split_name,
)


def _field(block: bytes, off: int, length: int) -> bytes:
    return block[off : off + length]


def _octal_field(block: bytes, off: int, length: int) -> int:
    raw = _field(block, off, length).rstrip(b"\x00 ")
    return int(raw or b"0", 8)


def _text_field(block: bytes, off: int, length: int) -> str:
    return _field(block, off, length).split(b"\x00", 1)[0].decode("utf-8")


class HeaderFieldTests(unittest.TestCase):
    def test_numeric_fields_decode_back(self):
        cases = [
            EntryMetadata(name="a.txt", size=0, mode=0o644, uid=0, gid=0, mtime=0),
            EntryMetadata(name="b.bin", size=123456, mode=0o755, uid=1000, gid=100, mtime=1_700_000_000),
            EntryMetadata(name="c", size=8 ** 11 - 1, mode=0o7777, uid=8 ** 7 - 1, gid=42, mtime=8 ** 11 - 1),
        ]
        for meta in cases:
            block = encode_header(meta)
            self.assertEqual(len(block), BLOCK_SIZE)
            self.assertEqual(_octal_field(block, 100, 8), meta.mode)
            self.assertEqual(_octal_field(block, 108, 8), meta.uid)
            self.assertEqual(_octal_field(block, 116, 8), meta.gid)
            self.assertEqual(_octal_field(block, 124, 12), meta.size)
            self.assertEqual(_octal_field(block, 136, 12), meta.mtime)
            self.assertEqual(_field(block, 156, 1), b"0")

    def test_octal_layout_is_zero_padded_and_nul_terminated(self):
        block = encode_header(EntryMetadata(name="x", size=5, mtime=0))
        self.assertEqual(_field(block, 100, 8), b"0000644\x00")
        self.assertEqual(_field(block, 124, 12), b"00000000005\x00")
        self.assertEqual(_field(block, 257, 6), b"ustar\x00")
        self.assertEqual(_field(block, 263, 2), b"00")

    def test_typeflags(self):
        expected = {
            FileType.NORMAL: b"0",
            FileType.DIRECTORY: b"5",
            FileType.FIFO: b"6",
            FileType.CONTIGUOUS: b"7",
        }
        for ft, flag in expected.items():
            block = encode_header(EntryMetadata(name="n", file_type=ft, mtime=0))
            self.assertEqual(_field(block, 156, 1), flag)
        link = encode_header(EntryMetadata(name="l", file_type=FileType.SYMLINK, linkname="target/file", mtime=0))
        self.assertEqual(_field(link, 156, 1), b"2")
        self.assertEqual(_text_field(link, 157, 100), "target/file")

    def test_owner_names_and_devices(self):
        meta = EntryMetadata(
            name="dev/tty0",
            file_type=FileType.CHAR_SPECIAL,
            uname="root",
            gname="tty",
            devmajor=4,
            devminor=1,
            mtime=0,
        )
        block = encode_header(meta)
        self.assertEqual(_text_field(block, 265, 32), "root")
        self.assertEqual(_text_field(block, 297, 32), "tty")
        self.assertEqual(_octal_field(block, 329, 8), 4)
        self.assertEqual(_octal_field(block, 337, 8), 1)

    def test_device_numbers_default_to_zero(self):
        for ft in (FileType.CHAR_SPECIAL, FileType.BLOCK_SPECIAL):
            block = encode_header(EntryMetadata(name="dev/node", file_type=ft, mtime=0))
            self.assertEqual(_field(block, 329, 8), b"0000000\x00")
            self.assertEqual(_field(block, 337, 8), b"0000000\x00")
            info = tarfile.TarInfo.frombuf(block, "utf-8", "surrogateescape")
            self.assertEqual((info.devmajor, info.devminor), (0, 0))

    def test_device_fields_left_empty_for_regular_files(self):
        block = encode_header(EntryMetadata(name="f", mtime=0))
        self.assertEqual(_field(block, 329, 16), b"\x00" * 16)

    def test_datetime_mtime(self):
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        block = encode_header(EntryMetadata(name="f", mtime=when))
        self.assertEqual(_octal_field(block, 136, 12), int(when.timestamp()))

    def test_default_mtime_is_now(self):
        meta = EntryMetadata(name="f")
        self.assertIsInstance(meta.mtime, int)
        self.assertGreater(meta.mtime, 1_600_000_000)

    def test_readable_by_tarfile(self):
        meta = EntryMetadata(name="docs/readme.md", size=0, mode=0o600, uid=7, gid=8, mtime=1234567890, uname="u", gname="g")
        block = encode_header(meta)
        info = tarfile.TarInfo.frombuf(block, "utf-8", "surrogateescape")
        self.assertEqual(info.name, "docs/readme.md")
        self.assertEqual(info.mode, 0o600)
        self.assertEqual((info.uid, info.gid), (7, 8))
        self.assertEqual(info.mtime, 1234567890)
        self.assertEqual((info.uname, info.gname), ("u", "g"))


class ChecksumTests(unittest.TestCase):
    def test_stored_checksum_matches_recomputed(self):
        metas = [
            EntryMetadata(name="hello.txt", size=5, mtime=0),
            EntryMetadata(name="d/" * 40 + "leaf", size=99, mode=0o751, uid=3, gid=4, mtime=1_600_000_000),
            EntryMetadata(name="ünïcødé.txt", size=1, uname="ü", mtime=42),
        ]
        for meta in metas:
            block = encode_header(meta)
            stored = _field(block, 148, 8)
            self.assertEqual(stored[6:], b"\x00 ")
            self.assertEqual(int(stored[:6], 8), compute_checksum(block))

    def test_checksum_blanks_its_own_field(self):
        block = bytearray(encode_header(EntryMetadata(name="x", mtime=0)))
        before = compute_checksum(bytes(block))
        block[148:156] = b"\xff" * 8
        self.assertEqual(compute_checksum(bytes(block)), before)

    def test_rejects_wrong_length(self):
        with self.assertRaises(ValueError):
            compute_checksum(b"\x00" * 100)


class NameSplitTests(unittest.TestCase):
    def test_short_name_verbatim(self):
        path = "a" * 100
        self.assertEqual(split_name(path), ("", path))
        block = encode_header(EntryMetadata(name=path, mtime=0))
        self.assertEqual(_field(block, 0, 100), path.encode())
        self.assertEqual(_field(block, 345, 155), b"\x00" * 155)

    def test_long_name_split_reconstructs(self):
        path = "/".join(["segment%02d" % i for i in range(15)]) + "/file.txt"
        self.assertGreater(len(path), 100)
        prefix, name = split_name(path)
        self.assertLessEqual(len(name.encode()), 100)
        self.assertLessEqual(len(prefix.encode()), 155)
        self.assertEqual(prefix + "/" + name, path)
        # closest split to the end
        self.assertEqual(name, "file.txt")

    def test_split_round_trips_through_tarfile(self):
        path = "p" * 120 + "/" + "n" * 90
        block = encode_header(EntryMetadata(name=path, mtime=0))
        self.assertEqual(_text_field(block, 345, 155), "p" * 120)
        self.assertEqual(_text_field(block, 0, 100), "n" * 90)
        info = tarfile.TarInfo.frombuf(block, "utf-8", "surrogateescape")
        self.assertEqual(info.name, path)

    def test_prefix_too_long_moves_split_left(self):
        path = "a" * 100 + "/" + "b" * 60 + "/" + "c" * 30
        prefix, name = split_name(path)
        self.assertEqual(prefix, "a" * 100)
        self.assertEqual(name, "b" * 60 + "/" + "c" * 30)

    def test_unsplittable_names(self):
        for path in ["x" * 101, "a/" + "y" * 101, "z" * 156 + "/short", "a" * 160 + "/" + "b" * 80]:
            with self.assertRaises(NameTooLong):
                split_name(path)
            with self.assertRaises(NameTooLong):
                encode_header(EntryMetadata(name=path, mtime=0))

    def test_directory_trailing_slash(self):
        path = "d" * 110 + "/" + "sub/"
        prefix, name = split_name(path)
        self.assertEqual((prefix, name), ("d" * 110, "sub/"))

    def test_empty_name_rejected(self):
        with self.assertRaises(InvalidMetadata):
            encode_header(EntryMetadata(name="", mtime=0))


class HeaderFailureTests(unittest.TestCase):
    def test_size_overflow(self):
        with self.assertRaises(FieldOverflow):
            encode_header(EntryMetadata(name="big", size=8 ** 11, mtime=0))

    def test_mode_and_id_overflow(self):
        with self.assertRaises(FieldOverflow):
            encode_header(EntryMetadata(name="m", mode=8 ** 7, mtime=0))
        with self.assertRaises(FieldOverflow):
            encode_header(EntryMetadata(name="u", uid=8 ** 7, mtime=0))

    def test_text_overflow(self):
        with self.assertRaises(FieldOverflow):
            encode_header(EntryMetadata(name="l", file_type=FileType.SYMLINK, linkname="t" * 101, mtime=0))
        with self.assertRaises(FieldOverflow):
            encode_header(EntryMetadata(name="u", uname="n" * 33, mtime=0))

    def test_negative_values(self):
        with self.assertRaises(InvalidMetadata):
            encode_header(EntryMetadata(name="neg", size=-1, mtime=0))
        with self.assertRaises(InvalidMetadata):
            encode_header(EntryMetadata(name="neg", mtime=-5))

    def test_link_requires_target(self):
        with self.assertRaises(InvalidMetadata):
            encode_header(EntryMetadata(name="l", file_type=FileType.HARD_LINK, mtime=0))

    def test_linkname_only_on_links(self):
        for ft in (FileType.NORMAL, FileType.DIRECTORY, FileType.FIFO):
            with self.assertRaises(InvalidMetadata):
                encode_header(EntryMetadata(name="x", file_type=ft, linkname="elsewhere", mtime=0))

    def test_non_data_types_must_be_empty(self):
        with self.assertRaises(InvalidMetadata):
            encode_header(EntryMetadata(name="d/", file_type=FileType.DIRECTORY, size=10, mtime=0))

    def test_bad_mtime_type(self):
        with self.assertRaises(InvalidMetadata):
            encode_header(EntryMetadata(name="f", mtime="yesterday"))
        for bad in (float("nan"), float("inf"), float("-inf")):
            with self.assertRaises(InvalidMetadata):
                encode_header(EntryMetadata(name="f", mtime=bad))

    def test_error_hierarchy(self):
        from tarstream.errors import TarStreamError

        for exc in (NameTooLong, FieldOverflow, InvalidMetadata):
            self.assertTrue(issubclass(exc, TarStreamError))
        self.assertTrue(issubclass(InvalidMetadata, ValueError))


if __name__ == "__main__":
    unittest.main()
