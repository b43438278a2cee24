"""Tests for module header decoding."""

import io
import struct

import pytest

from builders import hedr, module_bytes, subrecord
from cm_toolkit.core.module_decoder import ModuleDecoder, ModuleType, decode_module
from cm_toolkit.errors import InvalidFormatError, NotFoundError, TruncatedRecordError


def test_decodes_header_fields_with_clamped_payload(tmp_path) -> None:
    # Declared payload is 36 bytes but only 30 follow the header
    data = module_bytes(
        [hedr(1.0, 100, 0x800), subrecord(b"CNAM", b"Bob\0\0\0")],
        declared_size=36,
    )
    path = tmp_path / "Test.esp"
    path.write_bytes(data)

    summary = decode_module(path)

    assert summary.header_version == pytest.approx(1.0)
    assert summary.record_count == 100
    assert summary.next_object_id == 0x800
    assert summary.author == "Bob"
    assert summary.module_type == ModuleType.PLUGIN
    assert summary.masters == ()
    assert summary.file_size == len(data)


def test_masters_keep_order_and_duplicates(tmp_path) -> None:
    path = tmp_path / "Patch.esp"
    path.write_bytes(module_bytes([
        hedr(),
        subrecord(b"MAST", b"Fallout4.esm\0"),
        subrecord(b"DATA", b"\0" * 8),
        subrecord(b"MAST", b"DLCRobot.esm\0"),
        subrecord(b"MAST", b"Fallout4.esm\0"),
        subrecord(b"SNAM", b"A description\0"),
    ]))

    summary = decode_module(path)

    assert summary.masters == ("Fallout4.esm", "DLCRobot.esm", "Fallout4.esm")
    assert summary.description == "A description"


def test_invalid_utf8_is_replaced(tmp_path) -> None:
    path = tmp_path / "Odd.esp"
    path.write_bytes(module_bytes([subrecord(b"CNAM", b"Bo\xffb\0")]))

    assert decode_module(path).author == "Bo\ufffdb"


def test_short_hedr_is_ignored(tmp_path) -> None:
    path = tmp_path / "Short.esp"
    path.write_bytes(module_bytes([subrecord(b"HEDR", b"\0" * 4)]))

    summary = decode_module(path)
    assert summary.header_version is None
    assert summary.record_count is None


def test_wrong_magic_reads_only_four_bytes() -> None:
    stream = io.BytesIO(module_bytes([hedr()], magic=b"TES3"))

    with pytest.raises(InvalidFormatError):
        ModuleDecoder().read_header(stream)
    assert stream.tell() == 4


def test_truncated_header(tmp_path) -> None:
    path = tmp_path / "Cut.esm"
    path.write_bytes(b"TES4" + b"\0" * 10)

    with pytest.raises(TruncatedRecordError) as exc_info:
        decode_module(path)
    assert exc_info.value.path == path


def test_subrecord_crossing_boundary(tmp_path) -> None:
    records = hedr() + struct.pack("<4sH", b"CNAM", 50) + b"Bob"
    path = tmp_path / "Overrun.esp"
    path.write_bytes(module_bytes([records]))

    with pytest.raises(TruncatedRecordError):
        decode_module(path)


def test_bytes_past_declared_size_are_not_read(tmp_path) -> None:
    # Only the 18-byte HEDR is inside the declared payload
    path = tmp_path / "Trailing.esp"
    path.write_bytes(module_bytes([hedr(1.0, 7), subrecord(b"CNAM", b"Bob\0")], declared_size=18))

    summary = decode_module(path)

    assert summary.record_count == 7
    assert summary.author is None


def test_subrecord_crossing_declared_size_inside_file(tmp_path) -> None:
    # CNAM needs 28 bytes of payload, 26 are declared, the file holds all of them
    path = tmp_path / "Crossing.esp"
    path.write_bytes(module_bytes([hedr(), subrecord(b"CNAM", b"Bob\0"), b"\0" * 16], declared_size=26))

    with pytest.raises(TruncatedRecordError):
        decode_module(path)


def test_partial_subrecord_header(tmp_path) -> None:
    path = tmp_path / "Partial.esp"
    path.write_bytes(module_bytes([hedr(), b"CNA"]))

    with pytest.raises(TruncatedRecordError):
        decode_module(path)


def test_unknown_extension_rejected_before_reading(tmp_path) -> None:
    path = tmp_path / "readme.txt"
    with pytest.raises(InvalidFormatError):
        decode_module(path)


def test_missing_file(tmp_path) -> None:
    with pytest.raises(NotFoundError):
        decode_module(tmp_path / "Missing.esp")


@pytest.mark.parametrize("name, flags, light, master", [
    ("Plain.esp", 0x0, False, False),
    ("Flagged.esp", 0x200, True, False),
    ("Small.esl", 0x0, True, False),
    ("Base.esm", 0x0, False, True),
    ("Flagged.esp", 0x1, False, True),
    ("Both.esm", 0x201, True, True),
])
def test_classification_combines_extension_and_flags(tmp_path, name, flags, light, master) -> None:
    path = tmp_path / name
    path.write_bytes(module_bytes([hedr()], flags=flags))

    summary = decode_module(path)
    assert summary.is_light is light
    assert summary.is_master is master
    assert summary.light_by_flag is bool(flags & 0x200)


def test_decode_is_idempotent(tmp_path) -> None:
    path = tmp_path / "Same.esm"
    path.write_bytes(module_bytes([hedr(0.95, 12), subrecord(b"CNAM", b"X\0")]))

    assert decode_module(path) == decode_module(path)
