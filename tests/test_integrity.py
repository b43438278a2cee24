"""Tests for CRC-32 checksumming."""

import io
import zlib

import pytest

from cm_toolkit.core.integrity import checksum, checksum_bytes, checksum_file, verify, verify_file
from cm_toolkit.errors import NotFoundError, ToolkitIOError


DATA = bytes(range(256)) * 97 + b"tail"


@pytest.mark.parametrize("chunk_size", [1, 7, 4096, 8192, 1 << 20])
def test_streaming_checksum_matches_whole_buffer(chunk_size: int) -> None:
    assert checksum(io.BytesIO(DATA), chunk_size) == zlib.crc32(DATA) & 0xFFFFFFFF


def test_checksum_of_empty_stream_is_zero() -> None:
    assert checksum(io.BytesIO(b"")) == 0


def test_checksum_file_and_verify(tmp_path) -> None:
    path = tmp_path / "file.bin"
    path.write_bytes(DATA)

    crc = checksum_file(path)
    assert crc == checksum_bytes(DATA)
    assert verify(io.BytesIO(DATA), crc)
    assert verify_file(path, crc)
    assert not verify_file(path, crc ^ 1)


def test_checksum_file_missing(tmp_path) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        checksum_file(tmp_path / "missing.bin")
    assert exc_info.value.recoverable


class _FailingStream(io.RawIOBase):
    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        raise OSError("device error")


def test_read_failure_raises_instead_of_partial_checksum() -> None:
    with pytest.raises(ToolkitIOError):
        checksum(_FailingStream())
