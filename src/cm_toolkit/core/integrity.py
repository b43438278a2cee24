"""Streaming CRC-32 checksums for files and byte streams.

Every decoder and the patch pipeline fingerprint files through this module.
The checksum is the standard zlib CRC-32 as an unsigned 32-bit integer, so
it does not depend on how the input is chunked.
"""

import zlib
from pathlib import Path
from typing import BinaryIO

from ..errors import NotFoundError, ToolkitIOError

CHUNK_SIZE = 8192


def checksum(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> int:
    """Compute the CRC-32 of a stream, reading it to the end.

    Args:
        stream: Binary stream positioned where checksumming should start
        chunk_size: Read size per iteration

    Returns:
        Unsigned 32-bit CRC

    Raises:
        ToolkitIOError: If the stream cannot be read
    """
    crc = 0
    try:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            crc = zlib.crc32(chunk, crc)
    except OSError as e:
        raise ToolkitIOError(f"Read failed while checksumming: {e}") from e
    return crc & 0xFFFFFFFF


def checksum_bytes(data: bytes) -> int:
    """CRC-32 of an in-memory buffer."""
    return zlib.crc32(data) & 0xFFFFFFFF


def checksum_file(file_path: Path) -> int:
    """Compute the CRC-32 of a whole file.

    Args:
        file_path: File to checksum

    Returns:
        Unsigned 32-bit CRC

    Raises:
        NotFoundError: If the file does not exist
        ToolkitIOError: If the file cannot be read
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise NotFoundError("File not found", path=file_path)

    try:
        with open(file_path, "rb") as f:
            return checksum(f)
    except ToolkitIOError as e:
        e.path = file_path
        raise
    except OSError as e:
        raise ToolkitIOError(f"Cannot open file: {e}", path=file_path) from e


def verify(stream: BinaryIO, expected: int) -> bool:
    """Check a stream against an expected CRC-32.

    Args:
        stream: Binary stream to read to the end
        expected: Expected unsigned CRC-32

    Returns:
        True if the checksums match
    """
    return checksum(stream) == (expected & 0xFFFFFFFF)


def verify_file(file_path: Path, expected: int) -> bool:
    """File variant of :func:`verify`."""
    return checksum_file(file_path) == (expected & 0xFFFFFFFF)
