"""Decoder for archive headers (.ba2 and .bsa).

Two archive families share one summary shape:

BA2 (newer, tagged header):
    offset  size  field
    0       4     magic "BTDX"
    4       4     version (1 original, 7/8 next-gen)
    8       4     content type tag: GNRL, DX10 or GNMF
    12      4     file count
    16      8     name table offset

BSA (older, fixed header):
    offset  size  field
    0       4     magic "BSA\\0"
    4       4     version
    8       4     folder record offset
    12      4     archive flags
    16      4     folder count
    20      4     file count

Only headers are read; packed entries are never decompressed.
"""

import struct
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional

from .integrity import checksum_file
from ..errors import InvalidFormatError, NotFoundError, ToolkitIOError, TruncatedRecordError
from ..logging_config import get_logger

logger = get_logger("archive_decoder")

BA2_MAGIC = b"BTDX"
BSA_MAGIC = b"BSA\x00"

_BA2_HEADER = struct.Struct("<I4sIQ")
_BSA_HEADER = struct.Struct("<5I")


class ArchiveFamily(str, Enum):
    BA2 = "ba2"
    BSA = "bsa"


class ArchiveFormat(str, Enum):
    """Content classification of an archive"""
    GENERAL = "general"
    TEXTURE = "texture"
    PLATFORM = "platform"
    LEGACY = "legacy"
    UNKNOWN = "unknown"


# BA2 content type tag -> format label
BA2_CONTENT_TYPES = {
    b"GNRL": ArchiveFormat.GENERAL,
    b"DX10": ArchiveFormat.TEXTURE,
    b"GNMF": ArchiveFormat.PLATFORM,
}

# Offset of the content type tag inside a BA2 header
BA2_CONTENT_TYPE_OFFSET = 8


@dataclass(frozen=True)
class ArchiveSummary:
    """Information extracted from an archive header."""
    file_path: Path
    file_size: int
    created_time: datetime
    modified_time: datetime
    family: ArchiveFamily
    version: int
    content_type: str
    format: ArchiveFormat
    file_count: int
    name_table_offset: Optional[int] = None
    folder_record_offset: Optional[int] = None
    archive_flags: Optional[int] = None
    folder_count: Optional[int] = None
    crc32: int = 0

    @property
    def file_name(self) -> str:
        return self.file_path.name

    @property
    def is_recognized(self) -> bool:
        return self.format != ArchiveFormat.UNKNOWN


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) < size:
        raise TruncatedRecordError(f"{what} is {len(data)} bytes, expected {size}")
    return data


class ArchiveDecoder:
    """Decoder for BA2 and BSA archive headers."""

    def read_ba2_header(self, stream: BinaryIO) -> dict:
        """Read a BA2 header from the start of a stream.

        Args:
            stream: Binary stream positioned at offset 0

        Returns:
            Dictionary of header fields

        Raises:
            InvalidFormatError: If the magic is not BTDX
            TruncatedRecordError: If the header is incomplete
        """
        magic = stream.read(len(BA2_MAGIC))
        if magic != BA2_MAGIC:
            raise InvalidFormatError(f"Invalid BA2 magic: {magic!r}")

        version, content_tag, file_count, name_table_offset = _BA2_HEADER.unpack(
            _read_exact(stream, _BA2_HEADER.size, "BA2 header")
        )
        return {
            "family": ArchiveFamily.BA2,
            "version": version,
            "content_type": content_tag.decode("ascii", errors="replace"),
            "format": BA2_CONTENT_TYPES.get(content_tag, ArchiveFormat.UNKNOWN),
            "file_count": file_count,
            "name_table_offset": name_table_offset,
        }

    def read_bsa_header(self, stream: BinaryIO) -> dict:
        """Read a BSA header from the start of a stream.

        The magic is compared as four raw bytes including the NUL.

        Args:
            stream: Binary stream positioned at offset 0

        Returns:
            Dictionary of header fields

        Raises:
            InvalidFormatError: If the magic is not BSA\\0
            TruncatedRecordError: If the header is incomplete
        """
        magic = stream.read(len(BSA_MAGIC))
        if magic != BSA_MAGIC:
            raise InvalidFormatError(f"Invalid BSA magic: {magic!r}")

        version, folder_offset, archive_flags, folder_count, file_count = _BSA_HEADER.unpack(
            _read_exact(stream, _BSA_HEADER.size, "BSA header")
        )
        return {
            "family": ArchiveFamily.BSA,
            "version": version,
            "content_type": "BSA",
            "format": ArchiveFormat.LEGACY,
            "file_count": file_count,
            "folder_record_offset": folder_offset,
            "archive_flags": archive_flags,
            "folder_count": folder_count,
        }

    def decode(self, file_path: Path) -> ArchiveSummary:
        """Decode an archive header into an ArchiveSummary.

        Args:
            file_path: Path to a .ba2 or .bsa file

        Returns:
            ArchiveSummary with header data and checksum

        Raises:
            InvalidFormatError: Unrecognized extension or wrong magic
            NotFoundError: If the file does not exist
            TruncatedRecordError: If the header is incomplete
            ToolkitIOError: If the file cannot be read
        """
        file_path = Path(file_path)
        extension = file_path.suffix.lower()
        if extension == ".ba2":
            read_header = self.read_ba2_header
        elif extension == ".bsa":
            read_header = self.read_bsa_header
        else:
            raise InvalidFormatError(f"Unknown archive type: {file_path.suffix}", path=file_path)

        if not file_path.is_file():
            raise NotFoundError("Archive file not found", path=file_path)

        try:
            stat = file_path.stat()
            with open(file_path, "rb") as f:
                fields = read_header(f)
        except (InvalidFormatError, TruncatedRecordError) as e:
            e.path = file_path
            raise
        except OSError as e:
            raise ToolkitIOError(f"Cannot read archive: {e}", path=file_path) from e

        summary = ArchiveSummary(
            file_path=file_path,
            file_size=stat.st_size,
            created_time=datetime.fromtimestamp(getattr(stat, "st_birthtime", stat.st_ctime)),
            modified_time=datetime.fromtimestamp(stat.st_mtime),
            crc32=checksum_file(file_path),
            **fields,
        )

        logger.debug(
            "Decoded archive %s - version %d, format %s, files %d",
            summary.file_name, summary.version, summary.format.value, summary.file_count,
        )
        return summary


def decode_archive(file_path: Path) -> ArchiveSummary:
    """Quick helper to decode a single archive header.

    Args:
        file_path: Path to an archive file

    Returns:
        ArchiveSummary for the file
    """
    return ArchiveDecoder().decode(file_path)
