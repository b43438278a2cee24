"""Decoder for plugin and master files (.esp, .esm, .esl).

A module file starts with a TES4 record:

    offset  size  field
    0       4     magic "TES4"
    4       4     payload size (bytes of subrecords following the header)
    8       4     flags (0x1 master, 0x200 light)
    12      4     form id
    16      4     timestamp
    20      4     version
    24      4     unknown
    28+     n     subrecords until 28 + payload size

Each subrecord is a 4-byte tag, a 2-byte little-endian length and that many
payload bytes. Only the header record is decoded; the rest of the file
(the actual game records) is only covered by the checksum.

Recognized subrecords:
- HEDR - float version, record count, next object id
- CNAM - author (null terminated)
- SNAM - description (null terminated)
- MAST - master file name, one per dependency
"""

import struct
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from .integrity import checksum_file
from ..errors import InvalidFormatError, NotFoundError, ToolkitIOError, TruncatedRecordError
from ..logging_config import get_logger

logger = get_logger("module_decoder")

MODULE_MAGIC = b"TES4"
FLAG_MASTER = 0x0001
FLAG_LIGHT = 0x0200

_RECORD_HEADER = struct.Struct("<6I")
_SUBRECORD_HEADER = struct.Struct("<4sH")
_HEDR = struct.Struct("<fII")


class ModuleType(str, Enum):
    """Module classification by file extension"""
    PLUGIN = "plugin"
    MASTER = "master"
    LIGHT = "light"


EXTENSION_TYPES = {
    ".esp": ModuleType.PLUGIN,
    ".esm": ModuleType.MASTER,
    ".esl": ModuleType.LIGHT,
}


@dataclass(frozen=True)
class ModuleHeader:
    """Fixed fields of the TES4 record header."""
    data_size: int
    flags: int
    form_id: int
    timestamp: int
    version: int
    unknown: int


@dataclass(frozen=True)
class ModuleSummary:
    """Information extracted from a module file."""
    file_path: Path
    file_size: int
    created_time: datetime
    modified_time: datetime
    module_type: ModuleType
    flags: int
    form_id: int
    timestamp: int
    version: int
    header_version: Optional[float] = None
    record_count: Optional[int] = None
    next_object_id: Optional[int] = None
    author: Optional[str] = None
    description: Optional[str] = None
    masters: tuple[str, ...] = ()
    crc32: int = 0

    @property
    def file_name(self) -> str:
        return self.file_path.name

    @property
    def light_by_extension(self) -> bool:
        return self.module_type == ModuleType.LIGHT

    @property
    def light_by_flag(self) -> bool:
        return bool(self.flags & FLAG_LIGHT)

    @property
    def master_by_extension(self) -> bool:
        return self.module_type == ModuleType.MASTER

    @property
    def master_by_flag(self) -> bool:
        return bool(self.flags & FLAG_MASTER)

    @property
    def is_light(self) -> bool:
        """Light if either the extension or the header flag says so."""
        return self.light_by_extension or self.light_by_flag

    @property
    def is_master(self) -> bool:
        """Master if either the extension or the header flag says so."""
        return self.master_by_extension or self.master_by_flag


def _decode_string(body: bytes) -> str:
    return body.decode("utf-8", errors="replace").rstrip("\0")


def _read_hedr(body: bytes, fields: dict) -> None:
    if len(body) < _HEDR.size:
        logger.debug("HEDR subrecord too short (%d bytes), ignored", len(body))
        return
    header_version, record_count, next_object_id = _HEDR.unpack_from(body)
    fields["header_version"] = header_version
    fields["record_count"] = record_count
    fields["next_object_id"] = next_object_id


def _read_cnam(body: bytes, fields: dict) -> None:
    fields["author"] = _decode_string(body)


def _read_snam(body: bytes, fields: dict) -> None:
    fields["description"] = _decode_string(body)


def _read_mast(body: bytes, fields: dict) -> None:
    fields["masters"].append(_decode_string(body))


class ModuleDecoder:
    """Decoder for module files.

    Subrecords are dispatched through ``SUBRECORD_HANDLERS``; a tag without
    a handler is skipped by its declared length.
    """

    SUBRECORD_HANDLERS: dict[bytes, Callable[[bytes, dict], None]] = {
        b"HEDR": _read_hedr,
        b"CNAM": _read_cnam,
        b"SNAM": _read_snam,
        b"MAST": _read_mast,
    }

    def read_header(self, stream: BinaryIO) -> ModuleHeader:
        """Read and validate the TES4 record header.

        Reads exactly 4 bytes before rejecting a stream with the wrong magic.

        Args:
            stream: Binary stream positioned at the start of the file

        Returns:
            The decoded ModuleHeader

        Raises:
            InvalidFormatError: If the magic is not TES4
            TruncatedRecordError: If the header is incomplete
        """
        magic = stream.read(len(MODULE_MAGIC))
        if magic != MODULE_MAGIC:
            raise InvalidFormatError(f"Invalid module magic: {magic!r}")

        raw = stream.read(_RECORD_HEADER.size)
        if len(raw) < _RECORD_HEADER.size:
            raise TruncatedRecordError(
                f"Module header is {len(raw)} bytes, expected {_RECORD_HEADER.size}"
            )
        return ModuleHeader(*_RECORD_HEADER.unpack(raw))

    def read_subrecords(self, payload: bytes) -> dict:
        """Walk the subrecord stream of the header record.

        Args:
            payload: The header record's subrecord bytes

        Returns:
            Dictionary of decoded fields (header_version, record_count,
            next_object_id, author, description, masters)

        Raises:
            TruncatedRecordError: If a subrecord crosses the payload boundary
        """
        fields: dict = {"masters": []}
        end = len(payload)
        cursor = 0

        while cursor < end:
            if cursor + _SUBRECORD_HEADER.size > end:
                raise TruncatedRecordError(
                    f"Subrecord header at offset {cursor} crosses record boundary ({end})"
                )
            tag, length = _SUBRECORD_HEADER.unpack_from(payload, cursor)
            cursor += _SUBRECORD_HEADER.size

            if cursor + length > end:
                raise TruncatedRecordError(
                    f"Subrecord {tag!r} of {length} bytes at offset {cursor} crosses record boundary ({end})"
                )

            handler = self.SUBRECORD_HANDLERS.get(tag)
            if handler is not None:
                handler(payload[cursor:cursor + length], fields)
            cursor += length

        return fields

    def decode(self, file_path: Path) -> ModuleSummary:
        """Decode a module file into a ModuleSummary.

        Args:
            file_path: Path to the .esp/.esm/.esl file

        Returns:
            ModuleSummary with header data and checksum

        Raises:
            InvalidFormatError: Unrecognized extension or wrong magic
            NotFoundError: If the file does not exist
            TruncatedRecordError: If the header record is malformed
            ToolkitIOError: If the file cannot be read
        """
        file_path = Path(file_path)
        module_type = EXTENSION_TYPES.get(file_path.suffix.lower())
        if module_type is None:
            raise InvalidFormatError(f"Invalid module file extension: {file_path.suffix}", path=file_path)

        if not file_path.is_file():
            raise NotFoundError("Module file not found", path=file_path)

        try:
            stat = file_path.stat()
            with open(file_path, "rb") as f:
                header = self.read_header(f)
                # A file shorter than its declared payload ends the walk early
                payload = f.read(header.data_size)
        except (InvalidFormatError, TruncatedRecordError) as e:
            e.path = file_path
            raise
        except OSError as e:
            raise ToolkitIOError(f"Cannot read module: {e}", path=file_path) from e

        try:
            fields = self.read_subrecords(payload)
        except TruncatedRecordError as e:
            e.path = file_path
            raise

        summary = ModuleSummary(
            file_path=file_path,
            file_size=stat.st_size,
            created_time=datetime.fromtimestamp(getattr(stat, "st_birthtime", stat.st_ctime)),
            modified_time=datetime.fromtimestamp(stat.st_mtime),
            module_type=module_type,
            flags=header.flags,
            form_id=header.form_id,
            timestamp=header.timestamp,
            version=header.version,
            header_version=fields.get("header_version"),
            record_count=fields.get("record_count"),
            next_object_id=fields.get("next_object_id"),
            author=fields.get("author"),
            description=fields.get("description"),
            masters=tuple(fields["masters"]),
            crc32=checksum_file(file_path),
        )

        logger.debug(
            "Decoded module %s - version %s, records %s, masters %d",
            summary.file_name, summary.header_version, summary.record_count, len(summary.masters),
        )
        return summary


def decode_module(file_path: Path) -> ModuleSummary:
    """Quick helper to decode a single module file.

    Args:
        file_path: Path to a module file

    Returns:
        ModuleSummary for the file
    """
    return ModuleDecoder().decode(file_path)
