"""Rewrites the content type tag of BA2 archives.

Only the 4-byte tag in the header changes; packed entries are not
re-encoded. A ``<archive>.backup`` copy is made before the first write.
"""

import shutil
from pathlib import Path
from typing import Optional

from .archive_decoder import (
    BA2_CONTENT_TYPE_OFFSET,
    ArchiveDecoder,
    ArchiveFamily,
    ArchiveFormat,
)
from .downgrader import ProgressCallback, ProgressReporter
from ..errors import InvalidFormatError, ToolkitError, ToolkitIOError, UnsupportedConversionError
from ..logging_config import get_logger

logger = get_logger("archive_patcher")

BACKUP_SUFFIX = ".backup"

FORMAT_TAGS = {
    ArchiveFormat.GENERAL: b"GNRL",
    ArchiveFormat.TEXTURE: b"DX10",
    ArchiveFormat.PLATFORM: b"GNMF",
}

# Source format -> formats it may be converted to
SUPPORTED_CONVERSIONS = {
    ArchiveFormat.GENERAL: (ArchiveFormat.TEXTURE,),
    ArchiveFormat.TEXTURE: (ArchiveFormat.GENERAL,),
    ArchiveFormat.PLATFORM: (ArchiveFormat.GENERAL, ArchiveFormat.TEXTURE),
}


def is_conversion_supported(source: ArchiveFormat, target: ArchiveFormat) -> bool:
    return target in SUPPORTED_CONVERSIONS.get(source, ())


class ArchivePatcher:
    """Converts BA2 archives between content types."""

    def __init__(self, decoder: Optional[ArchiveDecoder] = None):
        self.decoder = decoder or ArchiveDecoder()

    @staticmethod
    def backup_path(archive_path: Path) -> Path:
        return archive_path.with_name(archive_path.name + BACKUP_SUFFIX)

    def can_patch(self, archive_path: Path, target_format: ArchiveFormat) -> bool:
        """Check whether an archive can be converted, without writing.

        Returns:
            True if the archive decodes and the conversion is supported
        """
        try:
            summary = self.decoder.decode(Path(archive_path))
        except ToolkitError as e:
            logger.warning("Cannot check archive %s: %s", archive_path, e)
            return False
        return summary.family == ArchiveFamily.BA2 and is_conversion_supported(
            summary.format, ArchiveFormat(target_format)
        )

    def patch(
        self,
        archive_path: Path,
        target_format: ArchiveFormat,
        progress: Optional[ProgressCallback] = None,
    ) -> bool:
        """Rewrite an archive's content type tag.

        Args:
            archive_path: Path to a .ba2 archive
            target_format: Format to convert to
            progress: Optional progress subscriber

        Returns:
            True if the archive was rewritten, False if it already had the
            target format

        Raises:
            InvalidFormatError: If the file is not a BA2 archive
            UnsupportedConversionError: If the conversion is not supported
            ToolkitIOError: If the backup or the rewrite fails (the archive
                is restored from the backup first)
        """
        archive_path = Path(archive_path)
        target_format = ArchiveFormat(target_format)
        reporter = ProgressReporter(progress)

        summary = self.decoder.decode(archive_path)
        if summary.family != ArchiveFamily.BA2:
            raise InvalidFormatError("Only BA2 archives can be patched", path=archive_path)

        if summary.format == target_format:
            reporter.report(100, "Archive is already the target version")
            return False

        if not is_conversion_supported(summary.format, target_format):
            raise UnsupportedConversionError(
                f"Cannot convert {summary.format.value} archive to {target_format.value}",
                path=archive_path,
            )

        reporter.report(0, "Starting archive patch...")
        backup_path = self.backup_path(archive_path)
        if not backup_path.exists():
            reporter.report(10, "Creating backup...")
            try:
                shutil.copy2(archive_path, backup_path)
            except OSError as e:
                raise ToolkitIOError(f"Cannot back up archive: {e}", path=archive_path) from e

        reporter.report(25, "Rewriting archive header...")
        try:
            with open(archive_path, "r+b") as f:
                f.seek(BA2_CONTENT_TYPE_OFFSET)
                f.write(FORMAT_TAGS[target_format])
        except OSError as e:
            logger.error("Failed to patch archive %s: %s", archive_path, e)
            self._restore(archive_path, backup_path)
            raise ToolkitIOError(f"Cannot rewrite archive header: {e}", path=archive_path) from e

        reporter.report(100, "Archive patched successfully!")
        logger.info(
            "Patched archive %s from %s to %s",
            archive_path.name, summary.format.value, target_format.value,
        )
        return True

    @staticmethod
    def _restore(archive_path: Path, backup_path: Path) -> None:
        if not backup_path.is_file():
            return
        try:
            shutil.copy2(backup_path, archive_path)
        except OSError as e:
            logger.error("Could not restore %s from %s: %s", archive_path, backup_path, e)


def patch_archive(
    archive_path: Path,
    target_format: ArchiveFormat,
    progress: Optional[ProgressCallback] = None,
) -> bool:
    """Convert one archive; see :meth:`ArchivePatcher.patch`."""
    return ArchivePatcher().patch(archive_path, target_format, progress)
