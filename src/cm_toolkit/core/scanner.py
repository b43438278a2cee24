"""Parallel directory scanning for module and archive files."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, TypeVar

from ..errors import ToolkitError
from ..logging_config import get_logger

logger = get_logger("scanner")

T = TypeVar("T")

DEFAULT_WORKERS = 4


@dataclass(frozen=True)
class ScanFailure:
    """A file that could not be decoded during a scan."""
    file_path: Path
    error: ToolkitError


@dataclass(frozen=True)
class ScanReport:
    """Decoded items plus the files that were skipped."""
    items: tuple
    failures: tuple[ScanFailure, ...]


def list_files(directory: Path, extensions: Iterable[str]) -> list[Path]:
    """List files directly in a directory whose extension matches.

    Args:
        directory: Directory to list (not recursed)
        extensions: Lower-case extensions including the dot

    Returns:
        Matching files sorted by lower-cased name
    """
    extensions = tuple(extensions)
    files = [
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in extensions
    ]
    return sorted(files, key=lambda p: p.name.lower())


def scan_files(
    files: Iterable[Path],
    decode: Callable[[Path], T],
    workers: int = DEFAULT_WORKERS,
) -> ScanReport:
    """Decode files in parallel, collecting per-file failures.

    Recoverable toolkit errors skip the file and are reported in
    ``failures``; anything else propagates.

    Args:
        files: Files to decode
        decode: Decoder callable for a single file
        workers: Thread pool size

    Returns:
        ScanReport with items and failures sorted by lower-cased file name
    """
    def _decode_one(file_path: Path):
        try:
            return decode(file_path), None
        except ToolkitError as e:
            if not e.recoverable:
                raise
            logger.warning("Skipping %s: %s", file_path.name, e)
            return None, ScanFailure(file_path=file_path, error=e)

    files = list(files)
    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        results = list(executor.map(_decode_one, files))

    items = [item for item, _ in results if item is not None]
    failures = [failure for _, failure in results if failure is not None]

    items.sort(key=lambda item: item.file_path.name.lower())
    failures.sort(key=lambda failure: failure.file_path.name.lower())

    logger.debug("Scanned %d files: %d decoded, %d skipped", len(files), len(items), len(failures))
    return ScanReport(items=tuple(items), failures=tuple(failures))


def scan_directory(
    directory: Path,
    extensions: Iterable[str],
    decode: Callable[[Path], T],
    workers: int = DEFAULT_WORKERS,
) -> ScanReport:
    """List matching files in a directory and decode them in parallel.

    Args:
        directory: Directory to scan
        extensions: Lower-case extensions including the dot
        decode: Decoder callable for a single file
        workers: Thread pool size

    Returns:
        ScanReport for the directory
    """
    return scan_files(list_files(directory, extensions), decode, workers)
