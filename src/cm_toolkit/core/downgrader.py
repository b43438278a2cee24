"""Executable downgrade pipeline with backup and rollback.

The pipeline moves through these states, strictly in order:

    idle -> validating-source -> backing-up (optional) -> downloading
         -> applying -> verifying -> committing -> done

Any failure moves it to ``aborted``. Patched bytes are only ever written to
a temporary file beside the executable; the live executable is replaced by
a single ``os.replace`` after the temporary file's checksum matches the
catalog. If a step fails after the backup stage and the live executable no
longer matches the validated source, it is restored from the backup before
the error propagates.
"""

import os
import shutil
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional

from .catalog import GameVersionDescriptor, VersionCatalog
from .delta import apply_patch
from .integrity import checksum_file
from .patch_source import PatchSource
from ..config.path_validator import is_path_under_root
from ..config.paths import GamePaths
from ..errors import (
    BackupError,
    CommitError,
    NotFoundError,
    OperationCancelledError,
    PatchApplyError,
    PatchInProgressError,
    PipelineError,
    ToolkitError,
    ToolkitIOError,
    UnknownSourceVersionError,
    VerificationFailedError,
)
from ..logging_config import get_logger

logger = get_logger("downgrader")

TEMP_SUFFIX = ".tmp"


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING_SOURCE = "validating-source"
    BACKING_UP = "backing-up"
    DOWNLOADING = "downloading"
    APPLYING = "applying"
    VERIFYING = "verifying"
    COMMITTING = "committing"
    DONE = "done"
    ABORTED = "aborted"


# States after which the live executable may need restoring
_ROLLBACK_STATES = (
    PipelineState.BACKING_UP,
    PipelineState.DOWNLOADING,
    PipelineState.APPLYING,
    PipelineState.VERIFYING,
    PipelineState.COMMITTING,
)


@dataclass(frozen=True)
class PatchProgress:
    """A progress notification: percentage (0-100) and a message."""
    percentage: int
    message: str


ProgressCallback = Callable[[PatchProgress], None]


class ProgressReporter:
    """Forwards progress to a subscriber, never letting the percentage drop.

    Args:
        callback: Optional subscriber; progress is only logged without one
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self.percentage = 0

    def report(self, percentage: int, message: str) -> None:
        self.percentage = max(self.percentage, min(100, int(percentage)))
        logger.debug("Progress %d%%: %s", self.percentage, message)
        if self._callback is not None:
            self._callback(PatchProgress(self.percentage, message))


_installation_locks: dict[str, threading.Lock] = {}
_registry_lock = threading.Lock()


@contextmanager
def installation_lock(game_root: Path) -> Iterator[None]:
    """Hold the exclusive patch/restore lock for one installation.

    Raises:
        PatchInProgressError: If another operation holds the lock
    """
    key = os.path.normcase(str(Path(game_root).resolve()))
    with _registry_lock:
        lock = _installation_locks.setdefault(key, threading.Lock())

    if not lock.acquire(blocking=False):
        raise PatchInProgressError("A patch or restore operation is already running", path=game_root)
    try:
        yield
    finally:
        lock.release()


class Downgrader:
    """Downgrade or restore the game executable of one installation.

    Args:
        game_root: Installation root containing the executable
        catalog: Version catalog (defaults to the built-in one)
        patch_source: Source for patch payloads (defaults to a new PatchSource)
        create_backup: Whether to run the backing-up stage
        cancel_event: Optional event checked at every state boundary
    """

    def __init__(
        self,
        game_root: Path,
        catalog: Optional[VersionCatalog] = None,
        patch_source: Optional[PatchSource] = None,
        create_backup: bool = True,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.game_root = Path(game_root)
        self.catalog = catalog or VersionCatalog()
        self.patch_source = patch_source
        self.create_backup = create_backup
        self.cancel_event = cancel_event
        self.state = PipelineState.IDLE

    @property
    def executable_path(self) -> Path:
        return GamePaths.executable_path(self.game_root)

    @property
    def backup_path(self) -> Path:
        return GamePaths.backup_path(self.game_root)

    @property
    def temp_path(self) -> Path:
        exe = self.executable_path
        return exe.with_name(exe.name + TEMP_SUFFIX)

    def has_backup(self) -> bool:
        return (self.backup_path / GamePaths.EXECUTABLE).is_file()

    def _enter(self, state: PipelineState) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelledError("Operation cancelled", state=self.state.value)
        self.state = state
        logger.info("Pipeline state: %s", state.value)

    def validate_source(self) -> GameVersionDescriptor:
        """Identify the live executable by checksum.

        Returns:
            Catalog descriptor of the installed version

        Raises:
            UnknownSourceVersionError: Executable missing, unreadable, or
                matching no catalog entry
        """
        try:
            crc = checksum_file(self.executable_path)
        except ToolkitError as e:
            raise UnknownSourceVersionError(f"Cannot read game executable: {e.message}",
                                            path=self.executable_path) from e

        descriptor = self.catalog.find_by_checksum(crc)
        if descriptor is None:
            raise UnknownSourceVersionError(
                f"Current game file is an unknown version (CRC32 {crc:08X})", path=self.executable_path
            )

        logger.info("Installed version: %s", descriptor.version)
        return descriptor

    def backup_files(self, reporter: ProgressReporter, start: int = 0, end: int = 100) -> Path:
        """Copy the executable and auxiliary files to the backup directory.

        An existing backup of the executable is reported and left untouched.

        Args:
            reporter: Progress reporter
            start: Percentage at the start of the stage
            end: Percentage at the end of the stage

        Returns:
            Path to the backup directory

        Raises:
            BackupError: Not enough free space, or a copy failed
        """
        backup_dir = self.backup_path
        if self.has_backup():
            logger.info("Backup already present at %s", backup_dir)
            reporter.report(end, f"Backup already present at {backup_dir}")
            return backup_dir

        files = [self.executable_path]
        files.extend(
            self.game_root / name for name in GamePaths.AUXILIARY_FILES
            if (self.game_root / name).is_file()
        )

        try:
            backup_dir.mkdir(parents=True, exist_ok=True)
            required = sum(f.stat().st_size for f in files)
            free = shutil.disk_usage(backup_dir).free
        except OSError as e:
            raise BackupError(f"Cannot prepare backup directory: {e}", path=backup_dir) from e

        if free < required:
            raise BackupError(
                f"Not enough free space for backup: {required} bytes needed, {free} available",
                path=backup_dir,
            )

        copied: list[Path] = []
        for index, source in enumerate(files, start=1):
            destination = backup_dir / source.name
            try:
                shutil.copy2(source, destination)
            except OSError as e:
                # A partial backup must not be mistaken for a complete one later
                for path in copied + [destination]:
                    path.unlink(missing_ok=True)
                raise BackupError(f"Cannot back up {source.name}: {e}", path=source) from e
            copied.append(destination)
            reporter.report(start + (end - start) * index // len(files), f"Backed up {source.name}...")

        logger.info("Backup created at: %s", backup_dir)
        return backup_dir

    def _read_executable(self) -> bytes:
        try:
            return self.executable_path.read_bytes()
        except OSError as e:
            raise PatchApplyError(f"Cannot read game executable: {e}", path=self.executable_path) from e

    def _write_verified(self, data: bytes, target: GameVersionDescriptor) -> Path:
        temp_path = self.temp_path
        try:
            temp_path.write_bytes(data)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise VerificationFailedError(f"Cannot write patched file: {e}", path=temp_path) from e

        try:
            crc = checksum_file(temp_path)
        except ToolkitError as e:
            temp_path.unlink(missing_ok=True)
            raise VerificationFailedError(f"Cannot verify patched file: {e.message}", path=temp_path) from e
        if crc != target.expected_crc32:
            temp_path.unlink(missing_ok=True)
            raise VerificationFailedError(
                f"Patched file validation failed: CRC32 {crc:08X}, expected {target.expected_crc32:08X}",
                path=temp_path,
            )
        return temp_path

    def _commit(self, temp_path: Path) -> None:
        try:
            os.replace(temp_path, self.executable_path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise CommitError(f"Cannot replace game executable: {e}", path=self.executable_path) from e

    def _rollback(self, source: Optional[GameVersionDescriptor], failed_state: PipelineState) -> None:
        self.temp_path.unlink(missing_ok=True)
        if source is None or failed_state not in _ROLLBACK_STATES or not self.has_backup():
            return

        exe = self.executable_path
        try:
            intact = exe.is_file() and checksum_file(exe) == source.expected_crc32
        except ToolkitError:
            intact = False
        if intact:
            return

        logger.warning("Restoring %s from backup after failed %s", exe.name, failed_state.value)
        try:
            shutil.copy2(self.backup_path / GamePaths.EXECUTABLE, exe)
        except OSError as e:
            logger.error("Rollback failed, restore the backup manually from %s: %s", self.backup_path, e)

    def downgrade(self, target_version: str, progress: Optional[ProgressCallback] = None) -> GameVersionDescriptor:
        """Patch the executable to a catalog version.

        Args:
            target_version: Version string from the catalog
            progress: Optional progress subscriber

        Returns:
            Descriptor of the version now installed

        Raises:
            ArgumentInvalidError: Unknown target version
            PatchInProgressError: Another operation holds the installation
            PipelineError: A stage failed (``state`` names it); the
                installation was rolled back first
        """
        target = self.catalog.get(target_version)
        with installation_lock(self.game_root):
            return self._run(target, ProgressReporter(progress))

    def _run(self, target: GameVersionDescriptor, reporter: ProgressReporter) -> GameVersionDescriptor:
        source: Optional[GameVersionDescriptor] = None
        self.state = PipelineState.IDLE
        try:
            self._enter(PipelineState.VALIDATING_SOURCE)
            reporter.report(0, "Validating current game file...")
            source = self.validate_source()

            if source.version == target.version:
                self.state = PipelineState.DONE
                reporter.report(100, f"Game is already version {target.version}")
                return target

            if self.create_backup:
                self._enter(PipelineState.BACKING_UP)
                reporter.report(5, "Creating backup...")
                self.backup_files(reporter, start=5, end=20)

            self._enter(PipelineState.DOWNLOADING)
            reporter.report(20, "Downloading patch file...")
            if self.patch_source is None:
                with PatchSource() as patch_source:
                    patch = patch_source.fetch(target.patch_url)
            else:
                patch = self.patch_source.fetch(target.patch_url)

            self._enter(PipelineState.APPLYING)
            reporter.report(50, "Applying patch...")
            patched = apply_patch(self._read_executable(), patch)

            self._enter(PipelineState.VERIFYING)
            reporter.report(80, "Verifying patched file...")
            temp_path = self._write_verified(patched, target)

            self._enter(PipelineState.COMMITTING)
            reporter.report(90, "Replacing game executable...")
            self._commit(temp_path)

            self.state = PipelineState.DONE
            reporter.report(100, f"Successfully downgraded to version {target.version}!")
            logger.info("Game downgraded to version: %s", target.version)
            return target
        except Exception as e:
            failed_state = self.state
            self.state = PipelineState.ABORTED
            if isinstance(e, PipelineError) and e.state is None:
                e.state = failed_state.value
            logger.error("Downgrade failed during %s: %s", failed_state.value, e)
            self._rollback(source, failed_state)
            raise

    def restore_backup(self, progress: Optional[ProgressCallback] = None) -> list[Path]:
        """Copy every backed-up file back into the installation.

        Args:
            progress: Optional progress subscriber, notified per file

        Returns:
            Paths of the restored files

        Raises:
            NotFoundError: If there is no backup directory
            PatchInProgressError: Another operation holds the installation
            ToolkitIOError: If a file cannot be copied
        """
        backup_dir = self.backup_path
        with installation_lock(self.game_root):
            if not backup_dir.is_dir():
                raise NotFoundError("Backup directory not found", path=backup_dir)

            reporter = ProgressReporter(progress)
            reporter.report(0, "Restoring from backup...")

            backup_files = sorted(p for p in backup_dir.iterdir() if p.is_file())
            restored = []
            for index, backup_file in enumerate(backup_files, start=1):
                destination = self.game_root / backup_file.name
                if not is_path_under_root(destination, self.game_root):
                    logger.warning("Refusing to restore %s outside %s", backup_file.name, self.game_root)
                    continue
                try:
                    shutil.copy2(backup_file, destination)
                except OSError as e:
                    raise ToolkitIOError(f"Cannot restore {backup_file.name}: {e}", path=destination) from e
                restored.append(destination)
                reporter.report(index * 100 // len(backup_files), f"Restored {backup_file.name}...")

            reporter.report(100, "Restore completed successfully!")
            logger.info("Files restored from backup: %s", backup_dir)
            return restored


def downgrade(
    game_root: Path,
    target_version: str,
    progress: Optional[ProgressCallback] = None,
    **options,
) -> GameVersionDescriptor:
    """Downgrade an installation's executable to ``target_version``.

    Keyword options are passed to :class:`Downgrader`.
    """
    return Downgrader(game_root, **options).downgrade(target_version, progress)


def restore_backup(game_root: Path, progress: Optional[ProgressCallback] = None) -> list[Path]:
    """Restore an installation from its backup directory."""
    return Downgrader(game_root).restore_backup(progress)
