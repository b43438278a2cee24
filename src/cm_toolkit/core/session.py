"""Analysis of a whole installation: scan, decode, load INI, check rules."""

import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Optional

from .archive_decoder import ArchiveDecoder
from .catalog import VersionCatalog
from .integrity import checksum_file
from .module_decoder import ModuleDecoder
from .problems import AnalysisResult, Problem, ProblemType, Severity, scan_problems, sort_problems
from .scanner import DEFAULT_WORKERS, ScanFailure, scan_directory
from ..config.ini import load_game_configuration
from ..config.paths import GamePaths
from ..errors import AnalysisInProgressError, ToolkitError
from ..logging_config import get_logger

logger = get_logger("session")


def _unreadable_file_problem(failure: ScanFailure) -> Problem:
    return Problem(
        type=ProblemType.UNREADABLE_FILE,
        severity=Severity.WARNING,
        description=f"Could not read {failure.file_path.name}: {failure.error.message}",
        file_path=failure.file_path,
        solution="Check that the file is not corrupted or locked by another program",
    )


class AnalysisSession:
    """Runs installation analyses, one at a time.

    A second ``analyze`` call while one is running fails immediately
    instead of waiting.

    Args:
        ini_directory: Directory holding the game INI files (defaults to
            the game's documents folder)
        workers: Thread pool size for file decoding
        catalog: Known executable versions for the game version check
    """

    def __init__(
        self,
        ini_directory: Optional[Path] = None,
        workers: int = DEFAULT_WORKERS,
        catalog: Optional[VersionCatalog] = None,
    ):
        self.ini_directory = ini_directory
        self.workers = workers
        self.catalog = catalog or VersionCatalog()
        self.last_result: Optional[AnalysisResult] = None
        self._lock = threading.Lock()
        self._module_decoder = ModuleDecoder()
        self._archive_decoder = ArchiveDecoder()

    def analyze(self, game_root: Path) -> AnalysisResult:
        """Analyze an installation.

        Args:
            game_root: Installation root (contains the executable and Data)

        Returns:
            The new AnalysisResult, also stored as ``last_result``

        Raises:
            AnalysisInProgressError: If an analysis is already running
        """
        if not self._lock.acquire(blocking=False):
            raise AnalysisInProgressError("An analysis is already running")
        try:
            result = self._analyze(Path(game_root))
        finally:
            self._lock.release()

        self.last_result = result
        return result

    def _analyze(self, game_root: Path) -> AnalysisResult:
        logger.info("Analyzing installation at %s", game_root)
        timestamp = datetime.now()
        data_path = GamePaths.data_path(game_root)

        if not game_root.is_dir():
            return self._installation_failure(timestamp, game_root, Problem(
                type=ProblemType.INSTALLATION,
                severity=Severity.ERROR,
                description=f"Invalid game path: {game_root}",
                file_path=game_root,
                solution="Please select a valid Fallout 4 installation directory",
            ))
        if not data_path.is_dir():
            return self._installation_failure(timestamp, game_root, Problem(
                type=ProblemType.INSTALLATION,
                severity=Severity.ERROR,
                description="Data directory not found",
                file_path=data_path,
                solution="Verify game installation integrity",
            ))

        try:
            modules = scan_directory(data_path, GamePaths.MODULE_EXTENSIONS, self._module_decoder.decode, self.workers)
            archives = scan_directory(data_path, GamePaths.ARCHIVE_EXTENSIONS, self._archive_decoder.decode, self.workers)
        except OSError as e:
            return self._installation_failure(timestamp, game_root, Problem(
                type=ProblemType.INSTALLATION,
                severity=Severity.ERROR,
                description=f"Error analyzing data directory: {e}",
                file_path=data_path,
                solution="Check file permissions and disk space",
            ))

        problems = [_unreadable_file_problem(f) for f in modules.failures + archives.failures]
        problems.extend(self.check_game_version(game_root))

        try:
            configuration = load_game_configuration(self.ini_directory)
        except ToolkitError as e:
            logger.warning("Could not load game configuration: %s", e)
            configuration = {}
            problems.append(Problem(
                type=ProblemType.UNREADABLE_FILE,
                severity=Severity.WARNING,
                description=f"Could not load game configuration: {e.message}",
                file_path=e.path,
                solution="Check if configuration files exist and are readable",
            ))

        result = AnalysisResult(
            timestamp=timestamp,
            root=game_root,
            modules=modules.items,
            archives=archives.items,
            configuration=configuration,
        )
        problems.extend(scan_problems(result))

        result = replace(result, problems=sort_problems(problems))
        logger.info(
            "Analysis completed: %d modules, %d archives, %d problems",
            len(result.modules), len(result.archives), len(result.problems),
        )
        return result

    def check_game_version(self, game_root: Path) -> list[Problem]:
        """Warn unless the executable is a known original version.

        Args:
            game_root: Installation root

        Returns:
            At most one GAME_VERSION warning
        """
        exe = GamePaths.executable_path(game_root)
        try:
            descriptor = self.catalog.find_by_checksum(checksum_file(exe))
        except ToolkitError as e:
            logger.warning("Could not checksum %s: %s", exe, e)
            return [Problem(
                type=ProblemType.GAME_VERSION,
                severity=Severity.WARNING,
                description=f"Could not determine game version: {e.message}",
                file_path=exe,
                solution="Verify game installation integrity",
            )]

        if descriptor is None:
            return [Problem(
                type=ProblemType.GAME_VERSION,
                severity=Severity.WARNING,
                description="Could not determine game version",
                file_path=exe,
                solution="The executable does not match any known version",
            )]
        if not descriptor.is_original:
            return [Problem(
                type=ProblemType.GAME_VERSION,
                severity=Severity.WARNING,
                description=f"Unsupported game version: {descriptor.version}",
                file_path=exe,
                solution="Consider downgrading to a supported version",
            )]

        logger.debug("Game version %s", descriptor.version)
        return []

    @staticmethod
    def _installation_failure(timestamp: datetime, game_root: Path, problem: Problem) -> AnalysisResult:
        logger.error("%s (%s)", problem.description, problem.file_path)
        return AnalysisResult(timestamp=timestamp, root=game_root, problems=(problem,))

    def scan_problems(self) -> tuple[Problem, ...]:
        """Re-run the rules over the last result (empty if none yet)."""
        if self.last_result is None:
            return ()
        return scan_problems(self.last_result)


def analyze(game_root: Path, ini_directory: Optional[Path] = None) -> AnalysisResult:
    """Analyze an installation with a one-off session."""
    return AnalysisSession(ini_directory=ini_directory).analyze(game_root)
