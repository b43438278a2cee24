"""Problem detection against the engine's fixed limits.

The rules are a pure function of an AnalysisResult: module and archive
counts, master dependencies, archive format labels and INI settings.
Problems come back sorted by ProblemType declaration order; problems of
the same type keep the order in which they were found.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .archive_decoder import ArchiveFormat, ArchiveSummary
from .module_decoder import ModuleSummary
from ..logging_config import get_logger

logger = get_logger("problems")

# Engine limits
MODULE_LIMIT = 255
MODULE_WARNING_THRESHOLD = 240
LIGHT_MODULE_LIMIT = 4096
LIGHT_MODULE_WARNING_THRESHOLD = 3800
ARCHIVE_LIMIT = 255

INVALIDATION_SETTING = "Archive.bInvalidateOlderFiles"
INVALIDATION_EXPECTED = "1"


class ProblemType(str, Enum):
    """Problem categories. Declaration order is presentation order."""
    MODULE_COUNT_LIMIT = "module-count-limit"
    LIGHT_MODULE_COUNT_LIMIT = "light-module-count-limit"
    MISSING_MASTER = "missing-master"
    UNKNOWN_ARCHIVE_VERSION = "unknown-archive-version"
    ARCHIVE_COUNT_LIMIT = "archive-count-limit"
    CONFIGURATION_FLAG = "configuration-flag"
    GAME_VERSION = "game-version"
    UNREADABLE_FILE = "unreadable-file"
    INSTALLATION = "installation"
    PATCH_FAILURE = "patch-failure"
    DOWNGRADE_FAILURE = "downgrade-failure"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_TYPE_ORDER = {problem_type: index for index, problem_type in enumerate(ProblemType)}


@dataclass(frozen=True)
class Problem:
    """A detected problem with optional remediation text."""
    type: ProblemType
    severity: Severity
    description: str
    file_path: Optional[Path] = None
    solution: Optional[str] = None


@dataclass(frozen=True)
class AnalysisResult:
    """Everything one analysis run found. Replaced wholesale by the next run."""
    timestamp: datetime
    root: Path
    modules: tuple[ModuleSummary, ...] = ()
    archives: tuple[ArchiveSummary, ...] = ()
    problems: tuple[Problem, ...] = ()
    configuration: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Snapshot the settings so the caller's dict can change freely
        object.__setattr__(self, "configuration", MappingProxyType(dict(self.configuration)))

    @property
    def has_errors(self) -> bool:
        return any(p.severity == Severity.ERROR for p in self.problems)


def sort_problems(problems: Iterable[Problem]) -> tuple[Problem, ...]:
    """Stable sort by problem type declaration order."""
    return tuple(sorted(problems, key=lambda p: _TYPE_ORDER[p.type]))


def check_module_counts(modules: Iterable[ModuleSummary]) -> list[Problem]:
    """Check full and light module counts against the plugin slot limits.

    Args:
        modules: Decoded modules

    Returns:
        List of count problems (at most one per category)
    """
    problems = []
    modules = list(modules)
    light_count = sum(1 for m in modules if m.is_light)
    full_count = len(modules) - light_count

    if full_count >= MODULE_LIMIT:
        problems.append(Problem(
            type=ProblemType.MODULE_COUNT_LIMIT,
            severity=Severity.ERROR,
            description=f"Too many full modules: {full_count}/{MODULE_LIMIT}",
            solution="Convert some plugins to light modules or remove unnecessary plugins",
        ))
    elif full_count >= MODULE_WARNING_THRESHOLD:
        problems.append(Problem(
            type=ProblemType.MODULE_COUNT_LIMIT,
            severity=Severity.WARNING,
            description=f"Approaching the full module limit: {full_count}/{MODULE_LIMIT}",
            solution="Consider converting plugins to light modules",
        ))

    if light_count >= LIGHT_MODULE_LIMIT:
        problems.append(Problem(
            type=ProblemType.LIGHT_MODULE_COUNT_LIMIT,
            severity=Severity.ERROR,
            description=f"Too many light modules: {light_count}/{LIGHT_MODULE_LIMIT}",
            solution="Remove unnecessary light modules",
        ))
    elif light_count >= LIGHT_MODULE_WARNING_THRESHOLD:
        problems.append(Problem(
            type=ProblemType.LIGHT_MODULE_COUNT_LIMIT,
            severity=Severity.WARNING,
            description=f"Approaching the light module limit: {light_count}/{LIGHT_MODULE_LIMIT}",
            solution="Consider merging or removing light modules",
        ))

    return problems


def check_missing_masters(modules: Iterable[ModuleSummary]) -> list[Problem]:
    """Report every master dependency that is not among the scanned modules.

    Names are compared case-insensitively.
    """
    modules = list(modules)
    available = {m.file_name.lower() for m in modules}
    problems = []

    for module in modules:
        for master in module.masters:
            if master.lower() not in available:
                problems.append(Problem(
                    type=ProblemType.MISSING_MASTER,
                    severity=Severity.ERROR,
                    description=f"Missing master file '{master}' required by '{module.file_name}'",
                    file_path=module.file_path,
                    solution="Install the missing master file or remove the dependent plugin",
                ))

    return problems


def check_archives(archives: Iterable[ArchiveSummary]) -> list[Problem]:
    """Check archive format labels and the per-format archive limits.

    Args:
        archives: Decoded archives

    Returns:
        Unknown-format warnings followed by count errors
    """
    problems = []
    counts = {ArchiveFormat.GENERAL: 0, ArchiveFormat.TEXTURE: 0}

    for archive in archives:
        if archive.format == ArchiveFormat.UNKNOWN:
            problems.append(Problem(
                type=ProblemType.UNKNOWN_ARCHIVE_VERSION,
                severity=Severity.WARNING,
                description=f"Unknown archive version: {archive.file_name} ({archive.content_type})",
                file_path=archive.file_path,
                solution="Check if archive is corrupted or unsupported",
            ))
        elif archive.format in counts:
            counts[archive.format] += 1

    for archive_format, count in counts.items():
        if count >= ARCHIVE_LIMIT:
            problems.append(Problem(
                type=ProblemType.ARCHIVE_COUNT_LIMIT,
                severity=Severity.ERROR,
                description=f"Too many {archive_format.value} archives: {count}/{ARCHIVE_LIMIT}",
                solution="Merge or remove archives of this type",
            ))

    return problems


def check_configuration(configuration: Mapping[str, str]) -> list[Problem]:
    """Check INI settings the game needs for loose-file mods."""
    value = configuration.get(INVALIDATION_SETTING, "0")
    if value == INVALIDATION_EXPECTED:
        return []

    return [Problem(
        type=ProblemType.CONFIGURATION_FLAG,
        severity=Severity.WARNING,
        description=f"Archive invalidation is not enabled ({INVALIDATION_SETTING}={value})",
        solution=f"Set {INVALIDATION_SETTING}={INVALIDATION_EXPECTED} in Fallout4.ini",
    )]


def scan_problems(result: AnalysisResult) -> tuple[Problem, ...]:
    """Run every rule over an analysis result.

    Only the rule-derived problems are returned; problems recorded while
    scanning (unreadable files, installation errors) stay on the result.

    Args:
        result: The analysis to evaluate

    Returns:
        Problems sorted by type order
    """
    problems: list[Problem] = []
    problems.extend(check_module_counts(result.modules))
    problems.extend(check_missing_masters(result.modules))
    problems.extend(check_archives(result.archives))
    problems.extend(check_configuration(result.configuration))

    logger.info("Problem scan found %d problems", len(problems))
    return sort_problems(problems)
