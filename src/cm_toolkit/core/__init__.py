"""Core module.

This module contains the binary decoders, the problem rules and the patch
pipeline.

Submodules:
    integrity: Streaming CRC-32 checksums
    module_decoder: ModuleDecoder for TES4 plugin/master headers (.esp/.esm/.esl)
    archive_decoder: ArchiveDecoder for BA2 and BSA archive headers
    scanner: Parallel directory scans with per-file failure collection
    problems: Problem rules against the engine's plugin and archive limits
    session: AnalysisSession orchestrating a full installation analysis
    catalog: VersionCatalog of known executable versions
    delta: bsdiff4 delta patch application
    patch_source: Patch retrieval over HTTP (httpx) or from local files
    downgrader: Backup, patch, verify, commit and rollback of the executable
    archive_patcher: BA2 content type conversion
    game_detector: GameDetector for locating and classifying installations
"""

from .archive_decoder import ArchiveFormat, ArchiveSummary, decode_archive
from .archive_patcher import ArchivePatcher, patch_archive
from .catalog import GameVersionDescriptor, VersionCatalog
from .downgrader import Downgrader, PatchProgress, PipelineState, downgrade, restore_backup
from .game_detector import GameDetector, InstallType
from .integrity import checksum_file
from .module_decoder import ModuleSummary, ModuleType, decode_module
from .problems import AnalysisResult, Problem, ProblemType, Severity, scan_problems
from .session import AnalysisSession, analyze

__all__ = [
    "ArchiveFormat",
    "ArchiveSummary",
    "decode_archive",
    "ArchivePatcher",
    "patch_archive",
    "GameVersionDescriptor",
    "VersionCatalog",
    "Downgrader",
    "PatchProgress",
    "PipelineState",
    "downgrade",
    "restore_backup",
    "GameDetector",
    "InstallType",
    "checksum_file",
    "ModuleSummary",
    "ModuleType",
    "decode_module",
    "AnalysisResult",
    "Problem",
    "ProblemType",
    "Severity",
    "scan_problems",
    "AnalysisSession",
    "analyze",
]
