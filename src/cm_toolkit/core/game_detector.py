"""Auto-detect the game installation and its executable version"""

import sys
from enum import Enum
from pathlib import Path
from typing import Optional

from .catalog import VersionCatalog
from .integrity import checksum_file
from ..config.path_validator import validate_game_path
from ..config.paths import GamePaths
from ..errors import ToolkitError
from ..logging_config import get_logger

logger = get_logger("game_detector")


class InstallType(str, Enum):
    ORIGINAL = "original"
    NEXT_GEN = "next-gen"
    UNKNOWN = "unknown"
    NOT_FOUND = "not-found"


class GameDetector:
    """Find and validate game installations.

    Candidates are tried in order: the configured path, the Windows
    registry, the current directory and the default Steam locations.
    """

    def __init__(self, catalog: Optional[VersionCatalog] = None):
        self.catalog = catalog or VersionCatalog()

    @staticmethod
    def is_valid_installation(game_root: Path) -> bool:
        """Check that a directory holds the executable and a Data directory.

        Args:
            game_root: Candidate installation root

        Returns:
            True if both are present
        """
        valid, error = validate_game_path(game_root)
        if not valid:
            logger.debug("Rejected %s: %s", game_root, error)
        return valid

    @staticmethod
    def registry_path() -> Optional[Path]:
        """Read the installed path from the Windows registry.

        Returns:
            Path from the registry, or None off Windows or if absent
        """
        if sys.platform != "win32":
            return None

        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, GamePaths.REGISTRY_KEY) as key:
                value, _ = winreg.QueryValueEx(key, GamePaths.REGISTRY_VALUE)
        except OSError:
            return None
        return Path(value) if value else None

    def candidates(self, preferred: Optional[Path] = None) -> list[Path]:
        """List candidate roots in detection order."""
        paths = []
        if preferred:
            paths.append(Path(preferred))
        registry = self.registry_path()
        if registry:
            paths.append(registry)
        paths.append(Path.cwd())
        paths.extend(GamePaths.STEAM_GAME_DEFAULTS)
        return paths

    def detect(self, preferred: Optional[Path] = None) -> Optional[Path]:
        """Find the first valid installation.

        Args:
            preferred: Configured game path, tried first

        Returns:
            Installation root, or None if nothing was found
        """
        for candidate in self.candidates(preferred):
            if self.is_valid_installation(candidate):
                logger.info("Detected installation at %s", candidate)
                return candidate

        logger.warning("Could not detect a game installation")
        return None

    def detect_install_type(self, game_root: Path) -> InstallType:
        """Classify the installed executable by checksum.

        Args:
            game_root: Installation root

        Returns:
            InstallType for the executable
        """
        exe = GamePaths.executable_path(Path(game_root))
        if not exe.is_file():
            return InstallType.NOT_FOUND

        try:
            descriptor = self.catalog.find_by_checksum(checksum_file(exe))
        except ToolkitError as e:
            logger.warning("Could not checksum %s: %s", exe, e)
            return InstallType.UNKNOWN

        if descriptor is None:
            return InstallType.UNKNOWN
        if descriptor.is_next_gen:
            return InstallType.NEXT_GEN
        if descriptor.is_original:
            return InstallType.ORIGINAL
        return InstallType.UNKNOWN
