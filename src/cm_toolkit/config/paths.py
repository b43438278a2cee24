"""Default paths and file names for the game installation and the toolkit"""

import os
from pathlib import Path


def _user_config_root() -> Path:
    """Resolve the per-user configuration root (%APPDATA% or XDG)."""
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata)
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


class GamePaths:
    """Default paths for game installations, INI files and toolkit files.

    All paths use environment variable expansion for portability.
    """

    # Installation layout
    EXECUTABLE = "Fallout4.exe"
    DATA_DIR = "Data"
    AUXILIARY_FILES = ("Fallout4Launcher.exe", "steam_api64.dll")

    # Module and archive extensions, lower case
    MODULE_EXTENSIONS = (".esp", ".esm", ".esl")
    ARCHIVE_EXTENSIONS = (".ba2", ".bsa")

    # Backup folder created next to the installation root
    BACKUP_FOLDER_NAME = "CMT_Backup"

    # Steam default install locations
    STEAM_GAME_DEFAULTS = (
        Path(r"C:\Program Files (x86)\Steam\steamapps\common\Fallout 4"),
        Path(r"C:\Program Files\Steam\steamapps\common\Fallout 4"),
        Path.home() / ".steam" / "steam" / "steamapps" / "common" / "Fallout 4",
    )

    # Registry key holding the installed path (Windows only)
    REGISTRY_KEY = r"SOFTWARE\WOW6432Node\Bethesda Softworks\Fallout4"
    REGISTRY_VALUE = "Installed Path"

    # Game INI files, loaded in order (later file wins)
    INI_DIRECTORY_DEFAULT = Path.home() / "Documents" / "My Games" / "Fallout4"
    INI_FILES = ("Fallout4.ini", "Fallout4Prefs.ini")

    # Configuration file location
    CONFIG_DIR = _user_config_root() / "CMToolkit"
    CONFIG_FILE = CONFIG_DIR / "configuration.xml"

    @classmethod
    def expand_path(cls, path_str: str) -> Path:
        """Expand environment variables and ``~`` in a path string.

        Args:
            path_str: Path string potentially containing environment variables

        Returns:
            Path object with expanded variables
        """
        return Path(os.path.expanduser(os.path.expandvars(path_str)))

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure the configuration directory exists.

        Returns:
            Path to the configuration directory
        """
        cls.CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        return cls.CONFIG_DIR

    @classmethod
    def executable_path(cls, game_root: Path) -> Path:
        return game_root / cls.EXECUTABLE

    @classmethod
    def data_path(cls, game_root: Path) -> Path:
        return game_root / cls.DATA_DIR

    @classmethod
    def backup_path(cls, game_root: Path) -> Path:
        """Backup directory for an installation (a sibling of the root).

        Args:
            game_root: The installation root directory

        Returns:
            Path to the backup directory
        """
        return game_root.parent / cls.BACKUP_FOLDER_NAME
