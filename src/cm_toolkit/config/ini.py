"""Reader and writer for the game's INI files.

The game's INI dialect is simpler than what ``configparser`` accepts:
keys may appear before any section, duplicate keys silently overwrite in
file order, and lines without ``=`` are ignored rather than rejected.

Format:
    ; comment
    # comment
    [Section]
    key=value
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .paths import GamePaths
from ..errors import ToolkitIOError
from ..logging_config import get_logger

logger = get_logger("ini")


@dataclass
class IniFile:
    """Parsed INI file: section name -> {key: value}, in file order."""
    file_path: Path
    sections: dict[str, dict[str, str]] = field(default_factory=dict)

    def get(self, section: str, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.sections.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: str) -> None:
        self.sections.setdefault(section, {})[key] = value

    def flatten(self) -> dict[str, str]:
        """Flatten to ``Section.Key`` -> value.

        Returns:
            Dictionary keyed by "Section.Key"
        """
        flat = {}
        for section, values in self.sections.items():
            for key, value in values.items():
                flat[f"{section}.{key}"] = value
        return flat


def parse_ini_text(text: str, file_path: Path) -> IniFile:
    """Parse INI text into an IniFile.

    Args:
        text: Full file contents
        file_path: Path recorded on the result

    Returns:
        Parsed IniFile
    """
    ini = IniFile(file_path=file_path)
    current_section = ""

    for raw_line in text.splitlines():
        line = raw_line.strip()

        # Skip empty lines and comments
        if not line or line.startswith(";") or line.startswith("#"):
            continue

        if line.startswith("[") and line.endswith("]"):
            current_section = line[1:-1].strip()
            ini.sections.setdefault(current_section, {})
            continue

        equal_index = line.find("=")
        if equal_index > 0:
            key = line[:equal_index].strip()
            value = line[equal_index + 1:].strip()
            ini.set(current_section, key, value)

    return ini


def read_ini(file_path: Path) -> Optional[IniFile]:
    """Read and parse an INI file.

    Args:
        file_path: Path to the INI file

    Returns:
        IniFile, or None if the file does not exist

    Raises:
        ToolkitIOError: If the file exists but cannot be read
    """
    if not file_path.is_file():
        logger.warning("INI file not found: %s", file_path)
        return None

    try:
        text = file_path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as e:
        raise ToolkitIOError(f"Cannot read INI file: {e}", path=file_path) from e

    ini = parse_ini_text(text, file_path)
    logger.debug("Parsed INI file %s with %d sections", file_path, len(ini.sections))
    return ini


def write_ini(file_path: Path, ini: IniFile) -> None:
    """Write an IniFile, one blank line between sections.

    Args:
        file_path: Destination path
        ini: The INI data to write

    Raises:
        ToolkitIOError: If the file cannot be written
    """
    lines: list[str] = []
    for section, values in ini.sections.items():
        if lines:
            lines.append("")
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"{key}={value}")

    try:
        file_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        raise ToolkitIOError(f"Cannot write INI file: {e}", path=file_path) from e

    logger.info("Wrote INI file: %s", file_path)


def load_game_configuration(ini_directory: Optional[Path] = None) -> dict[str, str]:
    """Load and merge the game's INI files.

    Files are read in ``GamePaths.INI_FILES`` order; keys from a later file
    override earlier ones.

    Args:
        ini_directory: Directory holding the INI files (defaults to the
            game's documents folder)

    Returns:
        Dictionary keyed by "Section.Key"
    """
    ini_directory = ini_directory or GamePaths.INI_DIRECTORY_DEFAULT
    configuration: dict[str, str] = {}

    for name in GamePaths.INI_FILES:
        ini = read_ini(ini_directory / name)
        if ini is not None:
            configuration.update(ini.flatten())

    logger.info("Loaded %d game configuration settings", len(configuration))
    return configuration
