"""Path validation used before files are written into an installation.

Restoring a backup copies files into the game directory; every destination
must stay inside that directory.
"""

from pathlib import Path

from .paths import GamePaths
from ..logging_config import get_logger

logger = get_logger("path_validator")


def is_path_under_root(path: Path, root: Path) -> bool:
    """Check if a path resolves to the root or somewhere below it.

    Symlinks are followed, so a link pointing out of the root is rejected.

    Args:
        path: The path to check
        root: The root directory

    Returns:
        True if path is inside root
    """
    try:
        resolved = path.resolve()
        root_resolved = root.resolve()
    except (OSError, ValueError) as e:
        logger.warning("Cannot resolve %s against %s: %s", path, root, e)
        return False
    return resolved == root_resolved or root_resolved in resolved.parents


def validate_game_path(game_path: Path) -> tuple[bool, str]:
    """Validate a game installation root.

    Args:
        game_path: Candidate installation root

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not game_path:
        return False, "Game path is empty"

    try:
        resolved = Path(game_path).resolve()
    except (OSError, ValueError) as e:
        return False, f"Invalid path: {e}"

    if not resolved.is_dir():
        return False, "Game path does not exist or is not a directory"
    if not GamePaths.executable_path(resolved).is_file():
        return False, f"{GamePaths.EXECUTABLE} not found"
    if not GamePaths.data_path(resolved).is_dir():
        return False, f"{GamePaths.DATA_DIR} directory not found"

    return True, ""
