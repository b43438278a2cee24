"""Configuration data models"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class Settings:
    """Toolkit settings persisted in configuration.xml"""
    game_path: Optional[Path] = None
    ini_directory: Optional[Path] = None
    download_timeout: float = 60.0
    scan_workers: int = 4
    create_backup: bool = True

    def has_game_path(self) -> bool:
        """Check if a game path is configured and exists.

        Returns:
            True if game_path exists on disk
        """
        return self.game_path is not None and self.game_path.exists()
