"""Configuration module.

This module provides settings storage, default paths and the game INI loader.

Submodules:
    manager: ConfigurationManager for loading/saving the XML settings file
    schema: Settings data class
    paths: GamePaths with installation layout, INI and config file locations
    ini: Reader/writer for the game's INI files and the two-file merge
    path_validator: Path checks used before copying files into an installation

The settings are stored as XML in %APPDATA%/CMToolkit/configuration.xml
(or the XDG config directory on other platforms).
"""

from .manager import ConfigurationManager
from .schema import Settings
from .paths import GamePaths
from .ini import IniFile, load_game_configuration, read_ini, write_ini

__all__ = [
    "ConfigurationManager",
    "Settings",
    "GamePaths",
    "IniFile",
    "load_game_configuration",
    "read_ini",
    "write_ini",
]
