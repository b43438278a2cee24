"""Configuration management - load/save XML configuration"""

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional
from xml.dom import minidom

from .paths import GamePaths
from .schema import Settings
from ..logging_config import get_logger

logger = get_logger("config_manager")


class ConfigurationManager:
    """Manages toolkit settings persistence.

    Handles loading and saving settings to XML format. A missing file
    yields default settings; malformed values fall back to defaults.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or GamePaths.CONFIG_FILE
        self.settings: Optional[Settings] = None

    def load(self) -> Settings:
        """Load settings from the XML file.

        Returns:
            Settings object; defaults if the file does not exist

        Raises:
            ET.ParseError: If XML is malformed
        """
        if not self.config_path.exists():
            logger.debug("No configuration at %s, using defaults", self.config_path)
            self.settings = Settings()
            return self.settings

        logger.debug("Loading configuration from %s", self.config_path)
        tree = ET.parse(self.config_path)
        root = tree.getroot()

        defaults = Settings()
        settings_elem = root.find("Settings")
        if settings_elem is None:
            self.settings = defaults
            return self.settings

        self.settings = Settings(
            game_path=self._parse_path(settings_elem, "GamePath"),
            ini_directory=self._parse_path(settings_elem, "IniDirectory"),
            download_timeout=self._parse_float(settings_elem, "DownloadTimeout", defaults.download_timeout),
            scan_workers=self._parse_int(settings_elem, "ScanWorkers", defaults.scan_workers),
            create_backup=self._parse_bool(settings_elem, "CreateBackup", defaults.create_backup),
        )
        return self.settings

    def load_or_default(self) -> Settings:
        """Load settings, treating a corrupted file as missing.

        Returns:
            Loaded or default Settings
        """
        try:
            return self.load()
        except (ET.ParseError, OSError) as e:
            logger.warning("Could not load config, using defaults: %s", e)
            self.settings = Settings()
            return self.settings

    def save(self) -> None:
        """Save current settings to the XML file.

        Creates the configuration directory if it doesn't exist.
        """
        if self.settings is None:
            raise ValueError("No configuration to save")

        logger.debug("Saving configuration to %s", self.config_path)
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        root = ET.Element("CMToolkit", version="1.0")
        settings_elem = ET.SubElement(root, "Settings")
        ET.SubElement(settings_elem, "GamePath").text = str(self.settings.game_path) if self.settings.game_path else ""
        ET.SubElement(settings_elem, "IniDirectory").text = str(self.settings.ini_directory) if self.settings.ini_directory else ""
        ET.SubElement(settings_elem, "DownloadTimeout").text = str(self.settings.download_timeout)
        ET.SubElement(settings_elem, "ScanWorkers").text = str(self.settings.scan_workers)
        ET.SubElement(settings_elem, "CreateBackup").text = str(self.settings.create_backup).lower()

        # Write pretty-printed XML
        xml_str = minidom.parseString(ET.tostring(root, encoding="unicode")).toprettyxml(indent="  ")
        # Remove extra blank lines that minidom adds
        lines = [line for line in xml_str.split('\n') if line.strip()]
        xml_str = '\n'.join(lines)

        self.config_path.write_text(xml_str, encoding="utf-8")

    # Helper methods for XML parsing
    @staticmethod
    def _get_text(parent: ET.Element, tag: str, default: str = "") -> str:
        """Get text content of a child element."""
        elem = parent.find(tag)
        return elem.text.strip() if elem is not None and elem.text else default

    @classmethod
    def _parse_bool(cls, parent: ET.Element, tag: str, default: bool = False) -> bool:
        """Parse a boolean value from child element."""
        text = cls._get_text(parent, tag)
        if text:
            return text.lower() == "true"
        return default

    @classmethod
    def _parse_int(cls, parent: ET.Element, tag: str, default: int) -> int:
        text = cls._get_text(parent, tag)
        try:
            return int(text) if text else default
        except ValueError:
            logger.warning("Invalid integer for %s: %r", tag, text)
            return default

    @classmethod
    def _parse_float(cls, parent: ET.Element, tag: str, default: float) -> float:
        text = cls._get_text(parent, tag)
        try:
            return float(text) if text else default
        except ValueError:
            logger.warning("Invalid number for %s: %r", tag, text)
            return default

    @classmethod
    def _parse_path(cls, parent: ET.Element, tag: str) -> Optional[Path]:
        """Parse a path value from child element."""
        text = cls._get_text(parent, tag)
        if text:
            return GamePaths.expand_path(text)
        return None
