"""Command-line entry point and orchestrator"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from . import __app_name__, __version__
from .config.manager import ConfigurationManager
from .config.schema import Settings
from .core.archive_decoder import ArchiveFormat, decode_archive
from .core.archive_patcher import ArchivePatcher
from .core.catalog import VersionCatalog
from .core.downgrader import Downgrader, PatchProgress
from .core.game_detector import GameDetector
from .core.integrity import checksum_file
from .core.module_decoder import decode_module
from .core.patch_source import PatchSource
from .core.session import AnalysisSession
from .errors import ToolkitError
from .logging_config import get_logger, setup_logging

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PROBLEMS = 2

PATCHABLE_FORMATS = [ArchiveFormat.GENERAL.value, ArchiveFormat.TEXTURE.value]

logger = get_logger("app")


def build_parser() -> argparse.ArgumentParser:
    """Configure the top-level parser and subcommands."""
    parser = argparse.ArgumentParser(
        prog="cm-toolkit",
        description=f"{__app_name__} - inspect and downgrade a modded Fallout 4 installation",
    )
    parser.add_argument("--version", "-V", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Log to the console at DEBUG level")
    parser.add_argument("--config", type=Path, default=None, help="Settings file (default: user config dir)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser("analyze", help="Scan an installation and report problems")
    analyze_parser.add_argument("root", nargs="?", type=Path, default=None, help="Installation root (default: detected)")
    analyze_parser.add_argument("--ini-dir", type=Path, default=None, help="Directory with Fallout4.ini and Fallout4Prefs.ini")

    module_parser = subparsers.add_parser("module", help="Show the header of a plugin file")
    module_parser.add_argument("file", type=Path, help="Path to a .esp/.esm/.esl file")

    archive_parser = subparsers.add_parser("archive", help="Show the header of an archive")
    archive_parser.add_argument("file", type=Path, help="Path to a .ba2/.bsa file")

    checksum_parser = subparsers.add_parser("checksum", help="Print the CRC-32 of a file")
    checksum_parser.add_argument("file", type=Path, help="File to checksum")

    subparsers.add_parser("versions", help="List known game versions")

    downgrade_parser = subparsers.add_parser("downgrade", help="Patch the game executable to another version")
    downgrade_parser.add_argument("version", help="Target version (see 'versions')")
    downgrade_parser.add_argument("--root", type=Path, default=None, help="Installation root (default: detected)")
    downgrade_parser.add_argument("--no-backup", action="store_true", help="Skip the backup step")

    restore_parser = subparsers.add_parser("restore", help="Restore the game files from the backup")
    restore_parser.add_argument("--root", type=Path, default=None, help="Installation root (default: detected)")

    config_parser = subparsers.add_parser("config", help="Show or change saved settings")
    config_parser.add_argument("--game-path", type=Path, default=None, help="Installation root to remember")
    config_parser.add_argument("--ini-dir", type=Path, default=None, help="Directory with the game INI files")
    config_parser.add_argument("--timeout", type=float, default=None, help="Download timeout in seconds")

    patch_parser = subparsers.add_parser("patch-archive", help="Convert a BA2 archive's content type")
    patch_parser.add_argument("file", type=Path, help="Path to a .ba2 file")
    patch_parser.add_argument("format", choices=PATCHABLE_FORMATS, help="Target format")

    return parser


def _print_progress(progress: PatchProgress) -> None:
    print(f"[{progress.percentage:3d}%] {progress.message}")


class CMToolkitApp:
    """Dispatches parsed command-line arguments to the core.

    Args:
        config_manager: Manager holding the loaded settings
    """

    def __init__(self, config_manager: ConfigurationManager):
        self.config_manager = config_manager
        self.settings = config_manager.settings or Settings()
        self.catalog = VersionCatalog()

    def run(self, args: argparse.Namespace) -> int:
        handler = getattr(self, "cmd_" + args.command.replace("-", "_"))
        return handler(args)

    def _resolve_root(self, root: Optional[Path]) -> Path:
        if root is not None:
            return root
        preferred = self.settings.game_path if self.settings.has_game_path() else None
        detected = GameDetector(self.catalog).detect(preferred)
        if detected is None:
            raise ToolkitError("Could not detect the game installation; pass the root explicitly")
        return detected

    def cmd_analyze(self, args: argparse.Namespace) -> int:
        root = self._resolve_root(args.root)
        session = AnalysisSession(
            ini_directory=args.ini_dir or self.settings.ini_directory,
            workers=self.settings.scan_workers,
            catalog=self.catalog,
        )
        result = session.analyze(root)

        light = sum(1 for m in result.modules if m.is_light)
        print(f"Installation: {result.root}")
        print(f"Modules: {len(result.modules)} ({len(result.modules) - light} full, {light} light)")
        print(f"Archives: {len(result.archives)}")
        for archive_format in ArchiveFormat:
            count = sum(1 for a in result.archives if a.format == archive_format)
            if count:
                print(f"  {archive_format.value}: {count}")

        if not result.problems:
            print("No problems found")
            return EXIT_OK

        print(f"Problems: {len(result.problems)}")
        for problem in result.problems:
            print(f"  [{problem.severity.value}] {problem.type.value}: {problem.description}")
            if problem.solution:
                print(f"      -> {problem.solution}")
        return EXIT_PROBLEMS if result.has_errors else EXIT_OK

    def cmd_module(self, args: argparse.Namespace) -> int:
        summary = decode_module(args.file)
        print(f"File: {summary.file_name}")
        print(f"Type: {summary.module_type.value}" + (" (light)" if summary.is_light else ""))
        print(f"Master: {'yes' if summary.is_master else 'no'}")
        print(f"Flags: 0x{summary.flags:08X}")
        if summary.header_version is not None:
            print(f"Header version: {summary.header_version:g}")
            print(f"Records: {summary.record_count}")
            print(f"Next object id: 0x{summary.next_object_id:06X}")
        if summary.author:
            print(f"Author: {summary.author}")
        if summary.description:
            print(f"Description: {summary.description}")
        for master in summary.masters:
            print(f"Master file: {master}")
        print(f"CRC32: {summary.crc32:08X}")
        return EXIT_OK

    def cmd_archive(self, args: argparse.Namespace) -> int:
        summary = decode_archive(args.file)
        print(f"File: {summary.file_name}")
        print(f"Family: {summary.family.value} v{summary.version}")
        print(f"Format: {summary.format.value} ({summary.content_type})")
        print(f"Files: {summary.file_count}")
        print(f"CRC32: {summary.crc32:08X}")
        return EXIT_OK

    def cmd_checksum(self, args: argparse.Namespace) -> int:
        print(f"{checksum_file(args.file):08X}  {args.file}")
        return EXIT_OK

    def cmd_versions(self, args: argparse.Namespace) -> int:
        for descriptor in self.catalog.available_versions():
            availability = "patch available" if descriptor.has_patch else "no patch"
            print(f"{descriptor.version:<10} {descriptor.display_name} - {descriptor.description} ({availability})")
        return EXIT_OK

    def cmd_downgrade(self, args: argparse.Namespace) -> int:
        root = self._resolve_root(args.root)
        with PatchSource(timeout=self.settings.download_timeout) as patch_source:
            downgrader = Downgrader(
                root,
                catalog=self.catalog,
                patch_source=patch_source,
                create_backup=self.settings.create_backup and not args.no_backup,
            )
            downgrader.downgrade(args.version, _print_progress)
        return EXIT_OK

    def cmd_restore(self, args: argparse.Namespace) -> int:
        root = self._resolve_root(args.root)
        restored = Downgrader(root, catalog=self.catalog).restore_backup(_print_progress)
        print(f"Restored {len(restored)} files")
        return EXIT_OK

    def cmd_config(self, args: argparse.Namespace) -> int:
        changed = False
        if args.game_path is not None:
            if not GameDetector.is_valid_installation(args.game_path):
                raise ToolkitError("Not a game installation (Fallout4.exe and Data expected)", path=args.game_path)
            self.settings.game_path = args.game_path
            changed = True
        if args.ini_dir is not None:
            self.settings.ini_directory = args.ini_dir
            changed = True
        if args.timeout is not None:
            self.settings.download_timeout = args.timeout
            changed = True

        if changed:
            self.config_manager.settings = self.settings
            self.config_manager.save()
            print(f"Saved settings to {self.config_manager.config_path}")

        print(f"Game path: {self.settings.game_path or '(detect)'}")
        print(f"INI directory: {self.settings.ini_directory or '(default)'}")
        print(f"Download timeout: {self.settings.download_timeout:g}s")
        print(f"Scan workers: {self.settings.scan_workers}")
        print(f"Create backup: {'yes' if self.settings.create_backup else 'no'}")
        return EXIT_OK

    def cmd_patch_archive(self, args: argparse.Namespace) -> int:
        changed = ArchivePatcher().patch(args.file, ArchiveFormat(args.format), _print_progress)
        if not changed:
            print(f"{args.file.name} is already {args.format}")
        return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Application entry point.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    # Initialize logging first
    log = setup_logging(debug=args.debug)
    log.info("Starting %s v%s", __app_name__, __version__)

    config_manager = ConfigurationManager(args.config)
    config_manager.load_or_default()

    try:
        return CMToolkitApp(config_manager).run(args)
    except ToolkitError as e:
        logger.error("Command %s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        log.info("%s shutting down", __app_name__)


if __name__ == "__main__":
    sys.exit(main())
