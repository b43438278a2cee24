"""Built-in catalog of known game executable versions"""

from dataclasses import dataclass
from typing import Iterable, Optional

from ..errors import ArgumentInvalidError

PATCH_URL_BASE = "https://github.com/wxMichael/Collective-Modding-Toolkit/releases/download/delta-patches/"
PATCH_FILE_SUFFIX = ".bsdiff4"


@dataclass(frozen=True)
class GameVersionDescriptor:
    """A known executable version and how to reach it.

    An empty ``patch_url`` means no patch to this version is available.
    """
    version: str
    display_name: str
    description: str
    patch_url: str
    expected_crc32: int
    expected_size: int
    is_original: bool = False
    is_next_gen: bool = False
    is_downgrade: bool = False

    @property
    def has_patch(self) -> bool:
        return bool(self.patch_url)


# TODO: replace the placeholder checksums and sizes with values measured from the released executables
DEFAULT_VERSIONS = (
    GameVersionDescriptor(
        version="1.10.163",
        display_name="Version 1.10.163 (Original)",
        description="Original Steam version with full mod support",
        patch_url=PATCH_URL_BASE + "1.10.163" + PATCH_FILE_SUFFIX,
        expected_crc32=0x1234567,
        expected_size=64424960,
        is_original=True,
        is_downgrade=True,
    ),
    GameVersionDescriptor(
        version="1.10.980",
        display_name="Version 1.10.980 (Next-Gen)",
        description="Next-Gen update version",
        patch_url="",
        expected_crc32=0x7654321,
        expected_size=65536000,
        is_next_gen=True,
    ),
)


class VersionCatalog:
    """Lookup over the static version table.

    Args:
        versions: Descriptors to serve (defaults to the built-in table)
    """

    def __init__(self, versions: Optional[Iterable[GameVersionDescriptor]] = None):
        self._versions = {
            descriptor.version: descriptor
            for descriptor in (DEFAULT_VERSIONS if versions is None else versions)
        }

    def available_versions(self) -> tuple[GameVersionDescriptor, ...]:
        return tuple(self._versions.values())

    def get(self, version: str) -> GameVersionDescriptor:
        """Look up a version string.

        Raises:
            ArgumentInvalidError: If the version is not in the catalog
        """
        try:
            return self._versions[version]
        except KeyError:
            known = ", ".join(self._versions)
            raise ArgumentInvalidError(f"Unknown game version '{version}' (known: {known})") from None

    def find_by_checksum(self, crc32: int) -> Optional[GameVersionDescriptor]:
        """Return the descriptor whose expected CRC-32 matches, if any."""
        for descriptor in self._versions.values():
            if descriptor.expected_crc32 == crc32:
                return descriptor
        return None
