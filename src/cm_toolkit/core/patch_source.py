"""Retrieval of delta patch payloads from a URL or a local file."""

from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from ..logging_config import get_logger
from ..errors import PatchSourceUnavailableError

logger = get_logger("patch_source")

DEFAULT_TIMEOUT = 60.0


class PatchSource:
    """Fetches patch payloads.

    ``http``/``https`` locators are downloaded with httpx; any other locator
    is read as a local file path. A client passed in by the caller is used
    as-is and never closed here.

    Args:
        client: Optional preconfigured httpx.Client
        timeout: Request timeout in seconds for the owned client
    """

    def __init__(self, client: Optional[httpx.Client] = None, timeout: float = DEFAULT_TIMEOUT):
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "PatchSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def fetch(self, locator: str) -> bytes:
        """Retrieve a patch payload.

        Args:
            locator: URL or local file path

        Returns:
            The payload bytes (never empty)

        Raises:
            PatchSourceUnavailableError: Empty locator, transport or HTTP
                status failure, unreadable file, or empty payload
        """
        if not locator:
            raise PatchSourceUnavailableError("No patch is available for this version")

        if urlparse(locator).scheme in ("http", "https"):
            data = self._download(locator)
        else:
            data = self._read_local(Path(locator))

        if not data:
            raise PatchSourceUnavailableError(f"Patch source is empty: {locator}")

        logger.info("Retrieved patch (%d bytes) from %s", len(data), locator)
        return data

    def _download(self, url: str) -> bytes:
        logger.info("Downloading patch from %s", url)
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PatchSourceUnavailableError(
                f"Patch download failed with HTTP {e.response.status_code}: {url}"
            ) from e
        except httpx.HTTPError as e:
            raise PatchSourceUnavailableError(f"Patch download failed: {e}") from e
        return response.content

    @staticmethod
    def _read_local(file_path: Path) -> bytes:
        logger.info("Reading patch from %s", file_path)
        try:
            return file_path.read_bytes()
        except OSError as e:
            raise PatchSourceUnavailableError(f"Cannot read patch file: {e}", path=file_path) from e
