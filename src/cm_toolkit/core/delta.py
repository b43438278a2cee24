"""Binary delta patches (bsdiff4 format)."""

import bsdiff4

from ..errors import ArgumentInvalidError, PatchApplyError
from ..logging_config import get_logger

logger = get_logger("delta")


def apply_patch(source: bytes, patch: bytes) -> bytes:
    """Reconstruct a target buffer from a source buffer and a delta.

    Args:
        source: Original file contents
        patch: bsdiff4 delta from source to target

    Returns:
        The reconstructed target bytes

    Raises:
        ArgumentInvalidError: If either input is empty
        PatchApplyError: If the delta cannot be decoded or yields no data
    """
    if not source:
        raise ArgumentInvalidError("Source data cannot be empty")
    if not patch:
        raise ArgumentInvalidError("Patch data cannot be empty")

    logger.info("Applying patch. Source size: %d, patch size: %d", len(source), len(patch))

    try:
        target = bsdiff4.patch(source, patch)
    except (ValueError, OSError, EOFError, RuntimeError, MemoryError) as e:
        raise PatchApplyError(f"Failed to decode delta patch: {e}") from e

    if not target:
        raise PatchApplyError("Patch operation resulted in empty data")

    logger.info("Patch applied. Result size: %d", len(target))
    return target


def create_patch(source: bytes, target: bytes) -> bytes:
    """Compute a delta that turns ``source`` into ``target``."""
    if not source or not target:
        raise ArgumentInvalidError("Source and target data cannot be empty")
    return bsdiff4.diff(source, target)
