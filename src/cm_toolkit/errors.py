"""Exception types raised by the toolkit.

Every error carries a ``recoverable`` flag. Recoverable errors concern a
single file during a directory scan: the file is skipped and reported, and
the scan continues. Non-recoverable errors abort the operation in progress
(the patch pipeline rolls back first, see ``core.downgrader``).

Hierarchy::

    ToolkitError
    ├── FileDecodeError            (recoverable)
    │   ├── NotFoundError
    │   ├── InvalidFormatError
    │   └── TruncatedRecordError
    ├── ToolkitIOError             (recoverable)
    ├── ArgumentInvalidError       (also a ValueError)
    ├── OperationInProgressError
    │   ├── AnalysisInProgressError
    │   └── PatchInProgressError
    ├── UnsupportedConversionError
    └── PipelineError              (carries the failed pipeline state)
        ├── UnknownSourceVersionError
        ├── BackupError
        ├── PatchSourceUnavailableError
        ├── PatchApplyError
        ├── VerificationFailedError
        ├── CommitError
        └── OperationCancelledError
"""

from pathlib import Path
from typing import Optional, Union


class ToolkitError(Exception):
    """Base class for all toolkit errors."""

    recoverable = False

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.message} ({self.path})"
        return self.message


class FileDecodeError(ToolkitError):
    """A single file could not be decoded; scans skip it and continue."""

    recoverable = True


class NotFoundError(FileDecodeError):
    """Raised when a path does not exist."""


class InvalidFormatError(FileDecodeError):
    """Raised for a wrong magic tag or an unrecognized file extension."""


class TruncatedRecordError(FileDecodeError):
    """Raised when a header or subrecord runs past its declared bounds."""


class ToolkitIOError(ToolkitError):
    """Raised when reading or writing a file (or a download) fails."""

    recoverable = True


class ArgumentInvalidError(ToolkitError, ValueError):
    """Raised for invalid caller input, such as empty patch buffers."""


class OperationInProgressError(ToolkitError):
    """Raised when an exclusive operation is already running."""


class AnalysisInProgressError(OperationInProgressError):
    """Raised when an analysis is started while another one is running."""


class PatchInProgressError(OperationInProgressError):
    """Raised when a patch or restore already holds the installation."""


class UnsupportedConversionError(ToolkitError):
    """Raised when an archive conversion is not in the supported table."""


class PipelineError(ToolkitError):
    """Base class for patch pipeline failures.

    Attributes:
        state: Value of the pipeline state that failed (set by the pipeline)
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None, state: Optional[str] = None):
        super().__init__(message, path)
        self.state = state


class UnknownSourceVersionError(PipelineError):
    """The executable checksum matches no entry in the version catalog."""


class BackupError(PipelineError):
    """Raised when the pre-patch backup cannot be created."""


class PatchSourceUnavailableError(PipelineError):
    """Raised when the patch payload cannot be retrieved."""


class PatchApplyError(PipelineError):
    """Raised when a delta patch fails to decode or yields no data."""


class VerificationFailedError(PipelineError):
    """Raised when the patched output does not match the expected checksum."""


class CommitError(PipelineError):
    """Raised when the verified file cannot replace the live executable."""


class OperationCancelledError(PipelineError):
    """Raised when cancellation is requested at a pipeline checkpoint."""
