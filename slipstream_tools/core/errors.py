"""Error taxonomy for slipstream builds.

Fatal errors (``ConfigError``, ``SourceNotFoundError``) abort a run before
a build plan exists. The remaining errors are raised for a single artifact
or folder and are converted into report warnings by the layering engine.
"""

from __future__ import annotations

from pathlib import Path


class SlipstreamError(Exception):
    """Base class for all slipstream-tools errors."""


class ConfigError(SlipstreamError):
    """Raised when the catalog or configuration is missing or malformed.

    Attributes:
        path: Resource that failed to load, if known
    """

    def __init__(self, message: str, *, path: Path | None = None):
        self.path = path
        super().__init__(message)


class SourceNotFoundError(SlipstreamError):
    """Raised when no valid base installation media could be located.

    Attributes:
        probed: Locations checked, in probe order
    """

    def __init__(self, message: str, *, probed: list[Path] | None = None):
        self.probed = probed or []
        super().__init__(message)


class SelectionInvalid(SlipstreamError):
    """Raised when a requested update or language is not in the catalog.

    Attributes:
        kind: What was being selected ("cumulative_update", "language")
        name: The rejected name
    """

    def __init__(self, message: str, *, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(message)


class FetchError(SlipstreamError):
    """Raised when a transfer keeps failing after all retries.

    Attributes:
        url: Source URL
        attempts: Number of attempts made
    """

    def __init__(self, message: str, *, url: str, attempts: int = 0):
        self.url = url
        self.attempts = attempts
        super().__init__(message)


class ExtractionError(SlipstreamError):
    """Raised when an archive or patch installer fails to expand.

    Attributes:
        path: Archive or executable being expanded
        log_path: Diagnostic log written by the expansion tool, if any
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        log_path: Path | None = None,
    ):
        self.path = path
        self.log_path = log_path
        super().__init__(message)


class FilesystemError(SlipstreamError):
    """Raised when a folder cannot be created or its attributes changed.

    Attributes:
        path: Folder or file that blocked the operation
    """

    def __init__(self, message: str, *, path: Path):
        self.path = path
        super().__init__(message)
