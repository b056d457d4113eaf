"""Archive and patch-installer expansion."""

from __future__ import annotations

import os
import stat
import subprocess
import time
import zipfile
from pathlib import Path

import structlog

from slipstream_tools.core.config import ExpandConfig
from slipstream_tools.core.errors import ExtractionError, FilesystemError

logger = structlog.get_logger()

# File system timestamps can trail time.time() by a clock tick
_LOG_MTIME_SLACK = 2.0


def clear_readonly(folder: Path) -> int:
    """Recursively clear the read-only attribute below ``folder``.

    Files copied from installation media keep the media's read-only flag,
    which makes patch installers fail when they overwrite them.

    Args:
        folder: Folder to process; a missing folder is ignored

    Returns:
        Number of entries whose attributes were changed

    Raises:
        FilesystemError: If an attribute cannot be changed
    """
    if not folder.exists():
        return 0

    changed = 0
    for path in [folder, *folder.rglob("*")]:
        try:
            mode = path.stat().st_mode
            if not mode & stat.S_IWRITE:
                os.chmod(path, mode | stat.S_IWRITE)
                changed += 1
        except OSError as e:
            raise FilesystemError(f"Cannot clear read-only flag on {path}: {e}", path=path) from e

    if changed:
        logger.debug("readonly_cleared", folder=str(folder), count=changed)
    return changed


class Expander:
    """Expands zip archives and self-extracting patch installers."""

    def __init__(self, config: ExpandConfig | None = None):
        """Initialize expander.

        Args:
            config: Optional expansion configuration
        """
        self.config = config or ExpandConfig()

    def unzip(self, archive: Path, target: Path) -> list[Path]:
        """Extract a zip archive.

        Args:
            archive: Zip file
            target: Folder to extract into

        Returns:
            Paths of the extracted files

        Raises:
            ExtractionError: If the archive is unreadable
        """
        try:
            target.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(archive) as zf:
                names = [info.filename for info in zf.infolist() if not info.is_dir()]
                zf.extractall(target)
        except (zipfile.BadZipFile, OSError) as e:
            logger.error("unzip_failed", archive=str(archive), error=str(e))
            raise ExtractionError(f"Cannot extract {archive}: {e}", path=archive) from e

        logger.info("unzip_complete", archive=str(archive), files=len(names))
        return [target / name for name in names]

    def extract_patch(self, executable: Path, target: Path) -> None:
        """Run a patch installer's built-in extraction routine.

        Args:
            executable: Self-extracting patch installer
            target: Folder the installer unpacks into

        Raises:
            ExtractionError: If the installer fails or its log reports failure
        """
        target.mkdir(parents=True, exist_ok=True)
        started = time.time()
        command = [str(executable), f"/extract:{target}", "/quiet"]
        logger.info("patch_extract_start", executable=str(executable), target=str(target))

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ExtractionError(
                f"Cannot run {executable.name}: {e}", path=executable
            ) from e

        log_path = self.latest_log(since=started - _LOG_MTIME_SLACK)
        if result.returncode != 0:
            raise ExtractionError(
                f"{executable.name} exited with code {result.returncode}",
                path=executable,
                log_path=log_path,
            )
        self.verify_log(executable, log_path)
        logger.info("patch_extract_complete", executable=str(executable))

    def latest_log(self, since: float = 0.0) -> Path | None:
        """Most recent extraction log written at or after ``since``."""
        if not self.config.log_dir.is_dir():
            return None

        candidates = [
            path
            for path in self.config.log_dir.glob(self.config.log_pattern)
            if path.is_file() and path.stat().st_mtime >= since
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda path: path.stat().st_mtime)

    def verify_log(self, executable: Path, log_path: Path | None) -> None:
        """Raise if the extraction log carries the failure marker."""
        if log_path is None:
            logger.debug("patch_extract_no_log", executable=str(executable))
            return

        text = log_path.read_text(encoding="utf-8", errors="ignore")
        if self.config.failure_marker in text:
            logger.error(
                "patch_extract_failed", executable=str(executable), log=str(log_path)
            )
            raise ExtractionError(
                f"Extraction of {executable.name} failed, see {log_path}",
                path=executable,
                log_path=log_path,
            )
