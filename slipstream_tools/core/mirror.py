"""Incremental directory mirroring."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

import structlog

from slipstream_tools.core.errors import FilesystemError

logger = structlog.get_logger()


@dataclass
class MirrorResult:
    """Outcome of a mirror copy."""

    copied: int = 0
    skipped: int = 0


def same_location(a: Path, b: Path) -> bool:
    """True if both paths resolve to the same folder."""
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False


def mirror_copy(source: Path, destination: Path) -> MirrorResult:
    """Copy a directory tree without deleting anything at the destination.

    Files already present at the destination are left alone unless the
    source copy is newer. Timestamps and permission bits are preserved.

    Args:
        source: Tree to copy
        destination: Target folder, created if needed

    Returns:
        Counts of copied and skipped files

    Raises:
        FilesystemError: If a folder or file cannot be written
    """
    result = MirrorResult()
    if same_location(source, destination):
        logger.info("mirror_skipped_same_location", path=str(source))
        return result

    for root, _dirs, files in os.walk(source):
        relative = Path(root).relative_to(source)
        target_dir = destination / relative
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create folder {target_dir}: {e}", path=target_dir) from e

        for name in files:
            src = Path(root) / name
            dst = target_dir / name
            if dst.exists() and dst.stat().st_mtime >= src.stat().st_mtime:
                result.skipped += 1
                continue
            try:
                if dst.exists():
                    # Media copies are often read-only
                    os.chmod(dst, 0o644)
                shutil.copy2(src, dst)
            except OSError as e:
                raise FilesystemError(f"Cannot copy {src} to {dst}: {e}", path=dst) from e
            result.copied += 1

    logger.info(
        "mirror_complete",
        source=str(source),
        destination=str(destination),
        copied=result.copied,
        skipped=result.skipped,
    )
    return result
