"""Persistent record of materialized packages.

Patch installers unpack into files that do not carry the name of the
package they came from, so the destination tree alone cannot tell whether
a package was already expanded. The ledger remembers which package went
into which folder so that re-runs skip them. State is persisted as JSON
using atomic writes (temp file + os.replace) to prevent corruption.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import structlog

from slipstream_tools.core.errors import FilesystemError
from slipstream_tools.core.types import UpdatePackage

logger = structlog.get_logger()


class MaterializationLedger:
    """Packages expanded into each folder of a destination tree.

    Args:
        destination: Root of the destination tree
    """

    STATE_FILENAME = ".slipstream_state.json"

    def __init__(self, destination: Path) -> None:
        self.destination = destination
        self.entries: dict[str, set[str]] = {}

    @property
    def state_file_path(self) -> Path:
        """Path to the state file."""
        return self.destination / self.STATE_FILENAME

    def _folder_key(self, folder: Path) -> str:
        try:
            return folder.relative_to(self.destination).as_posix()
        except ValueError:
            return folder.as_posix()

    @staticmethod
    def _package_key(package: UpdatePackage) -> str:
        return f"{package.product}:{package.name}:{package.download_name}"

    def is_materialized(self, package: UpdatePackage, folder: Path) -> bool:
        """Check if ``package`` was already expanded into ``folder``."""
        return self._package_key(package) in self.entries.get(self._folder_key(folder), set())

    def mark_materialized(self, package: UpdatePackage, folder: Path) -> None:
        """Record ``package`` as expanded into ``folder`` and persist."""
        self.entries.setdefault(self._folder_key(folder), set()).add(
            self._package_key(package)
        )
        self.save()

    def save(self) -> None:
        """Persist state to disk using atomic write."""
        state_path = self.state_file_path
        tmp_path = state_path.with_suffix(".json.tmp")

        data = {folder: sorted(keys) for folder, keys in sorted(self.entries.items())}
        try:
            state_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2))
            os.replace(tmp_path, state_path)
        except OSError as e:
            raise FilesystemError(f"Cannot save {state_path}: {e}", path=state_path) from e

    @classmethod
    def load(cls, destination: Path) -> MaterializationLedger:
        """Load state from disk.

        A missing or unreadable state file yields an empty ledger; the
        presence checks on the destination tree still apply.
        """
        ledger = cls(destination)
        state_path = ledger.state_file_path

        if not state_path.exists():
            return ledger

        try:
            raw = json.loads(state_path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("ledger_unreadable", path=str(state_path), error=str(e))
            return ledger

        if isinstance(raw, dict):
            ledger.entries = {
                str(folder): set(keys) for folder, keys in raw.items() if isinstance(keys, list)
            }
        return ledger
