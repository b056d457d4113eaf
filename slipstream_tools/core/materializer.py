"""Make catalog packages available in the destination tree.

Each package goes through the same steps:

1. Presence checks, first match wins:
   a. its expanded file is already in the destination folder, or the
      ledger says it was expanded there: nothing to do
   b. the raw download is in the staging folder: no fetch; a self-extracting
      zip is renamed to carry a ``.zip`` suffix
   c. the renamed download is in the staging folder: no fetch
2. Fetch into the staging folder when nothing was found.
3. Unwrap self-extracting zip downloads to recover the real installer.
4. Extract the installer into the destination folder (patches and
   language packs) or place the recovered file there (prerequisites).
   Companion parts of a multi-part update, such as .cab files, stay in
   the staging folder next to the installer that reads them.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

import structlog

from slipstream_tools.core.download import Downloader
from slipstream_tools.core.errors import ExtractionError, FilesystemError
from slipstream_tools.core.expand import Expander, clear_readonly
from slipstream_tools.core.ledger import MaterializationLedger
from slipstream_tools.core.types import ARCHIVE_SUFFIXES, MaterializeMode, UpdatePackage

logger = structlog.get_logger()


@dataclass
class ArtifactState:
    """Presence information gathered for one package."""

    already_extracted: bool = False
    already_downloaded: bool = False
    local_archive_path: Path | None = None
    expanded_path: Path | None = None


@dataclass
class ArtifactOutcome:
    """Result of materializing one package."""

    package: UpdatePackage
    path: Path
    fetched: bool = False
    expanded: bool = False

    @property
    def skipped(self) -> bool:
        return not self.fetched and not self.expanded


def is_installer(path: Path) -> bool:
    return path.suffix.lower() == ".exe"


def _ensure_folder(folder: Path) -> None:
    try:
        folder.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Cannot create folder {folder}: {e}", path=folder) from e


class Materializer:
    """Fetches, unwraps and expands packages.

    Args:
        downloader: Fetch capability
        expander: Expand capability
        ledger: Record of packages already expanded
    """

    def __init__(
        self,
        downloader: Downloader,
        expander: Expander,
        ledger: MaterializationLedger,
    ):
        self.downloader = downloader
        self.expander = expander
        self.ledger = ledger

    def inspect(
        self,
        package: UpdatePackage,
        destination: Path,
        staging: Path,
        mode: MaterializeMode,
    ) -> ArtifactState:
        """Run the presence checks without changing anything on disk."""
        state = ArtifactState()

        if package.expanded_file:
            expected = destination / package.expanded_file
        else:
            expected = destination / package.installer_name
        if mode is MaterializeMode.PLACE or package.expanded_file:
            if expected.is_file():
                state.already_extracted = True
                state.expanded_path = expected
                return state
        if self.ledger.is_materialized(package, destination):
            state.already_extracted = True
            state.expanded_path = destination
            return state

        raw = staging / package.download_name
        renamed = staging / package.archive_name
        if raw.exists() and not raw.is_dir():
            state.already_downloaded = True
            state.local_archive_path = raw
        elif renamed != raw and renamed.is_file():
            state.already_downloaded = True
            state.local_archive_path = renamed
        return state

    def materialize(
        self,
        package: UpdatePackage,
        destination: Path,
        staging: Path,
        mode: MaterializeMode = MaterializeMode.EXTRACT,
    ) -> ArtifactOutcome:
        """Make ``package`` available in ``destination``.

        Args:
            package: Catalog package
            destination: Folder the package ends up in
            staging: Folder downloads are kept in
            mode: Extract the installer or place the file

        Returns:
            What was done for the package

        Raises:
            FetchError: If the download fails after all retries
            ExtractionError: If unwrapping or extraction fails
            FilesystemError: If a folder cannot be prepared
        """
        log = logger.bind(package=package.name, destination=str(destination))
        state = self.inspect(package, destination, staging, mode)

        if state.already_extracted:
            log.info("artifact_already_present", path=str(state.expanded_path))
            return ArtifactOutcome(package=package, path=state.expanded_path or destination)

        _ensure_folder(staging)
        _ensure_folder(destination)

        outcome = ArtifactOutcome(package=package, path=destination)
        if state.already_downloaded and state.local_archive_path is not None:
            log.info("artifact_already_downloaded", path=str(state.local_archive_path))
            archive = state.local_archive_path
        else:
            log.info("artifact_fetch", url=package.url)
            archive = self.downloader.fetch(package.url, staging / package.download_name)
            outcome.fetched = True

        archive = self._normalize_archive(package, archive)
        installer = self._recover_installer(package, archive, staging)

        if mode is MaterializeMode.EXTRACT and not is_installer(installer):
            log.info("artifact_staged", path=str(installer))
            outcome.path = installer
            return outcome

        if mode is MaterializeMode.EXTRACT:
            clear_readonly(destination)
            self.expander.extract_patch(installer, destination)
            outcome.path = destination
        else:
            outcome.path = self._place(installer, destination)

        outcome.expanded = True
        self.ledger.mark_materialized(package, destination)
        log.info("artifact_materialized", fetched=outcome.fetched, path=str(outcome.path))
        return outcome

    def _normalize_archive(self, package: UpdatePackage, archive: Path) -> Path:
        """Give self-extracting zip downloads a ``.zip`` suffix."""
        if not package.is_zip_wrapped or archive.suffix.lower() in ARCHIVE_SUFFIXES:
            return archive

        renamed = archive.with_name(package.archive_name)
        try:
            archive.replace(renamed)
        except OSError as e:
            raise FilesystemError(f"Cannot rename {archive} to {renamed}: {e}", path=archive) from e
        logger.debug("artifact_renamed", original=str(archive), renamed=str(renamed))
        return renamed

    def _recover_installer(self, package: UpdatePackage, archive: Path, staging: Path) -> Path:
        """Unwrap a zip download and return the installer inside it."""
        if not package.is_zip_wrapped:
            return archive

        installer = staging / package.installer_name
        if package.expanded_file and installer.is_file():
            return installer

        extracted = self.expander.unzip(archive, staging)
        if package.expanded_file:
            if not installer.is_file():
                raise ExtractionError(
                    f"{archive.name} does not contain {package.expanded_file}", path=archive
                )
            return installer

        executables = [path for path in extracted if path.suffix.lower() == ".exe"]
        if len(executables) != 1:
            raise ExtractionError(
                f"Cannot tell which file in {archive.name} is the installer", path=archive
            )
        return executables[0]

    def _place(self, installer: Path, destination: Path) -> Path:
        target = destination / installer.name
        if target.resolve() == installer.resolve():
            return target
        try:
            shutil.copy2(installer, target)
        except OSError as e:
            raise FilesystemError(f"Cannot copy {installer} to {target}: {e}", path=target) from e
        return target
