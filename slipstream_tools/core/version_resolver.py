"""Locate installation media and identify the product on it."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

import structlog

from slipstream_tools.core.catalog import Catalog
from slipstream_tools.core.errors import SourceNotFoundError
from slipstream_tools.core.types import Product
from slipstream_tools.formats.version_info import VersionInfoParser

logger = structlog.get_logger()

SETUP_EXE = "setup.exe"
PREREQUISITE_INSTALLER_EXE = "PrerequisiteInstaller.exe"
MARKER_FILES = (SETUP_EXE, PREREQUISITE_INSTALLER_EXE)


def _find_file(folder: Path, name: str) -> Path | None:
    """Case-insensitive lookup, media file names vary in case."""
    exact = folder / name
    if exact.is_file():
        return exact
    wanted = name.lower()
    try:
        for child in folder.iterdir():
            if child.name.lower() == wanted and child.is_file():
                return child
    except OSError:
        return None
    return None


def has_markers(folder: Path) -> bool:
    """True if ``folder`` holds both installer executables."""
    if not folder.is_dir():
        return False
    return all(_find_file(folder, name) is not None for name in MARKER_FILES)


class VersionResolver:
    """Finds the base media and maps its version to a catalog product."""

    def __init__(self, catalog: Catalog, media_roots: Sequence[Path] = ()):
        """Initialize resolver.

        Args:
            catalog: Loaded update catalog
            media_roots: Roots probed when no explicit candidate matches
        """
        self.catalog = catalog
        self.media_roots = list(media_roots)
        self.parser = VersionInfoParser()

    def read_product(self, folder: Path) -> Product | None:
        """Identify the product on the media in ``folder``."""
        setup = _find_file(folder, SETUP_EXE)
        if setup is None:
            return None
        try:
            info = self.parser.parse_file(setup)
        except ValueError as e:
            logger.warning("media_version_unreadable", path=str(setup), error=str(e))
            return None

        product = self.catalog.lookup_product(info.major)
        if product is None:
            logger.warning(
                "media_version_unsupported",
                path=str(folder),
                version=info.version_string,
            )
            return None

        logger.info(
            "media_identified",
            path=str(folder),
            version=info.version_string,
            product=product.key,
        )
        return product

    def _probe_locations(self) -> Iterable[Path]:
        for root in self.media_roots:
            yield root
            if not root.is_dir():
                continue
            try:
                children = sorted(child for child in root.iterdir() if child.is_dir())
            except OSError:
                continue
            yield from children

    def resolve(self, candidates: Sequence[Path] = ()) -> tuple[Path, Product]:
        """Find the installation media.

        Explicit candidates are tried first, in order, then the media
        roots and their immediate subfolders.

        Args:
            candidates: Explicit source locations

        Returns:
            Tuple of (source folder, product)

        Raises:
            SourceNotFoundError: If no location holds recognised media
        """
        probed: list[Path] = []
        for location in [*candidates, *self._probe_locations()]:
            probed.append(location)
            if not has_markers(location):
                logger.debug("media_markers_missing", path=str(location))
                continue
            product = self.read_product(location)
            if product is not None:
                return location, product

        raise SourceNotFoundError(
            "No installation media with setup.exe and PrerequisiteInstaller.exe "
            "and a supported version was found",
            probed=probed,
        )


def adjust_destination(destination: Path, default: Path, product: Product) -> Path:
    """Swap the year of a default destination for the product's year.

    Only the default destination is touched; a destination given by the
    operator is used as-is.
    """
    if destination != default:
        return destination
    if destination.name.isdigit() and destination.name != product.year:
        adjusted = destination.with_name(product.year)
        logger.info("destination_adjusted", original=str(destination), adjusted=str(adjusted))
        return adjusted
    return destination
