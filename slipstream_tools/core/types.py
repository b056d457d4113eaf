"""Core type definitions for slipstream_tools."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field

# Self-extracting hotfix downloads are zip files wearing an .exe suffix
ZIP_WRAPPED_SUFFIXES = ("_zip.exe", "-zip.exe")
ARCHIVE_SUFFIXES = (".zip",)


class MaterializeMode(StrEnum):
    """How a materialized package ends up in its destination folder."""
    EXTRACT = "extract"  # run the patch installer's /extract routine
    PLACE = "place"  # drop the recovered file into the folder


class UpdatePackage(BaseModel):
    """A single downloadable unit from the catalog."""
    name: str = Field(..., description="Package name")
    url: str = Field(..., description="Download URL")
    expanded_file: str | None = Field(
        None, description="File produced by unwrapping a self-extracting download"
    )
    product: str = Field(..., description="Product key the package applies to")
    service_pack: str | None = Field(
        None, description="Service pack baseline the package applies to"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def download_name(self) -> str:
        """File name the download is stored under in the staging folder."""
        path = PurePosixPath(unquote(urlparse(self.url).path))
        return path.name or self.name

    @property
    def is_zip_wrapped(self) -> bool:
        """True if the download is a zip archive named like an executable."""
        return self.download_name.lower().endswith(ZIP_WRAPPED_SUFFIXES)

    @property
    def archive_name(self) -> str:
        """Download name carrying a recognized archive suffix."""
        name = self.download_name
        if self.is_zip_wrapped:
            return name[: -len(".exe")] + ".zip"
        return name

    @property
    def installer_name(self) -> str:
        """Name of the file that is finally run or placed."""
        if self.is_zip_wrapped and self.expanded_file:
            return self.expanded_file
        return self.download_name


class ServicePack(BaseModel):
    """A named service pack, possibly split over several packages."""
    name: str = Field(..., description="Service pack name (e.g. SP1)")
    threshold: int = Field(
        default=1, description="Patch files that mark the service pack as slipstreamed"
    )
    packages: tuple[UpdatePackage, ...] = Field(default=())

    model_config = ConfigDict(frozen=True)


class CumulativeUpdate(BaseModel):
    """A named cumulative update, possibly split over several packages."""
    name: str = Field(..., description="Cumulative update name (e.g. August 2014)")
    service_pack: str | None = Field(None, description="Required service pack baseline")
    requires: str | None = Field(
        None, description="Cumulative update that must be layered first"
    )
    packages: tuple[UpdatePackage, ...] = Field(default=())

    model_config = ConfigDict(frozen=True)


class UpdateCollection(BaseModel):
    """Service packs and cumulative updates declared for one target."""
    service_packs: tuple[ServicePack, ...] = Field(default=())
    cumulative_updates: tuple[CumulativeUpdate, ...] = Field(default=())

    model_config = ConfigDict(frozen=True)

    def find_service_pack(self, name: str) -> ServicePack | None:
        for service_pack in self.service_packs:
            if service_pack.name == name:
                return service_pack
        return None

    def find_cumulative_update(self, name: str) -> CumulativeUpdate | None:
        for update in self.cumulative_updates:
            if update.name == name:
                return update
        return None

    def cumulative_update_names(self) -> list[str]:
        """Cumulative update names in catalog order."""
        return [update.name for update in self.cumulative_updates]


class LanguagePack(UpdateCollection):
    """Localization add-on for one culture, with its own updates."""
    culture_id: str = Field(..., description="Culture identifier (e.g. fr-fr)")
    package: UpdatePackage = Field(..., description="Language pack installer")


class OfficeWebAppsCatalog(UpdateCollection):
    """Updates for the Office Web Apps companion product."""


class Product(UpdateCollection):
    """A product version and everything the catalog knows about it."""
    key: str = Field(..., description="Catalog key (e.g. SP2013)")
    year: str = Field(..., description="Year label (e.g. 2013)")
    version_prefix: str = Field(..., description="Major file version (e.g. 15)")
    prerequisites: tuple[UpdatePackage, ...] = Field(default=())
    language_packs: tuple[LanguagePack, ...] = Field(default=())
    office_web_apps: OfficeWebAppsCatalog | None = Field(None)

    def find_language_pack(self, culture_id: str) -> LanguagePack | None:
        wanted = culture_id.lower()
        for language_pack in self.language_packs:
            if language_pack.culture_id.lower() == wanted:
                return language_pack
        return None

    def display(self) -> str:
        return f"SharePoint {self.year}"


class LanguageSelection(BaseModel):
    """A validated language with the updates resolved for it."""
    culture_id: str
    language_pack: LanguagePack
    service_pack: ServicePack | None = None
    cumulative_update: CumulativeUpdate | None = None

    model_config = ConfigDict(frozen=True)


class OfficeWebAppsPlan(BaseModel):
    """The Office Web Apps half of a build plan."""
    source_path: Path
    service_pack: ServicePack | None = None
    cumulative_updates: tuple[CumulativeUpdate, ...] = Field(default=())

    model_config = ConfigDict(frozen=True)


class BuildPlan(BaseModel):
    """Everything a single run will layer onto the destination tree."""
    product: Product
    source_path: Path
    destination: Path
    staging: Path
    prerequisites: tuple[UpdatePackage, ...] = Field(default=())
    service_pack: ServicePack | None = None
    cumulative_updates: tuple[CumulativeUpdate, ...] = Field(
        default=(), description="Required baselines first, then the chosen update"
    )
    languages: tuple[LanguageSelection, ...] = Field(default=())
    office_web_apps: OfficeWebAppsPlan | None = None
    invalid_selections: tuple[str, ...] = Field(default=())

    model_config = ConfigDict(frozen=True)

    @property
    def cumulative_update(self) -> CumulativeUpdate | None:
        """The chosen cumulative update, if any."""
        if self.cumulative_updates:
            return self.cumulative_updates[-1]
        return None

    @property
    def language_ids(self) -> list[str]:
        return [language.culture_id for language in self.languages]
