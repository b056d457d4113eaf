"""Layer a build plan onto the destination tree.

Stages run in a fixed order, each skipped when its part of the plan is
empty:

1. base media copy into ``SharePoint``
2. prerequisites into ``SharePoint/PrerequisiteInstallerFiles``
3. service pack into ``SharePoint/Updates``, unless already slipstreamed
4. cumulative update into ``SharePoint/Updates``
5. Office Web Apps: steps 1, 3 and 4 against ``OfficeWebApps``
6. per language: language pack, its service pack and cumulative update,
   and the language's patch files out of ``SharePoint/Updates``
7. the manifest

A failed download, extraction or folder operation is recorded as a
warning and only its own component is skipped; the run carries on.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable, Sequence
from pathlib import Path

import structlog

from slipstream_tools.core.errors import ExtractionError, FetchError, FilesystemError
from slipstream_tools.core.expand import clear_readonly
from slipstream_tools.core.materializer import Materializer, is_installer
from slipstream_tools.core.mirror import mirror_copy, same_location
from slipstream_tools.core.report import BuildReport, Stage, StageStatus
from slipstream_tools.core.types import (
    BuildPlan,
    CumulativeUpdate,
    LanguageSelection,
    MaterializeMode,
    ServicePack,
    UpdatePackage,
)

logger = structlog.get_logger()

PATCH_FILE_SUFFIX = ".msp"

# Decides whether an Updates folder already carries a service pack
SlipstreamDetector = Callable[[Path, ServicePack], bool]

_RECOVERABLE = (FetchError, ExtractionError, FilesystemError)


def count_patch_files(folder: Path, suffix: str = PATCH_FILE_SUFFIX) -> int:
    """Count files in ``folder`` ending in ``suffix``, ignoring case."""
    if not folder.is_dir():
        return 0
    return sum(
        1 for path in folder.iterdir() if path.is_file() and path.suffix.lower() == suffix
    )


def patch_count_detector(folder: Path, service_pack: ServicePack) -> bool:
    """Treat a folder holding enough patch files as already slipstreamed."""
    return count_patch_files(folder) >= service_pack.threshold


class DestinationLayout:
    """Folder names of the destination tree."""

    def __init__(self, root: Path):
        self.root = root

    @property
    def sharepoint(self) -> Path:
        return self.root / "SharePoint"

    @property
    def sharepoint_updates(self) -> Path:
        return self.sharepoint / "Updates"

    @property
    def prerequisites(self) -> Path:
        return self.sharepoint / "PrerequisiteInstallerFiles"

    @property
    def office_web_apps(self) -> Path:
        return self.root / "OfficeWebApps"

    @property
    def office_web_apps_updates(self) -> Path:
        return self.office_web_apps / "Updates"

    def language(self, culture_id: str) -> Path:
        return self.root / "LanguagePacks" / culture_id

    def language_updates(self, culture_id: str) -> Path:
        return self.language(culture_id) / "Updates"


def _describe(error: Exception) -> str:
    log_path = getattr(error, "log_path", None)
    if log_path is not None:
        return f"{error} (log: {log_path})"
    return str(error)


class LayeringEngine:
    """Applies a build plan stage by stage.

    Args:
        materializer: Makes packages available in the tree
        detector: Policy deciding whether a service pack is already present
    """

    def __init__(
        self,
        materializer: Materializer,
        detector: SlipstreamDetector = patch_count_detector,
    ):
        self.materializer = materializer
        self.detector = detector

    def apply(self, plan: BuildPlan) -> BuildReport:
        """Run every stage of ``plan`` and write the manifest.

        Returns:
            Report of what was applied, skipped and failed
        """
        layout = DestinationLayout(plan.destination)
        product = plan.product.display()
        report = BuildReport(product=product, destination=plan.destination)
        for invalid in plan.invalid_selections:
            report.warn(invalid)

        self._copy_base(
            report, Stage.BASE, f"{product} base media", plan.source_path, layout.sharepoint
        )

        for package in plan.prerequisites:
            self._apply_packages(
                report,
                Stage.PREREQUISITE,
                f"Prerequisite {package.name}",
                [package],
                layout.prerequisites,
                layout.prerequisites,
                MaterializeMode.PLACE,
            )

        if plan.service_pack is not None:
            self._apply_service_pack(
                report,
                Stage.SERVICE_PACK,
                f"{product} {plan.service_pack.name}",
                plan.service_pack,
                layout.sharepoint_updates,
                plan.staging,
            )

        product_cu_applied = self._apply_cumulative_updates(
            report,
            Stage.CUMULATIVE_UPDATE,
            product,
            plan.cumulative_updates,
            layout.sharepoint_updates,
            plan.staging,
        )

        owa = plan.office_web_apps
        if owa is not None:
            owa_label = f"Office Web Apps {plan.product.year}"
            self._copy_base(
                report,
                Stage.OWA_BASE,
                f"{owa_label} base media",
                owa.source_path,
                layout.office_web_apps,
            )
            if owa.service_pack is not None:
                self._apply_service_pack(
                    report,
                    Stage.OWA_SERVICE_PACK,
                    f"{owa_label} {owa.service_pack.name}",
                    owa.service_pack,
                    layout.office_web_apps_updates,
                    plan.staging,
                )
            self._apply_cumulative_updates(
                report,
                Stage.OWA_CUMULATIVE_UPDATE,
                owa_label,
                owa.cumulative_updates,
                layout.office_web_apps_updates,
                plan.staging,
            )

        for language in plan.languages:
            self._apply_language(report, layout, plan, language, product_cu_applied)

        try:
            report.write_manifest()
        except OSError as e:
            report.warn(f"Cannot write manifest to {plan.destination}: {e}")

        logger.info(
            "build_complete",
            destination=str(plan.destination),
            applied=len(report.applied()),
            downloads=report.downloads,
            warnings=len(report.warnings),
        )
        return report

    def _copy_base(
        self, report: BuildReport, stage: Stage, component: str, source: Path, destination: Path
    ) -> None:
        if same_location(source, destination):
            report.record(stage, component, StageStatus.SKIPPED, "source is the destination")
            return
        try:
            result = mirror_copy(source, destination)
        except FilesystemError as e:
            report.warn(f"{component}: {e}")
            report.record(stage, component, StageStatus.FAILED, str(e))
            return
        report.record(
            stage,
            component,
            StageStatus.APPLIED,
            f"{result.copied} copied, {result.skipped} already present",
        )

    def _apply_packages(
        self,
        report: BuildReport,
        stage: Stage,
        component: str,
        packages: Sequence[UpdatePackage],
        destination: Path,
        staging: Path,
        mode: MaterializeMode = MaterializeMode.EXTRACT,
    ) -> bool:
        """Materialize every package of a component; True if all succeeded."""
        fetched = expanded = 0
        errors: list[str] = []
        # Companion parts are staged before the installer that reads them
        ordered = sorted(packages, key=lambda package: is_installer(Path(package.installer_name)))
        for package in ordered:
            try:
                outcome = self.materializer.materialize(package, destination, staging, mode)
            except _RECOVERABLE as e:
                message = f"{component}: {package.name}: {_describe(e)}"
                report.warn(message)
                errors.append(message)
                continue
            fetched += int(outcome.fetched)
            expanded += int(outcome.expanded)

        status = StageStatus.FAILED if errors else StageStatus.APPLIED
        detail = "; ".join(errors) if errors else f"{len(packages)} package(s)"
        report.record(stage, component, status, detail, fetched=fetched, expanded=expanded)
        return not errors

    def _apply_service_pack(
        self,
        report: BuildReport,
        stage: Stage,
        component: str,
        service_pack: ServicePack,
        updates: Path,
        staging: Path,
    ) -> None:
        if self.detector(updates, service_pack):
            logger.info(
                "service_pack_already_slipstreamed", component=component, folder=str(updates)
            )
            report.record(
                stage,
                component,
                StageStatus.SKIPPED,
                f"{updates} already holds at least {service_pack.threshold} patch files",
                already_present=True,
            )
            return
        self._apply_packages(report, stage, component, service_pack.packages, updates, staging)

    def _apply_cumulative_updates(
        self,
        report: BuildReport,
        stage: Stage,
        label: str,
        chain: Sequence[CumulativeUpdate],
        updates: Path,
        staging: Path,
    ) -> bool:
        """Layer ``chain`` in order; True if its last update was applied."""
        # No presence pre-check: newer updates supersede files in place
        applied = False
        for update in chain:
            applied = self._apply_packages(
                report, stage, f"{label} {update.name} CU", update.packages, updates, staging
            )
        return applied

    def _apply_language(
        self,
        report: BuildReport,
        layout: DestinationLayout,
        plan: BuildPlan,
        language: LanguageSelection,
        product_cu_applied: bool,
    ) -> None:
        culture_id = language.culture_id
        folder = layout.language(culture_id)
        updates = layout.language_updates(culture_id)
        # Language downloads share file names across cultures
        staging = plan.staging / culture_id

        self._apply_packages(
            report,
            Stage.LANGUAGE_PACK,
            f"Language Pack {culture_id}",
            [language.language_pack.package],
            folder,
            staging,
        )

        if language.service_pack is not None:
            self._apply_packages(
                report,
                Stage.LANGUAGE_SERVICE_PACK,
                f"Language Pack {culture_id} {language.service_pack.name}",
                language.service_pack.packages,
                updates,
                staging,
            )

        if language.cumulative_update is not None:
            self._apply_packages(
                report,
                Stage.LANGUAGE_CUMULATIVE_UPDATE,
                f"Language Pack {culture_id} {language.cumulative_update.name} CU",
                language.cumulative_update.packages,
                updates,
                staging,
            )

        if product_cu_applied and plan.cumulative_update is not None:
            self._redistribute_patches(
                report,
                f"{culture_id} patches from {plan.cumulative_update.name} CU",
                culture_id,
                layout.sharepoint_updates,
                updates,
            )

    def _redistribute_patches(
        self,
        report: BuildReport,
        component: str,
        culture_id: str,
        source: Path,
        destination: Path,
    ) -> None:
        """Copy the product update files named for ``culture_id``."""
        token = culture_id.lower()
        matches: list[Path] = []
        if source.is_dir():
            matches = [
                path
                for path in sorted(source.iterdir())
                if path.is_file() and token in path.name.lower()
            ]

        if not matches:
            report.record(
                Stage.LANGUAGE_PATCHES,
                component,
                StageStatus.SKIPPED,
                f"no files named for {culture_id} in {source}",
            )
            return

        try:
            destination.mkdir(parents=True, exist_ok=True)
            clear_readonly(destination)
            for path in matches:
                shutil.copy2(path, destination / path.name)
        except (OSError, FilesystemError) as e:
            report.warn(f"{component}: {e}")
            report.record(Stage.LANGUAGE_PATCHES, component, StageStatus.FAILED, str(e))
            return

        logger.info("language_patches_copied", culture_id=culture_id, files=len(matches))
        report.record(
            Stage.LANGUAGE_PATCHES,
            component,
            StageStatus.APPLIED,
            ", ".join(path.name for path in matches),
        )
