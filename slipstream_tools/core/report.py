"""Build report and slipstream manifest."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()

MANIFEST_FILENAME = "_SLIPSTREAMED.txt"


class Stage(StrEnum):
    """Layering stages in the order they run."""
    BASE = "base"
    PREREQUISITE = "prerequisite"
    SERVICE_PACK = "service_pack"
    CUMULATIVE_UPDATE = "cumulative_update"
    OWA_BASE = "owa_base"
    OWA_SERVICE_PACK = "owa_service_pack"
    OWA_CUMULATIVE_UPDATE = "owa_cumulative_update"
    LANGUAGE_PACK = "language_pack"
    LANGUAGE_SERVICE_PACK = "language_service_pack"
    LANGUAGE_CUMULATIVE_UPDATE = "language_cumulative_update"
    LANGUAGE_PATCHES = "language_patches"


class StageStatus(StrEnum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


class StageRecord(BaseModel):
    """What happened to one component during the run."""
    stage: Stage
    component: str = Field(..., description="Human readable component name")
    status: StageStatus
    detail: str | None = None
    already_present: bool = Field(
        default=False, description="Skipped because the tree already carries it"
    )
    fetched: int = Field(default=0, description="Packages downloaded for this component")
    expanded: int = Field(default=0, description="Packages expanded for this component")


class BuildReport(BaseModel):
    """Accumulates everything a run applied, skipped or failed."""
    product: str
    destination: Path
    started: datetime = Field(default_factory=lambda: datetime.now(UTC))
    stages: list[StageRecord] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def downloads(self) -> int:
        return sum(record.fetched for record in self.stages)

    def record(
        self,
        stage: Stage,
        component: str,
        status: StageStatus,
        detail: str | None = None,
        fetched: int = 0,
        expanded: int = 0,
        already_present: bool = False,
    ) -> StageRecord:
        entry = StageRecord(
            stage=stage,
            component=component,
            status=status,
            detail=detail,
            already_present=already_present,
            fetched=fetched,
            expanded=expanded,
        )
        self.stages.append(entry)
        logger.debug("stage_recorded", stage=stage.value, component=component, status=status.value)
        return entry

    def warn(self, message: str) -> None:
        logger.warning("build_warning", message=message)
        self.warnings.append(message)

    def applied(self, stage: Stage | None = None) -> list[StageRecord]:
        return [
            record
            for record in self.stages
            if record.status == StageStatus.APPLIED and (stage is None or record.stage == stage)
        ]

    def applied_components(self) -> list[str]:
        return [record.component for record in self.applied()]

    def was_applied(self, stage: Stage) -> bool:
        return bool(self.applied(stage))

    def manifest_text(self) -> str:
        lines = [
            f"This media source directory has been slipstreamed with {self.product} "
            "and the following updates:",
            "",
        ]
        components = self.applied_components()
        lines.extend(f"- {component}" for component in components)
        if not components:
            lines.append("- (nothing was applied)")

        present = [record.component for record in self.stages if record.already_present]
        if present:
            lines += ["", "Already slipstreamed before this run:", ""]
            lines.extend(f"- {component}" for component in present)

        if self.warnings:
            lines += [
                "",
                "WARNING: the build finished with errors. The tree may be incomplete;",
                "re-run the build against the same destination to complete it.",
                "",
            ]
            lines.extend(f"! {warning}" for warning in self.warnings)

        lines += ["", f"Built {self.started.isoformat(timespec='seconds')}", ""]
        return "\n".join(lines)

    def write_manifest(self) -> Path:
        """Write the human readable manifest to the destination root."""
        path = self.destination / MANIFEST_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.manifest_text(), encoding="utf-8")
        logger.info("manifest_written", path=str(path), components=len(self.applied()))
        return path
