"""Build command: produce a slipstreamed installation tree."""

from __future__ import annotations

from pathlib import Path
from types import TracebackType

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from slipstream_tools.core.catalog import Catalog
from slipstream_tools.core.config import AppConfig
from slipstream_tools.core.download import Downloader
from slipstream_tools.core.errors import ConfigError, SourceNotFoundError
from slipstream_tools.core.expand import Expander
from slipstream_tools.core.layering import LayeringEngine
from slipstream_tools.core.ledger import MaterializationLedger
from slipstream_tools.core.materializer import Materializer
from slipstream_tools.core.report import BuildReport, StageStatus
from slipstream_tools.core.selection import SelectionResolver, UpdateChooser
from slipstream_tools.core.types import BuildPlan
from slipstream_tools.core.version_resolver import VersionResolver, adjust_destination

logger = structlog.get_logger()

_STATUS_STYLE = {
    StageStatus.APPLIED: "green",
    StageStatus.SKIPPED: "yellow",
    StageStatus.FAILED: "red",
}


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    debug: bool = ctx.obj["debug"]
    return config, console, verbose, debug


class _TransferProgress:
    """Drives a rich progress bar per downloaded file."""

    def __init__(self, console: Console, enabled: bool = True):
        self.enabled = enabled
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
            transient=True,
        )
        self._tasks: dict[str, TaskID] = {}

    def __call__(self, name: str, downloaded: int, total: int | None) -> None:
        if not self.enabled:
            return
        if name not in self._tasks:
            self._tasks[name] = self._progress.add_task(name, total=total)
        self._progress.update(self._tasks[name], completed=downloaded, total=total)

    def __enter__(self) -> _TransferProgress:
        if self.enabled:
            self._progress.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.enabled:
            self._progress.stop()


def _prompt_chooser(console: Console) -> UpdateChooser:
    """Ask the operator to pick one of the listed cumulative updates.

    Answers other than a listed name, its number or a blank line are
    asked again.
    """

    def choose(names: list[str]) -> str | None:
        by_name = {name.lower(): name for name in names}
        console.print("[cyan]Available cumulative updates:[/cyan]")
        for index, name in enumerate(names, 1):
            console.print(f"  {index}. {name}", markup=False)

        while True:
            answer = click.prompt(
                "Cumulative update to slipstream (name or number, blank for none)",
                default="",
                show_default=False,
                err=True,
            ).strip()
            if not answer:
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(names):
                return names[int(answer) - 1]
            if answer.lower() in by_name:
                return by_name[answer.lower()]
            console.print(
                f"{answer!r} is not one of the listed updates", style="red", markup=False
            )

    return choose


def _show_plan(plan: BuildPlan, console: Console) -> None:
    table = Table(title="Build Plan")
    table.add_column("Item", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Product", f"{plan.product.display()} ({plan.product.key})")
    table.add_row("Source", str(plan.source_path))
    table.add_row("Destination", str(plan.destination))
    table.add_row("Update location", str(plan.staging))
    table.add_row("Prerequisites", str(len(plan.prerequisites)))
    table.add_row("Service pack", plan.service_pack.name if plan.service_pack else "None")
    table.add_row(
        "Cumulative update",
        " + ".join(update.name for update in plan.cumulative_updates) or "None",
    )
    table.add_row("Languages", ", ".join(plan.language_ids) or "None")
    if plan.office_web_apps is not None:
        table.add_row("Office Web Apps", str(plan.office_web_apps.source_path))
    console.print(table)


def _show_report(report: BuildReport, console: Console, output_format: str) -> None:
    if output_format == "json":
        # Use regular print for JSON to avoid Rich formatting
        print(report.model_dump_json(indent=2))
        return

    if output_format == "plain":
        for record in report.stages:
            console.print(f"{record.status.value:8} {record.component}", markup=False)
        for warning in report.warnings:
            console.print(f"WARNING  {warning}", markup=False)
        console.print(f"Downloads: {report.downloads}", markup=False)
        return

    table = Table(title="Slipstream Report")
    table.add_column("Stage", style="cyan")
    table.add_column("Component")
    table.add_column("Status")
    table.add_column("Downloads", justify="right")
    table.add_column("Detail", style="dim")
    for record in report.stages:
        style = _STATUS_STYLE[record.status]
        table.add_row(
            record.stage.value,
            record.component,
            f"[{style}]{record.status.value}[/{style}]",
            str(record.fetched),
            record.detail or "",
        )
    console.print(table)

    if report.has_warnings:
        console.print(Panel.fit(
            "\n".join(report.warnings)
            + "\n\nThe destination tree may be incomplete. Re-run the build to complete it.",
            title="[yellow]Completed with warnings[/yellow]",
        ))
    else:
        console.print(Panel.fit(
            f"[green]Slipstreamed to {report.destination}[/green]\n"
            f"Downloads: {report.downloads}",
            title="Success",
        ))


@click.command("build")
@click.option(
    "--source",
    "-s",
    type=click.Path(file_okay=False, path_type=Path),
    help="Base installation media (probes media roots if omitted)",
)
@click.option(
    "--destination",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    help="Destination tree (default from configuration)",
)
@click.option(
    "--update-location",
    "-u",
    type=click.Path(file_okay=False, path_type=Path),
    help="Folder downloads are kept in (default: <destination>/Updates)",
)
@click.option(
    "--get-prerequisites",
    is_flag=True,
    help="Also download the prerequisite installer files",
)
@click.option(
    "--cumulative-update",
    "cumulative_update",
    type=str,
    help="Cumulative update name, e.g. \"August 2014\"",
)
@click.option(
    "--owa-source",
    type=click.Path(file_okay=False, path_type=Path),
    help="Office Web Apps installation media",
)
@click.option(
    "--language",
    "-l",
    "languages",
    multiple=True,
    help="Language pack culture id, e.g. fr-fr (repeatable or comma separated)",
)
@click.option(
    "--no-prompt",
    is_flag=True,
    help="Never ask for a cumulative update interactively",
)
@click.pass_context
def build(
    ctx: click.Context,
    source: Path | None,
    destination: Path | None,
    update_location: Path | None,
    get_prerequisites: bool,
    cumulative_update: str | None,
    owa_source: Path | None,
    languages: tuple[str, ...],
    no_prompt: bool,
) -> None:
    """Slipstream updates into an offline installation tree."""
    config, console, _verbose, _debug = _get_context_objects(ctx)
    rich_output = config.output_format == "rich"

    try:
        catalog = Catalog.load(config.catalog_path)
        source_path, product = VersionResolver(catalog, config.media_roots).resolve(
            [source] if source else []
        )
    except (ConfigError, SourceNotFoundError) as e:
        logger.error("build_aborted", error=str(e))
        raise click.ClickException(str(e)) from e

    destination = adjust_destination(
        destination or config.default_destination, config.default_destination, product
    )

    chooser = None
    if not no_prompt and config.output_format != "json":
        # Prompts go to stderr so stdout carries only the report
        chooser = _prompt_chooser(Console(stderr=True, no_color=not rich_output))
    plan = SelectionResolver(catalog, chooser).build_plan(
        product,
        source_path,
        destination,
        staging=update_location,
        requested_update=cumulative_update,
        requested_languages=languages,
        get_prerequisites=get_prerequisites,
        owa_source_path=owa_source,
    )
    if rich_output:
        _show_plan(plan, console)

    ledger = MaterializationLedger.load(plan.destination)
    with (
        _TransferProgress(console, enabled=rich_output) as progress,
        Downloader(config.fetch, progress=progress) as downloader,
    ):
        materializer = Materializer(downloader, Expander(config.expand), ledger)
        report = LayeringEngine(materializer).apply(plan)

    _show_report(report, console, config.output_format)
