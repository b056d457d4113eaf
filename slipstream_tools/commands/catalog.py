"""Catalog commands for listing known products and updates."""

from __future__ import annotations

import json
from typing import Any

import click
import structlog
from rich.console import Console
from rich.table import Table

from slipstream_tools.core.catalog import Catalog
from slipstream_tools.core.config import AppConfig
from slipstream_tools.core.errors import ConfigError
from slipstream_tools.core.types import Product, UpdateCollection

logger = structlog.get_logger()


def _load(ctx: click.Context) -> tuple[Catalog, AppConfig, Console]:
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    try:
        catalog = Catalog.load(config.catalog_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    return catalog, config, console


def _product(catalog: Catalog, key: str) -> Product:
    product = catalog.get_product(key)
    if product is None:
        raise click.ClickException(
            f"Unknown product {key}. Known products: {', '.join(catalog.product_keys())}"
        )
    return product


def _output_json(data: Any) -> None:
    """Output data as JSON."""
    print(json.dumps(data, indent=2, default=str))


@click.group("catalog")
def catalog_group() -> None:
    """Inspect the update catalog."""
    pass


@catalog_group.command("products")
@click.pass_context
def list_products(ctx: click.Context) -> None:
    """List products and their update counts."""
    catalog, config, console = _load(ctx)

    if config.output_format == "json":
        _output_json([
            {
                "key": p.key,
                "year": p.year,
                "version_prefix": p.version_prefix,
                "service_packs": [sp.name for sp in p.service_packs],
                "cumulative_updates": len(p.cumulative_updates),
                "language_packs": len(p.language_packs),
                "office_web_apps": p.office_web_apps is not None,
            }
            for p in catalog.products
        ])
        return

    table = Table(title="Catalog Products", show_header=True)
    table.add_column("Product", style="cyan")
    table.add_column("Year")
    table.add_column("Version", justify="right")
    table.add_column("Service Packs")
    table.add_column("CUs", justify="right")
    table.add_column("Languages", justify="right")
    table.add_column("Office Web Apps")
    for p in catalog.products:
        table.add_row(
            p.key,
            p.year,
            p.version_prefix,
            ", ".join(sp.name for sp in p.service_packs) or "-",
            str(len(p.cumulative_updates)),
            str(len(p.language_packs)),
            "yes" if p.office_web_apps is not None else "no",
        )
    console.print(table)


@catalog_group.command("updates")
@click.argument("product_key")
@click.option("--owa", is_flag=True, help="List Office Web Apps updates instead")
@click.pass_context
def list_updates(ctx: click.Context, product_key: str, owa: bool) -> None:
    """List the cumulative updates of PRODUCT_KEY in catalog order."""
    catalog, config, console = _load(ctx)
    product = _product(catalog, product_key)

    collection: UpdateCollection = product
    if owa:
        if product.office_web_apps is None:
            raise click.ClickException(f"{product.key} has no Office Web Apps updates")
        collection = product.office_web_apps

    if config.output_format == "json":
        _output_json([
            {
                "name": update.name,
                "service_pack": update.service_pack,
                "requires": update.requires,
                "packages": [package.name for package in update.packages],
            }
            for update in collection.cumulative_updates
        ])
        return

    title = f"{'Office Web Apps' if owa else product.display()} Cumulative Updates"
    table = Table(title=title, show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Service Pack")
    table.add_column("Requires")
    table.add_column("Packages", justify="right")
    for update in collection.cumulative_updates:
        table.add_row(
            update.name,
            update.service_pack or "-",
            update.requires or "-",
            str(len(update.packages)),
        )
    console.print(table)


@catalog_group.command("languages")
@click.argument("product_key")
@click.pass_context
def list_languages(ctx: click.Context, product_key: str) -> None:
    """List the language packs of PRODUCT_KEY."""
    catalog, config, console = _load(ctx)
    product = _product(catalog, product_key)

    if config.output_format == "json":
        _output_json([
            {
                "culture_id": lp.culture_id,
                "service_packs": [sp.name for sp in lp.service_packs],
                "cumulative_updates": lp.cumulative_update_names(),
            }
            for lp in product.language_packs
        ])
        return

    table = Table(title=f"{product.display()} Language Packs", show_header=True)
    table.add_column("Culture", style="cyan")
    table.add_column("Service Packs")
    table.add_column("Cumulative Updates")
    for lp in product.language_packs:
        table.add_row(
            lp.culture_id,
            ", ".join(sp.name for sp in lp.service_packs) or "-",
            ", ".join(lp.cumulative_update_names()) or "-",
        )
    console.print(table)
