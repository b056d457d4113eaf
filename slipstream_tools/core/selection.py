"""Turn an operator's request into a validated build plan."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import structlog

from slipstream_tools.core.catalog import Catalog
from slipstream_tools.core.errors import SelectionInvalid
from slipstream_tools.core.types import (
    BuildPlan,
    CumulativeUpdate,
    LanguageSelection,
    OfficeWebAppsPlan,
    Product,
    ServicePack,
    UpdateCollection,
)

logger = structlog.get_logger()

# The catalog may list several service packs; builds always target this one
DEFAULT_SERVICE_PACK = "SP1"

# Picks a cumulative update from the valid names, or None for no update
UpdateChooser = Callable[[list[str]], str | None]


def normalize_languages(languages: Sequence[str]) -> list[str]:
    """Lower-case, split comma lists and drop duplicates, keeping order."""
    result: list[str] = []
    for entry in languages:
        for culture_id in entry.split(","):
            culture_id = culture_id.strip().lower()
            if culture_id and culture_id not in result:
                result.append(culture_id)
    return result


def resolve_update_chain(
    collection: UpdateCollection, update: CumulativeUpdate
) -> tuple[CumulativeUpdate, ...]:
    """Required baselines first, then ``update`` itself."""
    chain = [update]
    seen = {update.name}
    current = update
    while current.requires is not None and current.requires not in seen:
        required = collection.find_cumulative_update(current.requires)
        if required is None:
            break
        chain.insert(0, required)
        seen.add(required.name)
        current = required
    return tuple(chain)


class SelectionResolver:
    """Validates requested updates and languages against the catalog."""

    def __init__(self, catalog: Catalog, chooser: UpdateChooser | None = None):
        """Initialize resolver.

        Args:
            catalog: Loaded update catalog
            chooser: Asked to pick a cumulative update when none valid was
                requested; without one the plan carries no update
        """
        self.catalog = catalog
        self.chooser = chooser
        self.invalid: list[str] = []

    def _reject(self, error: SelectionInvalid) -> None:
        logger.warning("selection_invalid", kind=error.kind, name=error.name, error=str(error))
        self.invalid.append(str(error))

    def select_service_pack(self, product: Product) -> ServicePack | None:
        service_pack = self.catalog.find_service_pack(product, DEFAULT_SERVICE_PACK)
        if service_pack is None:
            logger.info("service_pack_unavailable", product=product.key)
        return service_pack

    def select_cumulative_update(
        self, product: Product, requested: str | None
    ) -> CumulativeUpdate | None:
        names = self.catalog.list_cumulative_updates(product)
        if not names:
            logger.info("cumulative_updates_unavailable", product=product.key)
            return None

        if requested:
            update = self.catalog.find_cumulative_update(product, requested)
            if update is not None:
                return update
            self._reject(
                SelectionInvalid(
                    f"Cumulative update '{requested}' is not available for {product.key}",
                    kind="cumulative_update",
                    name=requested,
                )
            )

        if self.chooser is None:
            return None

        chosen = self.chooser(names)
        if chosen is None:
            logger.info("cumulative_update_declined", product=product.key)
            return None
        update = self.catalog.find_cumulative_update(product, chosen)
        if update is None:
            self._reject(
                SelectionInvalid(
                    f"Cumulative update '{chosen}' is not available for {product.key}",
                    kind="cumulative_update",
                    name=chosen,
                )
            )
        return update

    def select_languages(
        self,
        product: Product,
        requested: Sequence[str],
        service_pack: ServicePack | None,
        cumulative_update: CumulativeUpdate | None,
    ) -> tuple[LanguageSelection, ...]:
        selections: list[LanguageSelection] = []
        for culture_id in normalize_languages(requested):
            language_pack = self.catalog.find_language_pack(product, culture_id)
            if language_pack is None:
                self._reject(
                    SelectionInvalid(
                        f"Language '{culture_id}' is not available for {product.key}",
                        kind="language",
                        name=culture_id,
                    )
                )
                continue

            language_sp = None
            if service_pack is not None:
                language_sp = language_pack.find_service_pack(service_pack.name)
            language_cu = None
            if cumulative_update is not None:
                language_cu = language_pack.find_cumulative_update(cumulative_update.name)

            selections.append(
                LanguageSelection(
                    culture_id=language_pack.culture_id,
                    language_pack=language_pack,
                    service_pack=language_sp,
                    cumulative_update=language_cu,
                )
            )
        return tuple(selections)

    def select_office_web_apps(
        self,
        product: Product,
        source_path: Path | None,
        service_pack: ServicePack | None,
        cumulative_update: CumulativeUpdate | None,
    ) -> OfficeWebAppsPlan | None:
        if source_path is None:
            return None
        catalog = product.office_web_apps
        if catalog is None:
            logger.warning("office_web_apps_unavailable", product=product.key)
            return None

        # Same service pack identity as SharePoint, never chosen separately
        owa_sp = catalog.find_service_pack(service_pack.name) if service_pack else None

        owa_chain: tuple[CumulativeUpdate, ...] = ()
        if cumulative_update is not None:
            owa_cu = catalog.find_cumulative_update(cumulative_update.name)
            if owa_cu is None:
                logger.info(
                    "office_web_apps_update_unmatched", cumulative_update=cumulative_update.name
                )
            else:
                owa_chain = resolve_update_chain(catalog, owa_cu)

        return OfficeWebAppsPlan(
            source_path=source_path,
            service_pack=owa_sp,
            cumulative_updates=owa_chain,
        )

    def build_plan(
        self,
        product: Product,
        source_path: Path,
        destination: Path,
        staging: Path | None = None,
        requested_update: str | None = None,
        requested_languages: Sequence[str] = (),
        get_prerequisites: bool = False,
        owa_source_path: Path | None = None,
    ) -> BuildPlan:
        """Validate the request and produce the build plan.

        Invalid update or language names never fail the plan; they are
        logged and listed in ``BuildPlan.invalid_selections``.
        """
        self.invalid = []

        service_pack = self.select_service_pack(product)
        cumulative_update = self.select_cumulative_update(product, requested_update)
        chain = resolve_update_chain(product, cumulative_update) if cumulative_update else ()

        plan = BuildPlan(
            product=product,
            source_path=source_path,
            destination=destination,
            staging=staging or destination / "Updates",
            prerequisites=product.prerequisites if get_prerequisites else (),
            service_pack=service_pack,
            cumulative_updates=chain,
            languages=self.select_languages(
                product, requested_languages, service_pack, cumulative_update
            ),
            office_web_apps=self.select_office_web_apps(
                product, owa_source_path, service_pack, cumulative_update
            ),
            invalid_selections=tuple(self.invalid),
        )

        logger.info(
            "build_plan_ready",
            product=product.key,
            service_pack=service_pack.name if service_pack else None,
            cumulative_updates=[update.name for update in chain],
            languages=plan.language_ids,
            office_web_apps=plan.office_web_apps is not None,
            invalid=len(plan.invalid_selections),
        )
        return plan
