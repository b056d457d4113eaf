"""Update catalog parser.

The catalog is an XML document listing, per product, the prerequisite
downloads, service packs, cumulative updates, language packs and the
Office Web Apps companion updates. XML comments are discarded by the
parser, so commented-out entries never reach the model.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import BinaryIO

import structlog
from pydantic import BaseModel, Field

from slipstream_tools.core.types import (
    CumulativeUpdate,
    LanguagePack,
    OfficeWebAppsCatalog,
    Product,
    ServicePack,
    UpdatePackage,
)
from slipstream_tools.formats.base import FormatParser

logger = structlog.get_logger()


class CatalogDocument(BaseModel):
    """Parsed catalog contents."""
    products: tuple[Product, ...] = Field(default=())


def _required(element: ET.Element, attribute: str) -> str:
    value = element.get(attribute)
    if value is None or not value.strip():
        raise ValueError(f"<{element.tag}> is missing required attribute '{attribute}'")
    return value.strip()


def _optional(element: ET.Element, attribute: str) -> str | None:
    value = element.get(attribute)
    if value is None or not value.strip():
        return None
    return value.strip()


class CatalogParser(FormatParser[CatalogDocument]):
    """Parser for the XML update catalog."""

    def parse(self, data: bytes | BinaryIO) -> CatalogDocument:
        raw = self._read_all(data)
        try:
            root = ET.fromstring(raw)
        except ET.ParseError as e:
            raise ValueError(f"Catalog is not valid XML: {e}") from e

        if root.tag != "Products":
            raise ValueError(f"Unexpected catalog root element <{root.tag}>")

        products: list[Product] = []
        seen: set[str] = set()
        for element in root.findall("Product"):
            product = self._parse_product(element)
            if product.key in seen:
                raise ValueError(f"Duplicate product '{product.key}' in catalog")
            seen.add(product.key)
            products.append(product)

        logger.debug("catalog_parsed", products=[p.key for p in products])
        return CatalogDocument(products=tuple(products))

    def _parse_product(self, element: ET.Element) -> Product:
        key = _required(element, "Name")
        prerequisites = tuple(
            self._parse_package(child, key)
            for child in element.findall("PrerequisitePackages/PrerequisitePackage")
        )
        service_packs = self._parse_service_packs(element, key)
        cumulative_updates = self._parse_cumulative_updates(element, key)

        language_packs = tuple(
            self._parse_language_pack(child, key)
            for child in element.findall("LanguagePacks/LanguagePack")
        )

        owa_element = element.find("OfficeWebApps")
        office_web_apps = None
        if owa_element is not None:
            office_web_apps = OfficeWebAppsCatalog(
                service_packs=self._parse_service_packs(owa_element, key),
                cumulative_updates=self._parse_cumulative_updates(owa_element, key),
            )

        return Product(
            key=key,
            year=_required(element, "Year"),
            version_prefix=_required(element, "VersionPrefix"),
            prerequisites=prerequisites,
            service_packs=service_packs,
            cumulative_updates=cumulative_updates,
            language_packs=language_packs,
            office_web_apps=office_web_apps,
        )

    def _parse_package(
        self,
        element: ET.Element,
        product: str,
        service_pack: str | None = None,
        name: str | None = None,
    ) -> UpdatePackage:
        return UpdatePackage(
            name=name or _required(element, "Name"),
            url=_required(element, "Url"),
            expanded_file=_optional(element, "ExpandedFile"),
            product=product,
            service_pack=_optional(element, "ServicePack") or service_pack,
        )

    def _parse_group_packages(
        self, element: ET.Element, product: str, service_pack: str | None
    ) -> tuple[UpdatePackage, ...]:
        """Packages of a service pack or cumulative update.

        A group either lists ``<Package>`` children or, as shorthand for a
        single download, carries ``Url`` itself.
        """
        packages = [
            self._parse_package(child, product, service_pack)
            for child in element.findall("Package")
        ]
        if element.get("Url"):
            packages.insert(
                0,
                self._parse_package(
                    element, product, service_pack, name=_required(element, "Name")
                ),
            )
        if not packages:
            raise ValueError(
                f"<{element.tag} Name=\"{element.get('Name')}\"> declares no packages"
            )
        return tuple(packages)

    def _parse_service_packs(
        self, element: ET.Element, product: str, path: str = "ServicePacks/ServicePack"
    ) -> tuple[ServicePack, ...]:
        service_packs = []
        for child in element.findall(path):
            name = _required(child, "Name")
            threshold_text = child.get("Threshold", "1")
            try:
                threshold = int(threshold_text)
            except ValueError as e:
                raise ValueError(
                    f"Service pack '{name}' has a non-numeric Threshold: {threshold_text}"
                ) from e
            service_packs.append(
                ServicePack(
                    name=name,
                    threshold=threshold,
                    packages=self._parse_group_packages(child, product, name),
                )
            )
        return tuple(service_packs)

    def _parse_cumulative_updates(
        self,
        element: ET.Element,
        product: str,
        path: str = "CumulativeUpdates/CumulativeUpdate",
    ) -> tuple[CumulativeUpdate, ...]:
        updates = []
        for child in element.findall(path):
            service_pack = _optional(child, "ServicePack")
            updates.append(
                CumulativeUpdate(
                    name=_required(child, "Name"),
                    service_pack=service_pack,
                    requires=_optional(child, "Requires"),
                    packages=self._parse_group_packages(child, product, service_pack),
                )
            )

        names = {update.name for update in updates}
        for update in updates:
            if update.requires is None:
                continue
            if update.requires == update.name or update.requires not in names:
                raise ValueError(
                    f"Cumulative update '{update.name}' requires unknown "
                    f"update '{update.requires}'"
                )
        return tuple(updates)

    def _parse_language_pack(self, element: ET.Element, product: str) -> LanguagePack:
        culture_id = _required(element, "Name").lower()
        package = UpdatePackage(
            name=f"Language Pack {culture_id}",
            url=_required(element, "Url"),
            expanded_file=_optional(element, "ExpandedFile"),
            product=product,
        )
        return LanguagePack(
            culture_id=culture_id,
            package=package,
            service_packs=self._parse_service_packs(element, product, path="ServicePack"),
            cumulative_updates=self._parse_cumulative_updates(
                element, product, path="CumulativeUpdate"
            ),
        )
