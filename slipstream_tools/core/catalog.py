"""Read-only update catalog."""

from __future__ import annotations

from pathlib import Path

import structlog

from slipstream_tools.core.errors import ConfigError
from slipstream_tools.core.types import (
    CumulativeUpdate,
    LanguagePack,
    Product,
    ServicePack,
)
from slipstream_tools.formats.catalog import CatalogDocument, CatalogParser

logger = structlog.get_logger()

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "catalog.xml"


class Catalog:
    """Lookups over the products, updates and language packs of a catalog.

    The catalog is parsed once and never modified afterwards.
    """

    def __init__(self, document: CatalogDocument):
        self._products: dict[str, Product] = {p.key: p for p in document.products}
        self._by_prefix: dict[str, Product] = {}
        for product in document.products:
            if product.version_prefix in self._by_prefix:
                raise ConfigError(
                    f"Version prefix {product.version_prefix} is mapped to both "
                    f"{self._by_prefix[product.version_prefix].key} and {product.key}"
                )
            self._by_prefix[product.version_prefix] = product

    @classmethod
    def load(cls, path: Path | None = None) -> Catalog:
        """Load and validate a catalog file.

        Args:
            path: Catalog XML file, defaults to the bundled catalog

        Returns:
            Loaded catalog

        Raises:
            ConfigError: If the file is missing or malformed
        """
        path = path or DEFAULT_CATALOG_PATH
        if not path.is_file():
            raise ConfigError(f"Catalog not found: {path}", path=path)

        try:
            document = CatalogParser().parse_file(path)
        except ValueError as e:
            raise ConfigError(f"Invalid catalog {path}: {e}", path=path) from e

        catalog = cls(document)
        logger.info("catalog_loaded", path=str(path), products=catalog.product_keys())
        return catalog

    @property
    def products(self) -> list[Product]:
        return list(self._products.values())

    def product_keys(self) -> list[str]:
        return list(self._products)

    def get_product(self, key: str) -> Product | None:
        return self._products.get(key)

    def lookup_product(self, version_prefix: str | int) -> Product | None:
        """Map the major version of the installation media to a product.

        Args:
            version_prefix: Major version, e.g. "15", 15 or "15.0.4420.1017"

        Returns:
            Matching product, or None if the version is not in the catalog
        """
        major = str(version_prefix).split(".", 1)[0].strip()
        return self._by_prefix.get(major)

    def list_cumulative_updates(self, product: Product) -> list[str]:
        return product.cumulative_update_names()

    def find_service_pack(self, product: Product, name: str) -> ServicePack | None:
        return product.find_service_pack(name)

    def find_cumulative_update(
        self, product: Product, name: str
    ) -> CumulativeUpdate | None:
        return product.find_cumulative_update(name)

    def find_language_pack(self, product: Product, culture_id: str) -> LanguagePack | None:
        return product.find_language_pack(culture_id)
