"""Slipstream Tools - build patched offline SharePoint installation sources.

This package combines base installation media with downloaded service
packs, cumulative updates and language packs into a directory tree the
product's own setup runs against unmodified.

Key modules:
- core: Catalog, plan resolution, materialization and layering
- formats: Catalog and executable version parsers
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "Slipstream Tools Team"

# Re-export commonly used types
from slipstream_tools.core.types import (
    BuildPlan,
    CumulativeUpdate,
    LanguagePack,
    Product,
    ServicePack,
    UpdatePackage,
)

__all__ = [
    "__version__",
    "__author__",
    "BuildPlan",
    "CumulativeUpdate",
    "LanguagePack",
    "Product",
    "ServicePack",
    "UpdatePackage",
]
