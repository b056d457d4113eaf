"""Core functionality for slipstream_tools.

This module provides the build pipeline:
- Catalog lookups and type definitions
- Installation media and selection resolution
- Download, expansion and layering of update packages
- Build reporting
"""

from slipstream_tools.core.errors import (
    ConfigError,
    ExtractionError,
    FetchError,
    FilesystemError,
    SelectionInvalid,
    SlipstreamError,
    SourceNotFoundError,
)
from slipstream_tools.core.types import (
    BuildPlan,
    CumulativeUpdate,
    LanguagePack,
    LanguageSelection,
    OfficeWebAppsPlan,
    Product,
    ServicePack,
    UpdatePackage,
)

__all__ = [
    # Errors
    "SlipstreamError",
    "ConfigError",
    "SourceNotFoundError",
    "SelectionInvalid",
    "FetchError",
    "ExtractionError",
    "FilesystemError",
    # Types
    "BuildPlan",
    "CumulativeUpdate",
    "LanguagePack",
    "LanguageSelection",
    "OfficeWebAppsPlan",
    "Product",
    "ServicePack",
    "UpdatePackage",
]
