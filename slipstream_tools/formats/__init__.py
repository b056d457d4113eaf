"""Parsers for the update catalog and executable version resources."""

from slipstream_tools.formats.base import FormatParser
from slipstream_tools.formats.catalog import CatalogDocument, CatalogParser
from slipstream_tools.formats.version_info import (
    FileVersionInfo,
    VersionInfoParser,
    is_executable,
)

__all__ = [
    "FormatParser",
    "CatalogDocument",
    "CatalogParser",
    "FileVersionInfo",
    "VersionInfoParser",
    "is_executable",
]
