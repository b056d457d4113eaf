"""CLI command implementations for slipstream_tools.

This module contains all command-line interface implementations:
- build: Slipstream updates into an offline installation tree
- catalog: Inspect the update catalog
"""

from slipstream_tools.commands.build import build
from slipstream_tools.commands.catalog import catalog_group

__all__ = ["build", "catalog_group"]
