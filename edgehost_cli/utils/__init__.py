"""Utility modules for the edge host CLI."""

from edgehost_cli.utils.inventory import INSTANCE_KIND_METAL, InventoryClient
from edgehost_cli.utils.logging import configure_logging, inventory_context

__all__ = [
    "INSTANCE_KIND_METAL",
    "InventoryClient",
    "configure_logging",
    "inventory_context",
]
