"""Manifest loading."""
from .inventory import ResourceInventory

__all__ = ["ResourceInventory"]
