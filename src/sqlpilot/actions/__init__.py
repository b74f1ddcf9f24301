"""
actions/__init__.py — SQLPilot Action Catalog
"""

from sqlpilot.actions.catalog import ActionCatalog, ActionSpec, default_catalog

__all__ = ["ActionCatalog", "ActionSpec", "default_catalog"]
