"""
Element catalog module.

Exports:
- ElementCatalog: upsert and read persisted elements and sections
"""

from .catalog import ElementCatalog

__all__ = [
    "ElementCatalog",
]
