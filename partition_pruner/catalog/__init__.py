"""Catalog system for managing metadata across data sources."""

from .catalog import Catalog
from .functions import FunctionDefinition, FunctionRegistry
from .schema import Schema, Table, Column, InconsistentPartitionSpecError

__all__ = [
    "Catalog",
    "FunctionDefinition",
    "FunctionRegistry",
    "Schema",
    "Table",
    "Column",
    "InconsistentPartitionSpecError",
]
