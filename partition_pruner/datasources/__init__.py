"""Data source connectors."""

from .base import (
    DataSource,
    DataSourceCapability,
    CatalogUnavailableError,
    ColumnMetadata,
    TableMetadata,
)
from .duckdb import DuckDBDataSource

__all__ = [
    "DataSource",
    "DataSourceCapability",
    "CatalogUnavailableError",
    "ColumnMetadata",
    "TableMetadata",
    "DuckDBDataSource",
]
