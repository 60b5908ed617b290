"""Base data source interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Any, Iterator, Optional
from enum import Enum
import pyarrow as pa
import sqlglot
from sqlglot import exp

from ..plan.expressions import Expression
from ..plan.partition import Partition


class DataSourceCapability(Enum):
    """Capabilities that a data source may support."""

    PARTITION_LISTING = "partition_listing"
    PARTITION_FILTER_PUSHDOWN = "partition_filter_pushdown"


class CatalogUnavailableError(Exception):
    """Partition metadata could not be fetched from a data source.

    Covers both partition listing and partition filter pushdown failures.
    """

    def __init__(self, datasource: str, table: str, cause: Optional[BaseException] = None):
        message = f"Partition metadata unavailable for {datasource}.{table}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.datasource = datasource
        self.table = table
        self.cause = cause


@dataclass
class ColumnMetadata:
    """Metadata about a column."""

    name: str
    data_type: str
    nullable: bool
    primary_key: bool = False
    is_computed: bool = False
    expression: Optional[str] = None  # Defining expression of a computed column


@dataclass
class TableMetadata:
    """Metadata about a table."""

    schema_name: str
    table_name: str
    columns: List[ColumnMetadata]
    partition_keys: List[str] = field(default_factory=list)


class DataSource(ABC):
    """Abstract base class for data sources."""

    dialect = "postgres"

    def __init__(self, name: str, config: Dict[str, Any]):
        """Initialize data source.

        Args:
            name: Unique name for this data source
            config: Configuration dictionary
        """
        self.name = name
        self.config = config
        self.connection = None
        self._connected = False

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the data source."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close connection to the data source."""
        pass

    @abstractmethod
    def get_capabilities(self) -> List[DataSourceCapability]:
        """Return list of capabilities supported by this data source."""
        pass

    @abstractmethod
    def list_schemas(self) -> List[str]:
        """List all available schemas."""
        pass

    @abstractmethod
    def list_tables(self, schema: str) -> List[str]:
        """List all tables in a schema.

        Args:
            schema: Schema name

        Returns:
            List of table names
        """
        pass

    @abstractmethod
    def get_table_metadata(self, schema: str, table: str) -> TableMetadata:
        """Get metadata for a table.

        Args:
            schema: Schema name
            table: Table name

        Returns:
            Table metadata including columns, types and partition keys
        """
        pass

    @abstractmethod
    def list_partitions(self, schema: str, table: str) -> List[Partition]:
        """List every partition of a partitioned table.

        Args:
            schema: Schema name
            table: Table name

        Returns:
            Partitions in a stable order
        """
        pass

    def push_partition_filter(
        self, schema: str, table: str, predicate: Expression
    ) -> List[Partition]:
        """Return the partitions that satisfy a partition-only predicate.

        Only called when the source declares PARTITION_FILTER_PUSHDOWN.

        Args:
            schema: Schema name
            table: Table name
            predicate: Predicate referencing partition columns only

        Returns:
            Accepted partitions in a stable order
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} does not support partition filter pushdown"
        )

    @abstractmethod
    def execute_query(self, query: str) -> Iterator[pa.RecordBatch]:
        """Execute a SQL query and return results as Arrow record batches.

        Args:
            query: SQL query string

        Returns:
            Iterator of Arrow record batches
        """
        pass

    @abstractmethod
    def get_query_schema(self, query: str) -> pa.Schema:
        """Get the schema of a query without executing it.

        Args:
            query: SQL query string

        Returns:
            Arrow schema
        """
        pass

    def render_predicate(self, predicate: Expression) -> str:
        """Render a predicate as SQL in this source's dialect.

        Table qualifiers are dropped: the predicate is evaluated against a
        single table whose alias is not visible to the source.
        """
        tree = sqlglot.parse_one(predicate.to_sql(), read="postgres")
        for column in tree.find_all(exp.Column):
            column.set("table", None)
        return tree.sql(dialect=self.dialect)

    def supports_capability(self, capability: DataSourceCapability) -> bool:
        """Check if data source supports a capability.

        Args:
            capability: Capability to check

        Returns:
            True if supported, False otherwise
        """
        return capability in self.get_capabilities()

    def supports_filter_pushdown(self) -> bool:
        """True if partition predicates can be evaluated by the source."""
        return self.supports_capability(DataSourceCapability.PARTITION_FILTER_PUSHDOWN)

    def is_connected(self) -> bool:
        """Check if data source is connected.

        Returns:
            True if connected, False otherwise
        """
        return self._connected

    def ensure_connected(self) -> None:
        """Ensure data source is connected.

        Raises:
            ConnectionError: If connection cannot be established
        """
        if not self.is_connected():
            self.connect()
            self._connected = True

    def __enter__(self):
        """Context manager entry."""
        self.ensure_connected()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
        self._connected = False
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
