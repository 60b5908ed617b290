"""DuckDB data source implementation."""

from typing import List, Dict, Any, Iterator, Optional
import pyarrow as pa
import duckdb
import logging

from ..plan.expressions import Expression
from ..plan.partition import Partition
from .base import (
    DataSource,
    DataSourceCapability,
    TableMetadata,
    ColumnMetadata,
)

logger = logging.getLogger(__name__)


class DuckDBDataSource(DataSource):
    """DuckDB data source connector.

    DuckDB has no native partition metadata, so partitioned tables are
    declared in the source config and their partitions are the distinct
    combinations of partition column values present in the table.
    """

    dialect = "duckdb"

    def __init__(self, name: str, config: Dict[str, Any]):
        """Initialize DuckDB data source.

        Config should include:
            - path: Path to DuckDB database file (or :memory: for in-memory)
            - read_only: Whether to open in read-only mode (default: True
              for database files, False for :memory:)
            - partitioned_tables: Mapping of "schema.table" (or "table" for
              the main schema) to {"partition_keys": [...],
              "computed_columns": [...] or {name: expression}}
            - partition_filter_pushdown: Evaluate partition predicates in
              DuckDB instead of listing every partition (default: False)
            - capabilities: Optional list of capability names
        """
        super().__init__(name, config)
        self.connection = None
        self.db_path = config.get("path", ":memory:")
        # An in-memory database cannot be opened read-only
        self.read_only = config.get("read_only", self.db_path != ":memory:")
        self.partitioned_tables = self._normalize_partitioned_tables(
            config.get("partitioned_tables") or {}
        )
        self.capabilities = self._resolve_capabilities(config)

    def _normalize_partitioned_tables(
        self, raw: Dict[str, Dict[str, Any]]
    ) -> Dict[str, Dict[str, Any]]:
        """Key table declarations by lower-case "schema.table"."""
        normalized = {}
        for table_ref, spec in raw.items():
            key = table_ref.lower()
            if "." not in key:
                key = f"main.{key}"
            normalized[key] = spec or {}
        return normalized

    def _resolve_capabilities(self, config: Dict[str, Any]) -> List[DataSourceCapability]:
        capabilities = [DataSourceCapability.PARTITION_LISTING]
        names = [str(name).lower() for name in config.get("capabilities", [])]
        pushdown = config.get("partition_filter_pushdown", False)
        if pushdown or DataSourceCapability.PARTITION_FILTER_PUSHDOWN.value in names:
            capabilities.append(DataSourceCapability.PARTITION_FILTER_PUSHDOWN)
        return capabilities

    def connect(self) -> None:
        """Establish connection to DuckDB."""
        logger.info(f"Connecting to DuckDB at '{self.db_path}'")
        self.connection = duckdb.connect(self.db_path, read_only=self.read_only)
        self._connected = True
        logger.info(f"Successfully connected to DuckDB: {self.name}")

    def disconnect(self) -> None:
        """Close DuckDB connection."""
        if self.connection:
            self.connection.close()
            logger.info(f"Disconnected from DuckDB: {self.name}")
            self.connection = None
            self._connected = False

    def get_capabilities(self) -> List[DataSourceCapability]:
        return list(self.capabilities)

    def list_schemas(self) -> List[str]:
        """List available schemas."""
        result = self.connection.execute(
            """
            SELECT DISTINCT schema_name
            FROM information_schema.schemata
            WHERE catalog_name = current_database()
            ORDER BY schema_name
            """
        ).fetchall()
        schemas = []
        for row in result:
            schemas.append(row[0])
        return schemas

    def list_tables(self, schema: str) -> List[str]:
        """List tables and views in a schema."""
        result = self.connection.execute(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = ?
              AND table_catalog = current_database()
              AND table_type IN ('BASE TABLE', 'VIEW')
            ORDER BY table_name
            """,
            [schema],
        ).fetchall()
        tables = []
        for row in result:
            tables.append(row[0])
        return tables

    def get_table_metadata(self, schema: str, table: str) -> TableMetadata:
        """Get table metadata, including declared partition keys."""
        result = self.connection.execute(
            """
            SELECT
                column_name,
                data_type,
                is_nullable
            FROM information_schema.columns
            WHERE table_schema = ? AND table_name = ?
              AND table_catalog = current_database()
            ORDER BY ordinal_position
            """,
            [schema, table],
        ).fetchall()

        spec = self._table_spec(schema, table)
        computed = self._computed_columns(spec)

        columns = []
        for row in result:
            name = row[0]
            columns.append(
                ColumnMetadata(
                    name=name,
                    data_type=row[1],
                    nullable=row[2] == "YES",
                    is_computed=name.lower() in computed,
                    expression=computed.get(name.lower()),
                )
            )

        return TableMetadata(
            schema_name=schema,
            table_name=table,
            columns=columns,
            partition_keys=list(spec.get("partition_keys", [])),
        )

    def _table_spec(self, schema: str, table: str) -> Dict[str, Any]:
        return self.partitioned_tables.get(f"{schema}.{table}".lower(), {})

    def _computed_columns(self, spec: Dict[str, Any]) -> Dict[str, Optional[str]]:
        """Map lower-case computed column name to its expression (if given)."""
        declared = spec.get("computed_columns") or []
        if isinstance(declared, dict):
            return {name.lower(): expr for name, expr in declared.items()}
        return {name.lower(): None for name in declared}

    def _partition_keys(self, schema: str, table: str) -> List[str]:
        return list(self._table_spec(schema, table).get("partition_keys", []))

    def list_partitions(self, schema: str, table: str) -> List[Partition]:
        """List distinct partition value combinations."""
        keys = self._partition_keys(schema, table)
        if not keys:
            return []
        query = self._build_partition_query(schema, table, keys, None)
        return self._fetch_partitions(query, keys)

    def push_partition_filter(
        self, schema: str, table: str, predicate: Expression
    ) -> List[Partition]:
        """Evaluate a partition predicate inside DuckDB."""
        keys = self._partition_keys(schema, table)
        if not keys:
            return []
        where_clause = self.render_predicate(predicate)
        query = self._build_partition_query(schema, table, keys, where_clause)
        return self._fetch_partitions(query, keys)

    def _build_partition_query(
        self, schema: str, table: str, keys: List[str], where_clause: Optional[str]
    ) -> str:
        quoted = ", ".join(f'"{key}"' for key in keys)
        query = f'SELECT DISTINCT {quoted} FROM "{schema}"."{table}"'
        if where_clause:
            query = f"{query} WHERE {where_clause}"
        return f"{query} ORDER BY {quoted}"

    def _fetch_partitions(self, query: str, keys: List[str]) -> List[Partition]:
        logger.debug(f"Listing partitions on {self.name}: {query}")
        rows = self.connection.execute(query).fetchall()
        partitions = []
        for row in rows:
            partitions.append(Partition(tuple(zip(keys, row))))
        return partitions

    def execute_query(self, query: str) -> Iterator[pa.RecordBatch]:
        """Execute query and yield Arrow record batches."""
        logger.debug(f"Executing query on {self.name}: {query[:100]}...")
        result = self.connection.execute(query)
        arrow_table = result.fetch_arrow_table()

        batch_size = self.config.get("batch_size", 10000)
        for batch in arrow_table.to_batches(max_chunksize=batch_size):
            yield batch

    def get_query_schema(self, query: str) -> pa.Schema:
        """Get query schema without executing."""
        result = self.connection.execute(f"SELECT * FROM ({query}) AS q LIMIT 0")
        return result.fetch_arrow_table().schema
