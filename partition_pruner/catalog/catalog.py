"""Catalog for managing metadata across all data sources."""

import logging
from typing import Dict, Optional, Tuple
from ..datasources.base import DataSource
from .functions import FunctionRegistry
from .schema import Schema, Table, Column, InconsistentPartitionSpecError
from ..plan.expressions import DataType

logger = logging.getLogger(__name__)


class Catalog:
    """Central catalog managing metadata from all data sources."""

    def __init__(self, functions: Optional[FunctionRegistry] = None):
        """Initialize catalog.

        Args:
            functions: Scalar function registry (built-ins by default)
        """
        self.datasources: Dict[str, DataSource] = {}
        self.schemas: Dict[Tuple[str, str], Schema] = {}  # (datasource, schema_name) -> Schema
        if functions is None:
            functions = FunctionRegistry.with_builtins()
        self.functions = functions
        self._metadata_loaded = False

    def register_datasource(self, datasource: DataSource) -> None:
        """Register a data source with the catalog.

        Args:
            datasource: Data source to register
        """
        self.datasources[datasource.name] = datasource

    def load_metadata(self) -> None:
        """Load metadata from all registered data sources.

        This discovers all schemas, tables, columns and partition specs.

        Raises:
            InconsistentPartitionSpecError: If a declared partition spec does
                not match the table's columns
        """
        for ds_name, datasource in self.datasources.items():
            # Ensure connection
            if datasource.connection is None:
                datasource.connect()

            for schema_name in datasource.list_schemas():
                schema = Schema(name=schema_name, datasource=ds_name)

                for table_name in datasource.list_tables(schema_name):
                    metadata = datasource.get_table_metadata(schema_name, table_name)

                    columns = []
                    for col_meta in metadata.columns:
                        columns.append(
                            Column(
                                name=col_meta.name,
                                data_type=self._map_type(col_meta.data_type),
                                nullable=col_meta.nullable,
                                is_computed=col_meta.is_computed,
                                expression=col_meta.expression,
                            )
                        )

                    table = Table(
                        name=table_name,
                        columns=columns,
                        partition_keys=list(metadata.partition_keys),
                    )
                    schema.add_table(table)
                    table.validate_partition_spec()
                    if table.is_partitioned():
                        logger.debug(
                            f"Loaded partitioned table {table.fully_qualified_name()} "
                            f"partitioned by {table.partition_keys}"
                        )

                # Register schema
                self.schemas[(ds_name, schema_name)] = schema

        self._metadata_loaded = True

    def add_table(self, datasource: str, schema_name: str, table: Table) -> None:
        """Register a table directly, creating its schema if needed.

        Raises:
            InconsistentPartitionSpecError: If the partition spec is invalid
        """
        schema = self.schemas.get((datasource, schema_name))
        if schema is None:
            schema = Schema(name=schema_name, datasource=datasource)
        schema.add_table(table)
        try:
            table.validate_partition_spec()
        except InconsistentPartitionSpecError:
            del schema.tables[table.name.lower()]
            raise
        self.schemas[(datasource, schema_name)] = schema

    def get_datasource(self, name: str) -> Optional[DataSource]:
        """Get data source by name.

        Args:
            name: Data source name

        Returns:
            Data source if found, None otherwise
        """
        return self.datasources.get(name)

    def get_schema(self, datasource: str, schema_name: str) -> Optional[Schema]:
        """Get schema by data source and name.

        Args:
            datasource: Data source name
            schema_name: Schema name

        Returns:
            Schema if found, None otherwise
        """
        return self.schemas.get((datasource, schema_name))

    def get_table(
        self, datasource: str, schema_name: str, table_name: str
    ) -> Optional[Table]:
        """Get table by fully qualified name.

        Args:
            datasource: Data source name
            schema_name: Schema name
            table_name: Table name

        Returns:
            Table if found, None otherwise
        """
        schema = self.get_schema(datasource, schema_name)
        if schema:
            return schema.get_table(table_name)
        return None

    def resolve_table(self, table_ref: str) -> Optional[Tuple[str, str, str, Table]]:
        """Resolve a table reference to its components.

        Supports formats:
        - datasource.schema.table
        - schema.table (searches all data sources)
        - table (searches all schemas)

        Args:
            table_ref: Table reference string

        Returns:
            Tuple of (datasource, schema, table_name, Table) if found, None otherwise
        """
        parts = table_ref.split(".")

        if len(parts) == 3:
            ds, schema_name, table_name = parts
            table = self.get_table(ds, schema_name, table_name)
            if table:
                return (ds, schema_name, table.name, table)

        elif len(parts) == 2:
            schema_name, table_name = parts
            for (ds, sch_name), schema in self.schemas.items():
                if sch_name.lower() == schema_name.lower():
                    table = schema.get_table(table_name)
                    if table:
                        return (ds, sch_name, table.name, table)

        elif len(parts) == 1:
            table_name = parts[0]
            for (ds, sch_name), schema in self.schemas.items():
                table = schema.get_table(table_name)
                if table:
                    return (ds, sch_name, table.name, table)

        return None

    def _map_type(self, type_str: str) -> DataType:
        """Map database type string to DataType enum.

        Args:
            type_str: Database type string

        Returns:
            Mapped DataType
        """
        type_str = type_str.upper()

        # Integer types
        if "INT" in type_str or "SERIAL" in type_str:
            if "BIG" in type_str or "HUGE" in type_str:
                return DataType.BIGINT
            return DataType.INTEGER

        # Float types
        if "FLOAT" in type_str or "REAL" in type_str:
            return DataType.FLOAT
        if "DOUBLE" in type_str or "NUMERIC" in type_str or "DECIMAL" in type_str:
            return DataType.DOUBLE

        # String types
        if "CHAR" in type_str or "TEXT" in type_str or "STRING" in type_str:
            if "VAR" in type_str:
                return DataType.VARCHAR
            return DataType.TEXT

        if "BOOL" in type_str:
            return DataType.BOOLEAN

        # Timestamps before dates: "TIMESTAMP" never contains "DATE"
        if "TIMESTAMP" in type_str:
            return DataType.TIMESTAMP
        if "DATE" in type_str:
            return DataType.DATE
        if "TIME" in type_str:
            return DataType.TIMESTAMP

        return DataType.VARCHAR

    def __repr__(self) -> str:
        return f"Catalog(datasources={len(self.datasources)}, schemas={len(self.schemas)})"
