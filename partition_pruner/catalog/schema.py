"""Schema metadata classes."""

from dataclasses import dataclass
from typing import List, Optional, Dict, Set
from ..plan.expressions import DataType


class InconsistentPartitionSpecError(Exception):
    """A table's partition spec does not match its declared columns.

    Raised for partition keys that are not declared columns or that name a
    computed column. This is a corrupt catalog, not a query-specific problem.
    """

    def __init__(self, table_name: str, message: str):
        super().__init__(f"Inconsistent partition spec for {table_name}: {message}")
        self.table_name = table_name


@dataclass
class Column:
    """Column metadata."""

    name: str
    data_type: DataType
    nullable: bool
    is_computed: bool = False  # Virtual column derived from other columns
    expression: Optional[str] = None  # Defining expression of a computed column
    table: Optional["Table"] = None

    def fully_qualified_name(self) -> str:
        """Get fully qualified column name."""
        if self.table:
            return f"{self.table.fully_qualified_name()}.{self.name}"
        return self.name

    def __repr__(self) -> str:
        computed = ", computed" if self.is_computed else ""
        return f"Column({self.name}, {self.data_type.value}{computed})"


@dataclass
class Table:
    """Table metadata."""

    name: str
    schema: Optional["Schema"] = None
    columns: List[Column] = None
    partition_keys: List[str] = None

    def __post_init__(self):
        if self.columns is None:
            self.columns = []
        if self.partition_keys is None:
            self.partition_keys = []
        # Set back-reference to table
        for col in self.columns:
            col.table = self

    def get_column(self, name: str) -> Optional[Column]:
        """Get column by name."""
        for col in self.columns:
            if col.name.lower() == name.lower():
                return col
        return None

    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    def is_partitioned(self) -> bool:
        return len(self.partition_keys) > 0

    def computed_columns(self) -> Set[str]:
        """Names of virtual columns."""
        return {col.name for col in self.columns if col.is_computed}

    def validate_partition_spec(self) -> None:
        """Check that every partition key is a declared physical column.

        Raises:
            InconsistentPartitionSpecError: If a key is unknown or computed
        """
        for key in self.partition_keys:
            column = self.get_column(key)
            if column is None:
                raise InconsistentPartitionSpecError(
                    self.fully_qualified_name(),
                    f"partition column '{key}' is not a declared column",
                )
            if column.is_computed:
                raise InconsistentPartitionSpecError(
                    self.fully_qualified_name(),
                    f"partition column '{key}' is a computed column",
                )

    def fully_qualified_name(self) -> str:
        """Get fully qualified table name."""
        if self.schema:
            return f"{self.schema.datasource}.{self.schema.name}.{self.name}"
        return self.name

    def __repr__(self) -> str:
        partitioned = ""
        if self.partition_keys:
            partitioned = f", partitioned_by={self.partition_keys}"
        return f"Table({self.name}, cols={len(self.columns)}{partitioned})"


@dataclass
class Schema:
    """Schema metadata."""

    name: str
    datasource: str
    tables: Dict[str, Table] = None

    def __post_init__(self):
        if self.tables is None:
            self.tables = {}
        # Set back-reference to schema
        for table in self.tables.values():
            table.schema = self

    def get_table(self, name: str) -> Optional[Table]:
        """Get table by name."""
        return self.tables.get(name.lower())

    def add_table(self, table: Table) -> None:
        """Add a table to this schema."""
        table.schema = self
        self.tables[table.name.lower()] = table

    def __repr__(self) -> str:
        return f"Schema({self.datasource}.{self.name}, tables={len(self.tables)})"
