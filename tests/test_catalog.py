"""Tests for catalog metadata and the function registry."""

import pytest
from partition_pruner.catalog import (
    Catalog,
    Column,
    FunctionRegistry,
    InconsistentPartitionSpecError,
    Table,
)
from partition_pruner.plan.expressions import DataType


class TestCatalogMetadata:
    """Metadata discovered from a DuckDB source."""

    def test_tables_are_loaded(self, local_catalog):
        schema = local_catalog.get_schema("mem", "main")
        assert schema is not None
        assert schema.get_table("my_table") is not None
        assert schema.get_table("virtual_table") is not None

    def test_partition_keys(self, local_catalog):
        table = local_catalog.get_table("mem", "main", "my_table")
        assert table.is_partitioned()
        assert table.partition_keys == ["part1", "part2"]

    def test_column_types(self, local_catalog):
        table = local_catalog.get_table("mem", "main", "my_table")
        assert table.get_column("id").data_type == DataType.INTEGER
        assert table.get_column("name").data_type == DataType.VARCHAR

    def test_computed_column_metadata(self, local_catalog):
        table = local_catalog.get_table("mem", "main", "virtual_table")
        column = table.get_column("virtual_field")
        assert column.is_computed
        assert column.expression == "part2 + 1"
        assert not table.get_column("part2").is_computed

    def test_lookup_is_case_insensitive(self, local_catalog):
        assert local_catalog.get_table("mem", "main", "MY_TABLE") is not None
        assert local_catalog.get_table("mem", "main", "my_table").get_column("PART1").name == "part1"

    @pytest.mark.parametrize("ref", ["my_table", "main.my_table", "mem.main.my_table"])
    def test_resolve_table(self, local_catalog, ref):
        datasource, schema_name, table_name, table = local_catalog.resolve_table(ref)
        assert (datasource, schema_name, table_name) == ("mem", "main", "my_table")
        assert table.is_partitioned()

    def test_resolve_missing_table(self, local_catalog):
        assert local_catalog.resolve_table("missing") is None
        assert local_catalog.resolve_table("other.main.my_table") is None

    def test_fully_qualified_name(self, local_catalog):
        table = local_catalog.get_table("mem", "main", "my_table")
        assert table.fully_qualified_name() == "mem.main.my_table"
        assert table.get_column("id").fully_qualified_name() == "mem.main.my_table.id"


class TestPartitionSpecValidation:
    """Partition keys must be physical columns of the table."""

    def _table(self, partition_keys, computed=False):
        return Table(
            name="events",
            columns=[
                Column("id", DataType.INTEGER, nullable=False),
                Column("day", DataType.DATE, nullable=False, is_computed=computed),
            ],
            partition_keys=partition_keys,
        )

    def test_valid_spec(self):
        catalog = Catalog()
        catalog.add_table("ds", "public", self._table(["day"]))
        assert catalog.get_table("ds", "public", "events").partition_keys == ["day"]

    def test_unknown_partition_column(self):
        with pytest.raises(InconsistentPartitionSpecError, match="not a declared column"):
            Catalog().add_table("ds", "public", self._table(["hour"]))

    def test_computed_partition_column(self):
        with pytest.raises(InconsistentPartitionSpecError, match="computed"):
            Catalog().add_table("ds", "public", self._table(["day"], computed=True))

    def test_unpartitioned_table(self):
        table = self._table([])
        table.validate_partition_spec()
        assert not table.is_partitioned()

    def test_error_names_table(self):
        catalog = Catalog()
        with pytest.raises(InconsistentPartitionSpecError) as excinfo:
            catalog.add_table("ds", "public", self._table(["hour"]))
        assert excinfo.value.table_name == "ds.public.events"

    def test_invalid_table_is_not_registered(self):
        catalog = Catalog()
        with pytest.raises(InconsistentPartitionSpecError):
            catalog.add_table("ds", "public", self._table(["hour"]))
        assert catalog.get_table("ds", "public", "events") is None
        assert ("ds", "public") not in catalog.schemas


class TestTypeMapping:
    """Database type strings map onto plan data types."""

    @pytest.mark.parametrize(
        "type_str,expected",
        [
            ("INTEGER", DataType.INTEGER),
            ("BIGINT", DataType.BIGINT),
            ("HUGEINT", DataType.BIGINT),
            ("DOUBLE", DataType.DOUBLE),
            ("DECIMAL(10,2)", DataType.DOUBLE),
            ("REAL", DataType.FLOAT),
            ("VARCHAR", DataType.VARCHAR),
            ("TEXT", DataType.TEXT),
            ("BOOLEAN", DataType.BOOLEAN),
            ("DATE", DataType.DATE),
            ("TIMESTAMP WITH TIME ZONE", DataType.TIMESTAMP),
            ("BLOB", DataType.VARCHAR),
        ],
    )
    def test_map_type(self, type_str, expected):
        assert Catalog()._map_type(type_str) == expected


class TestFunctionRegistry:
    """Declared function metadata."""

    def test_builtins(self):
        registry = FunctionRegistry.with_builtins()
        assert registry.lookup("upper").deterministic
        assert not registry.lookup("random").deterministic
        assert "LENGTH" in registry

    def test_unknown_function(self):
        assert FunctionRegistry().lookup("whatever") is None
        assert "whatever" not in FunctionRegistry()

    @pytest.mark.parametrize(
        "args, expected",
        [
            ((2.5,), 3.0),
            ((-2.5,), -3.0),
            ((0.5,), 1.0),
            ((1.25, 1), 1.3),
            ((7,), 7),
            ((125, -1), 130.0),
        ],
    )
    def test_round_half_away_from_zero(self, args, expected):
        rounded = FunctionRegistry.with_builtins().lookup("ROUND").invoke(list(args))
        assert rounded == expected

    def test_register_is_case_insensitive(self):
        registry = FunctionRegistry()
        registry.register_function("MyUdf", lambda x: x + 1)
        definition = registry.lookup("myudf")
        assert definition.name == "MYUDF"
        assert definition.invoke([1]) == 2

    def test_strict_function_returns_null(self):
        registry = FunctionRegistry.with_builtins()
        assert registry.lookup("UPPER").invoke([None]) is None
        assert registry.lookup("COALESCE").invoke([None, 3]) == 3

    def test_missing_implementation(self):
        registry = FunctionRegistry()
        registry.register_function("REMOTE", None)
        with pytest.raises(NotImplementedError):
            registry.lookup("REMOTE").invoke([1])
