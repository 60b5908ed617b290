"""Tests for binding parsed plans against the catalog."""

import pytest

from conftest import bind_sql
from partition_pruner.parser import BindingError
from partition_pruner.plan.expressions import ColumnRef, DataType, FunctionCall, Literal
from partition_pruner.plan.logical import Filter, Project, Scan


def test_bind_resolves_table(local_catalog):
    plan = bind_sql(local_catalog, "SELECT id FROM my_table")
    scan = plan.input
    assert isinstance(scan, Scan)
    assert scan.qualified_name() == "mem.main.my_table"
    assert scan.columns == ["id"]


def test_bind_schema_qualified_table(local_catalog):
    plan = bind_sql(local_catalog, "SELECT id FROM main.my_table")
    assert plan.input.datasource == "mem"


def test_bind_expands_star(local_catalog):
    plan = bind_sql(local_catalog, "SELECT * FROM my_table")
    assert isinstance(plan, Project)
    assert plan.aliases == ["id", "name", "part1", "part2"]
    assert plan.input.columns == ["id", "name", "part1", "part2"]


def test_bind_attaches_column_types(local_catalog):
    plan = bind_sql(local_catalog, "SELECT id FROM my_table WHERE part1 = 'A'")
    predicate = plan.input.predicate
    assert predicate.left == ColumnRef(None, "part1", DataType.VARCHAR)
    assert plan.expressions[0].data_type == DataType.INTEGER


def test_bind_canonicalizes_column_case(local_catalog):
    plan = bind_sql(local_catalog, "SELECT ID FROM my_table WHERE PART1 = 'A'")
    assert plan.input.predicate.left.column == "part1"
    assert plan.input.input.columns == ["id", "part1"]


def test_bind_alias_qualifier(local_catalog):
    plan = bind_sql(local_catalog, "SELECT t.id FROM my_table t WHERE t.part1 = 'A'")
    assert isinstance(plan.input, Filter)
    assert plan.input.predicate.left.table == "t"


def test_bind_function_metadata(local_catalog):
    plan = bind_sql(local_catalog, "SELECT id FROM my_table WHERE MyUdf(part2) < 3")
    call = plan.input.predicate.left
    assert isinstance(call, FunctionCall)
    assert call.function_name == "MYUDF"
    assert call.deterministic


def test_bind_builtin_volatile_function(local_catalog):
    plan = bind_sql(local_catalog, "SELECT id FROM my_table WHERE RANDOM() < 0.5")
    assert plan.input.predicate.left.deterministic is False


class TestStringLiteralCasts:
    """String literals compared with typed columns take the column type."""

    def test_integer_column(self, local_catalog):
        plan = bind_sql(local_catalog, "SELECT id FROM my_table WHERE part2 = '1'")
        assert plan.input.predicate.right == Literal(1, DataType.INTEGER)

    def test_literal_on_the_left(self, local_catalog):
        plan = bind_sql(local_catalog, "SELECT id FROM my_table WHERE '3' < part2")
        assert plan.input.predicate.left == Literal(3, DataType.INTEGER)

    def test_in_list_and_between(self, local_catalog):
        plan = bind_sql(
            local_catalog,
            "SELECT id FROM my_table WHERE part2 IN ('1', 3) AND id BETWEEN '2' AND '5'",
        )
        in_list, between = plan.input.predicate.operands
        assert in_list.options == (Literal(1, DataType.INTEGER), Literal(3, DataType.INTEGER))
        assert between.lower == Literal(2, DataType.INTEGER)
        assert between.upper == Literal(5, DataType.INTEGER)

    def test_varchar_column_is_untouched(self, local_catalog):
        plan = bind_sql(local_catalog, "SELECT id FROM my_table WHERE part1 = '1'")
        assert plan.input.predicate.right == Literal("1", DataType.VARCHAR)

    def test_like_is_untouched(self, local_catalog):
        plan = bind_sql(local_catalog, "SELECT id FROM my_table WHERE name LIKE 'A%'")
        assert plan.input.predicate.right == Literal("A%", DataType.VARCHAR)

    def test_invalid_number(self, local_catalog):
        with pytest.raises(BindingError, match="Could not convert string 'abc' to INTEGER"):
            bind_sql(local_catalog, "SELECT id FROM my_table WHERE part2 = 'abc'")


class TestBindingErrors:
    """References that cannot be resolved."""

    def test_unknown_table(self, local_catalog):
        with pytest.raises(BindingError, match="Table not found"):
            bind_sql(local_catalog, "SELECT id FROM missing")

    def test_unknown_column(self, local_catalog):
        with pytest.raises(BindingError, match="not found"):
            bind_sql(local_catalog, "SELECT nope FROM my_table")

    def test_unknown_qualifier(self, local_catalog):
        with pytest.raises(BindingError, match="qualifier"):
            bind_sql(local_catalog, "SELECT id FROM my_table WHERE other.part1 = 'A'")

    def test_unknown_function(self, local_catalog):
        with pytest.raises(BindingError, match="Unknown function"):
            bind_sql(local_catalog, "SELECT id FROM my_table WHERE NO_SUCH_FN(part2) = 1")
