"""Tests for SQL parsing into logical plans."""

import pytest
from partition_pruner.parser import Parser
from partition_pruner.plan.expressions import (
    BetweenExpression,
    BinaryOp,
    BinaryOpType,
    ColumnRef,
    Conjunction,
    DataType,
    Disjunction,
    FunctionCall,
    InList,
    Literal,
    UnaryOp,
    UnaryOpType,
)
from partition_pruner.plan.logical import Filter, Limit, Project, Scan


@pytest.fixture
def parser():
    return Parser()


def test_parse_simple_select(parser):
    """Test parsing simple SELECT."""
    plan = parser.parse_to_logical_plan("SELECT id, name FROM my_table")
    assert isinstance(plan, Project)
    assert plan.aliases == ["id", "name"]
    assert isinstance(plan.input, Scan)
    assert plan.input.table_name == "my_table"
    assert plan.input.schema_name is None
    assert plan.input.datasource is None


def test_parse_qualified_table(parser):
    plan = parser.parse_to_logical_plan("SELECT id FROM mem.main.my_table AS t")
    scan = plan.input
    assert (scan.datasource, scan.schema_name, scan.table_name) == ("mem", "main", "my_table")
    assert scan.alias == "t"


def test_parse_with_where(parser):
    """Test parsing SELECT with WHERE."""
    plan = parser.parse_to_logical_plan("SELECT id FROM my_table WHERE part1 = 'A'")
    filter_node = plan.input
    assert isinstance(filter_node, Filter)
    assert filter_node.predicate == BinaryOp(
        BinaryOpType.EQ,
        ColumnRef(None, "part1"),
        Literal("A", DataType.VARCHAR),
    )
    assert filter_node.input.columns == ["id", "part1"]


def test_parse_with_limit(parser):
    plan = parser.parse_to_logical_plan("SELECT id FROM my_table LIMIT 5 OFFSET 2")
    assert isinstance(plan, Limit)
    assert (plan.limit, plan.offset) == (5, 2)


def test_select_star_reads_every_column(parser):
    plan = parser.parse_to_logical_plan("SELECT * FROM my_table")
    assert plan.input.columns == ["*"]
    assert plan.expressions == [ColumnRef(None, "*")]


class TestPredicates:
    """Conversion of WHERE clause expressions."""

    def test_and_chain_is_flattened(self, parser):
        expr = parser.parse_expression("a = 1 AND b = 2 AND c = 3")
        assert isinstance(expr, Conjunction)
        assert len(expr.operands) == 3

    def test_or_chain_is_flattened(self, parser):
        expr = parser.parse_expression("a = 1 OR b = 2 OR c = 3")
        assert isinstance(expr, Disjunction)
        assert len(expr.operands) == 3

    def test_parentheses_keep_nesting(self, parser):
        expr = parser.parse_expression("(a = 1 OR b = 2) AND c = 3")
        assert isinstance(expr, Conjunction)
        assert isinstance(expr.operands[0], Disjunction)

    def test_in_list(self, parser):
        expr = parser.parse_expression("part1 IN ('A', 'B')")
        assert isinstance(expr, InList)
        assert expr.options == (Literal("A", DataType.VARCHAR), Literal("B", DataType.VARCHAR))

    def test_between(self, parser):
        expr = parser.parse_expression("part2 BETWEEN 1 AND 3")
        assert expr == BetweenExpression(
            ColumnRef(None, "part2"),
            Literal(1, DataType.INTEGER),
            Literal(3, DataType.INTEGER),
        )

    def test_is_null_and_is_not_null(self, parser):
        assert parser.parse_expression("part2 IS NULL") == UnaryOp(
            UnaryOpType.IS_NULL, ColumnRef(None, "part2")
        )
        assert parser.parse_expression("part2 IS NOT NULL") == UnaryOp(
            UnaryOpType.IS_NOT_NULL, ColumnRef(None, "part2")
        )

    def test_not(self, parser):
        expr = parser.parse_expression("NOT part1 = 'A'")
        assert isinstance(expr, UnaryOp)
        assert expr.op == UnaryOpType.NOT

    def test_negative_literal(self, parser):
        expr = parser.parse_expression("part2 > -1")
        assert expr.right == Literal(-1, DataType.INTEGER)

    def test_like(self, parser):
        expr = parser.parse_expression("name LIKE 'A%'")
        assert expr.op == BinaryOpType.LIKE

    def test_user_function(self, parser):
        expr = parser.parse_expression("MyUdf(part2) < 3")
        assert expr.left == FunctionCall("MYUDF", (ColumnRef(None, "part2"),))

    def test_builtin_function(self, parser):
        expr = parser.parse_expression("UPPER(name)")
        assert isinstance(expr, FunctionCall)
        assert expr.function_name == "UPPER"
        assert expr.args == (ColumnRef(None, "name"),)

    def test_qualified_column(self, parser):
        expr = parser.parse_expression("t.part1")
        assert expr == ColumnRef("t", "part1")


class TestUnsupported:
    """Statements outside the single-table SELECT subset."""

    def test_join(self, parser):
        with pytest.raises(ValueError, match="Joins"):
            parser.parse_to_logical_plan("SELECT a.id FROM a JOIN b ON a.id = b.id")

    def test_group_by(self, parser):
        with pytest.raises(ValueError, match="GROUP BY"):
            parser.parse_to_logical_plan("SELECT part1 FROM my_table GROUP BY part1")

    def test_aggregate(self, parser):
        with pytest.raises(ValueError, match="Aggregate"):
            parser.parse_to_logical_plan("SELECT COUNT(*) FROM my_table")

    def test_non_select(self, parser):
        with pytest.raises(ValueError):
            parser.parse_to_logical_plan("DELETE FROM my_table")

    def test_in_subquery(self, parser):
        with pytest.raises(ValueError, match="subqueries"):
            parser.parse_to_logical_plan(
                "SELECT id FROM my_table WHERE part1 IN (SELECT part1 FROM other)"
            )
