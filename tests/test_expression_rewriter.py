"""Tests for column substitution and constant folding."""

import pytest
from partition_pruner.catalog.functions import FunctionRegistry
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
from partition_pruner.optimizer.expression_rewriter import (
    FALSE,
    NULL,
    TRUE,
    ColumnSubstitutionRewriter,
    ConstantFoldingRewriter,
    evaluate,
    like_to_regex,
)


def lit(value, data_type=DataType.BIGINT):
    return Literal(value, data_type)


def binary(op, left, right):
    return BinaryOp(op=op, left=left, right=right)


class TestConstantFolding:
    """Test constant folding optimization."""

    @pytest.mark.parametrize(
        "op,left,right,expected",
        [
            (BinaryOpType.ADD, 1, 2, 3),
            (BinaryOpType.SUBTRACT, 5, 3, 2),
            (BinaryOpType.MULTIPLY, 4, 5, 20),
            (BinaryOpType.DIVIDE, 10, 4, 2.5),
            (BinaryOpType.MODULO, 7, 3, 1),
            (BinaryOpType.MODULO, -7, 3, -1),
            (BinaryOpType.MODULO, 7, -3, 1),
            (BinaryOpType.MODULO, -7.5, 2, -1.5),
            (BinaryOpType.EQ, 1, 1, True),
            (BinaryOpType.NEQ, 1, 1, False),
            (BinaryOpType.LT, 1, 2, True),
            (BinaryOpType.GTE, 1, 2, False),
        ],
    )
    def test_fold_binary(self, op, left, right, expected):
        result = ConstantFoldingRewriter().rewrite(binary(op, lit(left), lit(right)))
        assert isinstance(result, Literal)
        assert result.value == expected

    def test_fold_nested(self):
        """(1 + 2) * 3 folds bottom-up."""
        expr = binary(
            BinaryOpType.MULTIPLY,
            binary(BinaryOpType.ADD, lit(1), lit(2)),
            lit(3),
        )
        assert ConstantFoldingRewriter().rewrite(expr).value == 9

    def test_column_blocks_folding(self):
        column = ColumnRef(None, "x", DataType.BIGINT)
        expr = binary(BinaryOpType.ADD, column, binary(BinaryOpType.ADD, lit(1), lit(2)))
        result = ConstantFoldingRewriter().rewrite(expr)
        assert result == binary(BinaryOpType.ADD, column, lit(3))

    def test_division_by_zero_is_left_unfolded(self):
        expr = binary(BinaryOpType.DIVIDE, lit(1), lit(0))
        assert ConstantFoldingRewriter().rewrite(expr) == expr

    def test_type_mismatch_is_left_unfolded(self):
        expr = binary(BinaryOpType.LT, lit("a", DataType.VARCHAR), lit(1))
        assert not isinstance(ConstantFoldingRewriter().rewrite(expr), Literal)

    @pytest.mark.parametrize("op", [BinaryOpType.EQ, BinaryOpType.NEQ])
    def test_mixed_type_equality_is_left_unfolded(self, op):
        expr = binary(op, lit(1), lit("1", DataType.VARCHAR))
        assert ConstantFoldingRewriter().rewrite(expr) == expr

    def test_string_arithmetic_is_left_unfolded(self):
        expr = binary(BinaryOpType.MULTIPLY, lit("a", DataType.VARCHAR), lit(3))
        assert ConstantFoldingRewriter().rewrite(expr) == expr

    def test_mixed_type_in_list_is_left_unfolded(self):
        expr = InList(lit(1), (lit("1", DataType.VARCHAR), lit(2)))
        assert ConstantFoldingRewriter().rewrite(expr) == expr

    def test_like(self):
        expr = binary(BinaryOpType.LIKE, lit("Anna", DataType.VARCHAR), lit("A%a", DataType.VARCHAR))
        assert ConstantFoldingRewriter().rewrite(expr) == TRUE

    def test_like_pattern_escapes_regex_characters(self):
        assert like_to_regex("a.b_").fullmatch("a.bc")
        assert not like_to_regex("a.b").fullmatch("axb")


class TestThreeValuedLogic:
    """NULL handling follows SQL semantics."""

    def test_comparison_with_null(self):
        expr = binary(BinaryOpType.EQ, NULL, lit(1))
        assert ConstantFoldingRewriter().rewrite(expr) == NULL

    def test_is_null(self):
        assert ConstantFoldingRewriter().rewrite(UnaryOp(UnaryOpType.IS_NULL, NULL)) == TRUE
        assert ConstantFoldingRewriter().rewrite(UnaryOp(UnaryOpType.IS_NOT_NULL, lit(1))) == TRUE

    def test_not_null_is_null(self):
        assert ConstantFoldingRewriter().rewrite(UnaryOp(UnaryOpType.NOT, NULL)) == NULL

    def test_and(self):
        rewriter = ConstantFoldingRewriter()
        assert rewriter.rewrite(Conjunction((NULL, FALSE))) == FALSE
        assert rewriter.rewrite(Conjunction((NULL, TRUE))) == NULL
        assert rewriter.rewrite(Conjunction((TRUE, TRUE))) == TRUE

    def test_or(self):
        rewriter = ConstantFoldingRewriter()
        assert rewriter.rewrite(Disjunction((NULL, TRUE))) == TRUE
        assert rewriter.rewrite(Disjunction((NULL, FALSE))) == NULL
        assert rewriter.rewrite(Disjunction((FALSE, FALSE))) == FALSE

    def test_and_drops_true_operands(self):
        column = ColumnRef(None, "x", DataType.BOOLEAN)
        assert ConstantFoldingRewriter().rewrite(Conjunction((TRUE, column))) == column

    def test_in_list(self):
        rewriter = ConstantFoldingRewriter()
        assert rewriter.rewrite(InList(lit(2), (lit(1), lit(2)))) == TRUE
        assert rewriter.rewrite(InList(lit(3), (lit(1), lit(2)))) == FALSE
        assert rewriter.rewrite(InList(lit(3), (lit(1), NULL))) == NULL
        assert rewriter.rewrite(InList(NULL, (lit(1),))) == NULL

    def test_between(self):
        rewriter = ConstantFoldingRewriter()
        assert rewriter.rewrite(BetweenExpression(lit(2), lit(1), lit(3))) == TRUE
        assert rewriter.rewrite(BetweenExpression(lit(5), lit(1), lit(3))) == FALSE
        assert rewriter.rewrite(BetweenExpression(NULL, lit(1), lit(3))) == NULL


class TestFunctionFolding:
    """Function calls fold only through the registry."""

    @pytest.fixture
    def functions(self):
        registry = FunctionRegistry.with_builtins()
        registry.register_function("MYUDF", lambda x: x + 1)
        return registry

    def test_without_registry_calls_stay(self):
        call = FunctionCall("MYUDF", (lit(1),))
        assert ConstantFoldingRewriter().rewrite(call) == call

    def test_deterministic_function(self, functions):
        call = FunctionCall("MYUDF", (lit(1),))
        assert ConstantFoldingRewriter(functions).rewrite(call).value == 2

    def test_strict_function_with_null_argument(self, functions):
        call = FunctionCall("UPPER", (NULL,))
        assert ConstantFoldingRewriter(functions).rewrite(call).value is None

    def test_volatile_function_is_not_folded(self, functions):
        call = FunctionCall("RANDOM", (), deterministic=False)
        assert ConstantFoldingRewriter(functions).rewrite(call) == call

    def test_volatile_function_folds_when_allowed(self, functions):
        call = FunctionCall("RANDOM", (), deterministic=False)
        result = ConstantFoldingRewriter(functions, fold_volatile=True).rewrite(call)
        assert isinstance(result, Literal)
        assert 0.0 <= result.value < 1.0

    def test_function_without_implementation(self):
        registry = FunctionRegistry()
        registry.register_function("REMOTE_ONLY", None)
        call = FunctionCall("REMOTE_ONLY", (lit(1),))
        assert ConstantFoldingRewriter(registry).rewrite(call) == call


class TestColumnSubstitution:
    """Replacing columns with partition values."""

    def test_case_insensitive_and_unqualified(self):
        expr = binary(BinaryOpType.EQ, ColumnRef("t", "Part1", DataType.VARCHAR), lit("A", DataType.VARCHAR))
        result = ColumnSubstitutionRewriter({"PART1": "A"}).rewrite(expr)
        assert result == binary(BinaryOpType.EQ, lit("A", DataType.VARCHAR), lit("A", DataType.VARCHAR))

    def test_unknown_columns_are_kept(self):
        column = ColumnRef(None, "id", DataType.BIGINT)
        assert ColumnSubstitutionRewriter({"part1": "A"}).rewrite(column) is column

    def test_null_value_becomes_null_literal(self):
        column = ColumnRef(None, "part2", DataType.BIGINT)
        assert ColumnSubstitutionRewriter({"part2": None}).rewrite(column) == NULL

    def test_evaluate(self):
        expr = Conjunction(
            (
                binary(BinaryOpType.EQ, ColumnRef(None, "part1", DataType.VARCHAR), lit("A", DataType.VARCHAR)),
                binary(BinaryOpType.GT, ColumnRef(None, "part2", DataType.BIGINT), lit(1)),
            )
        )
        assert evaluate(expr, {"part1": "A", "part2": 2}) == TRUE
        assert evaluate(expr, {"part1": "A", "part2": 1}) == FALSE
        assert evaluate(expr, {"part1": "B", "part2": None}) == FALSE
        assert evaluate(expr, {"part1": "A", "part2": None}) == NULL
