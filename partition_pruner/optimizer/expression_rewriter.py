"""Expression rewriting and constant folding.

This module provides the expression-level rewrites the partition pruner
relies on: substituting concrete values for column references and folding
the resulting constant expression with SQL three-valued logic.
"""

import logging
import re
from datetime import date, datetime
from decimal import Decimal
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional
from ..catalog.functions import FunctionRegistry
from ..plan.expressions import (
    Expression,
    BinaryOp,
    BinaryOpType,
    UnaryOp,
    UnaryOpType,
    Literal,
    ColumnRef,
    FunctionCall,
    DataType,
    InList,
    BetweenExpression,
    Conjunction,
    Disjunction,
    COMPARISON_OPS,
    infer_data_type,
)

logger = logging.getLogger(__name__)

TRUE = Literal(True, DataType.BOOLEAN)
FALSE = Literal(False, DataType.BOOLEAN)
NULL = Literal(None, DataType.NULL)

ARITHMETIC_OPS = frozenset(
    [
        BinaryOpType.ADD,
        BinaryOpType.SUBTRACT,
        BinaryOpType.MULTIPLY,
        BinaryOpType.DIVIDE,
        BinaryOpType.MODULO,
    ]
)


class ExpressionRewriter(ABC):
    """Base class for expression rewriters."""

    @abstractmethod
    def rewrite(self, expr: Expression) -> Expression:
        """Rewrite an expression.

        Args:
            expr: Input expression

        Returns:
            Rewritten expression (may be same as input)
        """
        pass

    def rewrite_children(self, expr: Expression) -> Expression:
        """Rewrite every child of ``expr`` and rebuild it if one changed."""
        if isinstance(expr, BinaryOp):
            return self.rewrite_binary_op(expr)
        if isinstance(expr, UnaryOp):
            return self.rewrite_unary_op(expr)
        if isinstance(expr, FunctionCall):
            return self.rewrite_function_call(expr)
        if isinstance(expr, InList):
            return self.rewrite_in_list(expr)
        if isinstance(expr, BetweenExpression):
            return self.rewrite_between(expr)
        if isinstance(expr, Conjunction):
            return self.rewrite_conjunction(expr)
        if isinstance(expr, Disjunction):
            return self.rewrite_disjunction(expr)
        return expr

    def rewrite_binary_op(self, expr: BinaryOp) -> Expression:
        """Rewrite binary operation."""
        left = self.rewrite(expr.left)
        right = self.rewrite(expr.right)

        if left == expr.left and right == expr.right:
            return expr

        return BinaryOp(op=expr.op, left=left, right=right)

    def rewrite_unary_op(self, expr: UnaryOp) -> Expression:
        """Rewrite unary operation."""
        operand = self.rewrite(expr.operand)

        if operand == expr.operand:
            return expr

        return UnaryOp(op=expr.op, operand=operand)

    def rewrite_function_call(self, expr: FunctionCall) -> Expression:
        """Rewrite function call."""
        rewritten_args = self._rewrite_all(expr.args)
        if rewritten_args is None:
            return expr

        return FunctionCall(
            function_name=expr.function_name,
            args=rewritten_args,
            deterministic=expr.deterministic,
            return_type=expr.return_type,
        )

    def rewrite_in_list(self, expr: InList) -> Expression:
        """Rewrite IN list expression."""
        rewritten_value = self.rewrite(expr.value)
        rewritten_options = self._rewrite_all(expr.options)

        if rewritten_value == expr.value and rewritten_options is None:
            return expr

        if rewritten_options is None:
            rewritten_options = expr.options
        return InList(value=rewritten_value, options=rewritten_options)

    def rewrite_between(self, expr: BetweenExpression) -> Expression:
        """Rewrite BETWEEN expression."""
        rewritten_value = self.rewrite(expr.value)
        rewritten_lower = self.rewrite(expr.lower)
        rewritten_upper = self.rewrite(expr.upper)

        if (
            rewritten_value == expr.value
            and rewritten_lower == expr.lower
            and rewritten_upper == expr.upper
        ):
            return expr

        return BetweenExpression(
            value=rewritten_value,
            lower=rewritten_lower,
            upper=rewritten_upper,
        )

    def rewrite_conjunction(self, expr: Conjunction) -> Expression:
        operands = self._rewrite_all(expr.operands)
        if operands is None:
            return expr
        return Conjunction(operands)

    def rewrite_disjunction(self, expr: Disjunction) -> Expression:
        operands = self._rewrite_all(expr.operands)
        if operands is None:
            return expr
        return Disjunction(operands)

    def _rewrite_all(self, exprs) -> Optional[tuple]:
        """Rewrite a sequence; None when nothing changed."""
        rewritten = []
        changed = False
        for item in exprs:
            new_item = self.rewrite(item)
            rewritten.append(new_item)
            if new_item != item:
                changed = True
        if not changed:
            return None
        return tuple(rewritten)


class ColumnSubstitutionRewriter(ExpressionRewriter):
    """Replace column references with literal values.

    Column names are matched case-insensitively and the table qualifier is
    ignored. Columns without a value are left in place.
    """

    def __init__(self, values: Mapping[str, Any]):
        self.values = {name.lower(): value for name, value in values.items()}

    def rewrite(self, expr: Expression) -> Expression:
        if isinstance(expr, ColumnRef):
            key = expr.column.lower()
            if key not in self.values:
                return expr
            value = self.values[key]
            data_type = expr.data_type
            if value is None or data_type is None:
                data_type = infer_data_type(value)
            return Literal(value, data_type)
        return self.rewrite_children(expr)


class ConstantFoldingRewriter(ExpressionRewriter):
    """Fold constant expressions using SQL three-valued logic.

    NULL is represented by ``Literal(None)``. Comparisons and arithmetic with a
    NULL operand yield NULL; AND/OR/NOT follow Kleene logic. Anything that
    cannot be evaluated (type mismatch, division by zero, a function without a
    local implementation) is left unfolded instead of raising.
    """

    def __init__(
        self, functions: Optional[FunctionRegistry] = None, fold_volatile: bool = False
    ):
        """Initialize the folder.

        Args:
            functions: Registry used to evaluate function calls. Without one,
                function calls are never folded.
            fold_volatile: Also evaluate non-deterministic functions. Only
                valid when evaluating a single row at execution time.
        """
        self.functions = functions
        self.fold_volatile = fold_volatile

    def rewrite(self, expr: Expression) -> Expression:
        """Rewrite expression with constant folding."""
        if isinstance(expr, Literal):
            return expr

        if isinstance(expr, ColumnRef):
            return expr

        if isinstance(expr, BinaryOp):
            return self._fold_binary_op(expr)

        if isinstance(expr, UnaryOp):
            return self._fold_unary_op(expr)

        if isinstance(expr, FunctionCall):
            return self._fold_function_call(expr)

        if isinstance(expr, InList):
            return self._fold_in_list(expr)

        if isinstance(expr, BetweenExpression):
            return self._fold_between(expr)

        if isinstance(expr, Conjunction):
            return self._fold_conjunction(expr)

        if isinstance(expr, Disjunction):
            return self._fold_disjunction(expr)

        return expr

    def _fold_binary_op(self, expr: BinaryOp) -> Expression:
        """Fold binary operations with constant operands."""
        left = self.rewrite(expr.left)
        right = self.rewrite(expr.right)

        if not isinstance(left, Literal) or not isinstance(right, Literal):
            if left == expr.left and right == expr.right:
                return expr
            return BinaryOp(op=expr.op, left=left, right=right)

        left_val = left.value
        right_val = right.value

        if left_val is None or right_val is None:
            return NULL

        try:
            result_value = self._evaluate_binary(expr.op, left_val, right_val)
        except (TypeError, ValueError, ZeroDivisionError) as e:
            logger.debug(f"Cannot fold {expr.to_sql()}: {e}")
            return BinaryOp(op=expr.op, left=left, right=right)

        if expr.op == BinaryOpType.DIVIDE:
            return Literal(result_value, DataType.DOUBLE)
        return Literal(result_value, infer_data_type(result_value))

    def _evaluate_binary(self, op: BinaryOpType, left_val: Any, right_val: Any) -> Any:
        if op in ARITHMETIC_OPS and not (is_number(left_val) and is_number(right_val)):
            raise TypeError(f"Cannot apply {op.value} to {left_val!r} and {right_val!r}")
        if op == BinaryOpType.ADD:
            return left_val + right_val
        if op == BinaryOpType.SUBTRACT:
            return left_val - right_val
        if op == BinaryOpType.MULTIPLY:
            return left_val * right_val
        if op == BinaryOpType.DIVIDE:
            return left_val / right_val
        if op == BinaryOpType.MODULO:
            return sql_modulo(left_val, right_val)
        if op in COMPARISON_OPS and op != BinaryOpType.LIKE:
            check_comparable(left_val, right_val)
        if op == BinaryOpType.EQ:
            return left_val == right_val
        if op == BinaryOpType.NEQ:
            return left_val != right_val
        if op == BinaryOpType.LT:
            return left_val < right_val
        if op == BinaryOpType.LTE:
            return left_val <= right_val
        if op == BinaryOpType.GT:
            return left_val > right_val
        if op == BinaryOpType.GTE:
            return left_val >= right_val
        if op == BinaryOpType.CONCAT:
            return str(left_val) + str(right_val)
        if op == BinaryOpType.LIKE:
            if not isinstance(left_val, str) or not isinstance(right_val, str):
                raise TypeError("LIKE requires string operands")
            return like_to_regex(right_val).fullmatch(left_val) is not None
        raise ValueError(f"Unsupported binary operator: {op}")

    def _fold_unary_op(self, expr: UnaryOp) -> Expression:
        """Fold unary operations with constant operands."""
        operand = self.rewrite(expr.operand)

        if not isinstance(operand, Literal):
            if operand == expr.operand:
                return expr
            return UnaryOp(op=expr.op, operand=operand)

        operand_val = operand.value

        if expr.op == UnaryOpType.IS_NULL:
            return Literal(operand_val is None, DataType.BOOLEAN)
        if expr.op == UnaryOpType.IS_NOT_NULL:
            return Literal(operand_val is not None, DataType.BOOLEAN)

        if operand_val is None:
            return NULL

        if expr.op == UnaryOpType.NOT:
            return Literal(not bool(operand_val), DataType.BOOLEAN)

        try:
            result_value = -operand_val
        except TypeError:
            return UnaryOp(op=expr.op, operand=operand)
        return Literal(result_value, infer_data_type(result_value))

    def _fold_function_call(self, expr: FunctionCall) -> Expression:
        """Evaluate a function call whose arguments are all constant."""
        folded = self.rewrite_function_call(expr)
        if not isinstance(folded, FunctionCall):
            return folded
        if self.functions is None:
            return folded
        if not folded.deterministic and not self.fold_volatile:
            return folded
        if not all(isinstance(arg, Literal) for arg in folded.args):
            return folded

        definition = self.functions.lookup(folded.function_name)
        if definition is None:
            return folded

        try:
            result_value = definition.invoke([arg.value for arg in folded.args])
        except (NotImplementedError, TypeError, ValueError, ArithmeticError) as e:
            logger.debug(f"Cannot fold {folded.to_sql()}: {e}")
            return folded

        data_type = folded.return_type or definition.return_type
        if result_value is None or data_type is None:
            data_type = infer_data_type(result_value)
        return Literal(result_value, data_type)

    def _fold_in_list(self, expr: InList) -> Expression:
        """Fold ``value IN (...)``: TRUE on a match, NULL if a NULL could match."""
        folded = self.rewrite_in_list(expr)
        if not isinstance(folded.value, Literal):
            return folded
        if folded.value.value is None:
            return NULL

        saw_null = False
        saw_unknown = False
        for option in folded.options:
            if not isinstance(option, Literal):
                saw_unknown = True
                continue
            if option.value is None:
                saw_null = True
                continue
            try:
                check_comparable(folded.value.value, option.value)
            except TypeError:
                saw_unknown = True
                continue
            if folded.value.value == option.value:
                return TRUE

        if saw_unknown:
            return folded
        if saw_null:
            return NULL
        return FALSE

    def _fold_between(self, expr: BetweenExpression) -> Expression:
        """Fold BETWEEN as ``value >= lower AND value <= upper``."""
        folded = self.rewrite_between(expr)
        expanded = Conjunction(
            (
                BinaryOp(BinaryOpType.GTE, folded.value, folded.lower),
                BinaryOp(BinaryOpType.LTE, folded.value, folded.upper),
            )
        )
        result = self._fold_conjunction(expanded)
        if isinstance(result, Literal):
            return result
        return folded

    def _fold_conjunction(self, expr: Conjunction) -> Expression:
        """Kleene AND: FALSE wins, then NULL, then TRUE."""
        remaining: List[Expression] = []
        saw_null = False
        for operand in expr.operands:
            folded = self.rewrite(operand)
            if isinstance(folded, Literal):
                if folded.value is None:
                    saw_null = True
                    continue
                if not bool(folded.value):
                    return FALSE
                continue
            remaining.append(folded)

        if not remaining:
            return NULL if saw_null else TRUE
        if saw_null:
            remaining.append(NULL)
        if len(remaining) == 1:
            return remaining[0]
        return Conjunction(tuple(remaining))

    def _fold_disjunction(self, expr: Disjunction) -> Expression:
        """Kleene OR: TRUE wins, then NULL, then FALSE."""
        remaining: List[Expression] = []
        saw_null = False
        for operand in expr.operands:
            folded = self.rewrite(operand)
            if isinstance(folded, Literal):
                if folded.value is None:
                    saw_null = True
                    continue
                if bool(folded.value):
                    return TRUE
                continue
            remaining.append(folded)

        if not remaining:
            return NULL if saw_null else FALSE
        if saw_null:
            remaining.append(NULL)
        if len(remaining) == 1:
            return remaining[0]
        return Disjunction(tuple(remaining))


def like_to_regex(pattern: str):
    """Compile a SQL LIKE pattern (``%`` and ``_`` wildcards)."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def evaluate(
    expr: Expression,
    values: Mapping[str, Any],
    functions: Optional[FunctionRegistry] = None,
    fold_volatile: bool = False,
) -> Expression:
    """Substitute ``values`` for columns and fold the result."""
    substituted = ColumnSubstitutionRewriter(values).rewrite(expr)
    return ConstantFoldingRewriter(functions, fold_volatile).rewrite(substituted)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _value_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "timestamp"
    if isinstance(value, date):
        return "date"
    return type(value).__name__


def check_comparable(left_val: Any, right_val: Any) -> None:
    """Raise TypeError unless both values belong to the same SQL type family.

    Python compares ``1 == '1'`` as False where SQL would cast one side, so a
    mixed comparison must not be folded at all.
    """
    left_kind = _value_kind(left_val)
    right_kind = _value_kind(right_val)
    if left_kind != right_kind:
        raise TypeError(f"Cannot compare {left_kind} with {right_kind}")


def sql_modulo(left_val: Any, right_val: Any) -> Any:
    """SQL ``%``: the result takes the sign of the dividend."""
    remainder = abs(left_val) % abs(right_val)
    if left_val < 0:
        return -remainder
    return remainder
