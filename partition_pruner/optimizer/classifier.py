"""Partition-safety classification of expressions."""

import logging
from enum import Enum
from typing import Iterable, Optional, Set
from ..plan.expressions import (
    Expression,
    ExpressionVisitor,
    ColumnRef,
    Literal,
    BinaryOp,
    UnaryOp,
    FunctionCall,
    InList,
    BetweenExpression,
    Conjunction,
    Disjunction,
)

logger = logging.getLogger(__name__)

_CLASSIFIABLE = (
    ColumnRef,
    Literal,
    BinaryOp,
    UnaryOp,
    FunctionCall,
    InList,
    BetweenExpression,
    Conjunction,
    Disjunction,
)


class Safety(Enum):
    """Whether an expression can be evaluated from partition values alone."""

    SAFE = "safe"
    UNSAFE = "unsafe"


class ExpressionClassifier(ExpressionVisitor):
    """Decide whether an expression depends only on a set of columns.

    An expression is SAFE when every column it references is one of the safe
    columns, no referenced column is computed, and every function it calls is
    deterministic. Column-free expressions are SAFE.

    AND/OR are not classified here: they are UNSAFE as a unit and the
    predicate splitter is responsible for looking inside them.
    """

    def __init__(self, computed_columns: Optional[Iterable[str]] = None):
        """Initialize classifier.

        Args:
            computed_columns: Virtual column names of the table being pruned
        """
        self.computed_columns = {name.lower() for name in (computed_columns or [])}
        self._safe_columns: Set[str] = set()

    def classify(self, expr: Expression, safe_columns: Iterable[str]) -> Safety:
        """Classify an expression against a set of safe column names.

        Args:
            expr: Expression to classify
            safe_columns: Column names the expression may reference

        Returns:
            Safety.SAFE or Safety.UNSAFE
        """
        self._safe_columns = {name.lower() for name in safe_columns}
        return Safety.SAFE if self._is_safe(expr) else Safety.UNSAFE

    def is_safe(self, expr: Expression, safe_columns: Iterable[str]) -> bool:
        return self.classify(expr, safe_columns) == Safety.SAFE

    def _is_safe(self, expr: Expression) -> bool:
        if not isinstance(expr, _CLASSIFIABLE):
            logger.debug(
                f"Unrecognized expression {type(expr).__name__} classified as unsafe"
            )
            return False
        return expr.accept(self)

    def _all_safe(self, exprs: Iterable[Expression]) -> bool:
        for expr in exprs:
            if not self._is_safe(expr):
                return False
        return True

    def visit_column_ref(self, expr: ColumnRef) -> bool:
        name = expr.column.lower()
        if name in self.computed_columns:
            return False
        return name in self._safe_columns

    def visit_literal(self, expr: Literal) -> bool:
        return True

    def visit_binary_op(self, expr: BinaryOp) -> bool:
        return self._all_safe((expr.left, expr.right))

    def visit_unary_op(self, expr: UnaryOp) -> bool:
        return self._is_safe(expr.operand)

    def visit_function_call(self, expr: FunctionCall) -> bool:
        if not expr.deterministic:
            return False
        return self._all_safe(expr.args)

    def visit_in_list(self, expr: InList) -> bool:
        return self._all_safe(expr.children())

    def visit_between(self, expr: BetweenExpression) -> bool:
        return self._all_safe(expr.children())

    def visit_conjunction(self, expr: Conjunction) -> bool:
        return False

    def visit_disjunction(self, expr: Disjunction) -> bool:
        return False


def referenced_columns(expr: Expression) -> Set[str]:
    """Lower-case names of every column an expression references."""
    if isinstance(expr, ColumnRef):
        return {expr.column.lower()}
    names: Set[str] = set()
    for child in expr.children():
        names |= referenced_columns(child)
    return names
