"""Split a filter into a partition-only part and a residual."""

from dataclasses import dataclass
from typing import Iterable, List, Optional
from ..plan.expressions import (
    Expression,
    Conjunction,
    Disjunction,
    UnaryOp,
    UnaryOpType,
    conjunction,
    split_conjuncts,
)
from .classifier import ExpressionClassifier, Safety, referenced_columns


@dataclass(frozen=True)
class SplitResult:
    """Result of splitting a filter predicate.

    ``partition_predicate AND residual_predicate`` is equivalent to the
    original filter. Either side may be None.
    """

    partition_predicate: Optional[Expression]
    residual_predicate: Optional[Expression]

    def has_partition_predicate(self) -> bool:
        return self.partition_predicate is not None

    def has_residual(self) -> bool:
        return self.residual_predicate is not None


class PredicateSplitter:
    """Separate partition-safe conjuncts from the rest of a filter.

    The filter is flattened into conjuncts. A conjunct goes to the partition
    side only when it is safe as a whole. Disjunctions are never split: an OR
    is safe only if every branch is. A filter that references no partition
    column has no partition side at all.
    """

    def __init__(self, classifier: Optional[ExpressionClassifier] = None):
        self.classifier = classifier or ExpressionClassifier()

    def split(self, predicate: Expression, safe_columns: Iterable[str]) -> SplitResult:
        """Split a predicate.

        Args:
            predicate: Filter predicate
            safe_columns: Partition column names

        Returns:
            SplitResult with the partition-safe and residual parts
        """
        safe_columns = list(safe_columns)
        partition_keys = {column.lower() for column in safe_columns}
        if not referenced_columns(predicate) & partition_keys:
            return SplitResult(partition_predicate=None, residual_predicate=predicate)

        safe: List[Expression] = []
        residual: List[Expression] = []

        for conjunct in split_conjuncts(predicate):
            if self._fully_safe(conjunct, safe_columns):
                safe.append(conjunct)
            else:
                residual.append(conjunct)

        return SplitResult(
            partition_predicate=conjunction(safe),
            residual_predicate=conjunction(residual),
        )

    def _fully_safe(self, expr: Expression, safe_columns: List[str]) -> bool:
        """Safe as a unit, looking through AND, OR and NOT."""
        if isinstance(expr, (Conjunction, Disjunction)):
            for operand in expr.operands:
                if not self._fully_safe(operand, safe_columns):
                    return False
            return True
        if isinstance(expr, UnaryOp) and expr.op == UnaryOpType.NOT:
            return self._fully_safe(expr.operand, safe_columns)
        return self.classifier.classify(expr, safe_columns) == Safety.SAFE
