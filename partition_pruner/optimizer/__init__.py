"""Query optimizer."""

from .rules import (
    OptimizationRule,
    RuleBasedOptimizer,
    RuleDiagnostic,
    PartitionPruningRule,
    FilterProjectTransposeRule,
)
from .classifier import ExpressionClassifier, Safety, referenced_columns
from .predicate_splitter import PredicateSplitter, SplitResult
from .partition_pruner import PartitionPruner, PruneResult, NullPartitionPolicy
from .expression_rewriter import (
    ExpressionRewriter,
    ColumnSubstitutionRewriter,
    ConstantFoldingRewriter,
    evaluate,
)

__all__ = [
    "OptimizationRule",
    "RuleBasedOptimizer",
    "RuleDiagnostic",
    "PartitionPruningRule",
    "FilterProjectTransposeRule",
    "ExpressionClassifier",
    "Safety",
    "referenced_columns",
    "PredicateSplitter",
    "SplitResult",
    "PartitionPruner",
    "PruneResult",
    "NullPartitionPolicy",
    "ExpressionRewriter",
    "ColumnSubstitutionRewriter",
    "ConstantFoldingRewriter",
    "evaluate",
]
