"""Query plan representations."""

from .expressions import (
    Expression,
    ColumnRef,
    Literal,
    BinaryOp,
    BinaryOpType,
    UnaryOp,
    UnaryOpType,
    FunctionCall,
    InList,
    BetweenExpression,
    Conjunction,
    Disjunction,
    DataType,
    conjunction,
    disjunction,
    split_conjuncts,
)
from .partition import Partition, partitions_predicate
from .logical import (
    LogicalPlanNode,
    Scan,
    Project,
    Filter,
    Limit,
    PlanPrinter,
    format_plan,
)

__all__ = [
    # Logical nodes
    "LogicalPlanNode",
    "Scan",
    "Project",
    "Filter",
    "Limit",
    "PlanPrinter",
    "format_plan",
    # Partitions
    "Partition",
    "partitions_predicate",
    # Expressions
    "Expression",
    "ColumnRef",
    "Literal",
    "BinaryOp",
    "BinaryOpType",
    "UnaryOp",
    "UnaryOpType",
    "FunctionCall",
    "InList",
    "BetweenExpression",
    "Conjunction",
    "Disjunction",
    "DataType",
    "conjunction",
    "disjunction",
    "split_conjuncts",
]
