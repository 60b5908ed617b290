"""Expression nodes for query plans."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple
from enum import Enum


class DataType(Enum):
    """SQL data types."""

    INTEGER = "INTEGER"
    BIGINT = "BIGINT"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    DECIMAL = "DECIMAL"
    VARCHAR = "VARCHAR"
    TEXT = "TEXT"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    NULL = "NULL"


def infer_data_type(value: Any) -> DataType:
    """Infer the SQL type of a Python value."""
    if value is None:
        return DataType.NULL
    if isinstance(value, bool):
        return DataType.BOOLEAN
    if isinstance(value, int):
        return DataType.BIGINT
    if isinstance(value, float):
        return DataType.DOUBLE
    return DataType.VARCHAR


class Expression(ABC):
    """Base class for all expressions."""

    @abstractmethod
    def get_type(self) -> DataType:
        """Get the data type of this expression."""
        pass

    @abstractmethod
    def accept(self, visitor):
        """Accept a visitor for the visitor pattern."""
        pass

    @abstractmethod
    def to_sql(self) -> str:
        """Convert expression to SQL string."""
        pass

    @abstractmethod
    def children(self) -> List["Expression"]:
        """Return direct sub-expressions."""
        pass


@dataclass(frozen=True)
class ColumnRef(Expression):
    """Column reference expression."""

    table: Optional[str]  # Can be None for unqualified references
    column: str
    data_type: Optional[DataType] = None  # Set during binding

    def get_type(self) -> DataType:
        if self.data_type is None:
            raise NotImplementedError("Type must be set during binding")
        return self.data_type

    def accept(self, visitor):
        return visitor.visit_column_ref(self)

    def to_sql(self) -> str:
        if self.table:
            return f"{self.table}.{self.column}"
        return self.column

    def children(self) -> List[Expression]:
        return []

    def __repr__(self) -> str:
        return f"ColumnRef({self.table}.{self.column})" if self.table else f"ColumnRef({self.column})"


@dataclass(frozen=True)
class Literal(Expression):
    """Literal value expression."""

    value: Any
    data_type: DataType

    def get_type(self) -> DataType:
        return self.data_type

    def accept(self, visitor):
        return visitor.visit_literal(self)

    def to_sql(self) -> str:
        if self.value is None:
            return "NULL"
        if isinstance(self.value, bool):
            return "TRUE" if self.value else "FALSE"
        if self.data_type in (DataType.VARCHAR, DataType.TEXT, DataType.DATE, DataType.TIMESTAMP):
            escaped = str(self.value).replace("'", "''")
            return f"'{escaped}'"
        return str(self.value)

    def children(self) -> List[Expression]:
        return []

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


class BinaryOpType(Enum):
    """Binary operator types."""

    # Arithmetic
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    MODULO = "%"

    # Comparison
    EQ = "="
    NEQ = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="

    # String
    CONCAT = "||"
    LIKE = "LIKE"


COMPARISON_OPS = frozenset(
    [
        BinaryOpType.EQ,
        BinaryOpType.NEQ,
        BinaryOpType.LT,
        BinaryOpType.LTE,
        BinaryOpType.GT,
        BinaryOpType.GTE,
        BinaryOpType.LIKE,
    ]
)


@dataclass(frozen=True)
class BinaryOp(Expression):
    """Binary operation expression.

    Covers both comparisons and arithmetic. Boolean AND/OR are modelled by
    Conjunction and Disjunction instead.
    """

    op: BinaryOpType
    left: Expression
    right: Expression

    def is_comparison(self) -> bool:
        return self.op in COMPARISON_OPS

    def get_type(self) -> DataType:
        if self.is_comparison():
            return DataType.BOOLEAN
        if self.op == BinaryOpType.CONCAT:
            return DataType.VARCHAR
        # Arithmetic inherits the left operand type (no coercion)
        return self.left.get_type()

    def accept(self, visitor):
        return visitor.visit_binary_op(self)

    def to_sql(self) -> str:
        return f"({self.left.to_sql()} {self.op.value} {self.right.to_sql()})"

    def children(self) -> List[Expression]:
        return [self.left, self.right]

    def __repr__(self) -> str:
        return f"BinaryOp({self.op.value}, {self.left}, {self.right})"


class UnaryOpType(Enum):
    """Unary operator types."""

    NOT = "NOT"
    NEGATE = "-"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"


@dataclass(frozen=True)
class UnaryOp(Expression):
    """Unary operation expression."""

    op: UnaryOpType
    operand: Expression

    def get_type(self) -> DataType:
        if self.op in (UnaryOpType.NOT, UnaryOpType.IS_NULL, UnaryOpType.IS_NOT_NULL):
            return DataType.BOOLEAN
        return self.operand.get_type()

    def accept(self, visitor):
        return visitor.visit_unary_op(self)

    def to_sql(self) -> str:
        if self.op in (UnaryOpType.IS_NULL, UnaryOpType.IS_NOT_NULL):
            return f"({self.operand.to_sql()} {self.op.value})"
        return f"({self.op.value} {self.operand.to_sql()})"

    def children(self) -> List[Expression]:
        return [self.operand]

    def __repr__(self) -> str:
        return f"UnaryOp({self.op.value}, {self.operand})"


@dataclass(frozen=True)
class FunctionCall(Expression):
    """Function call expression.

    ``deterministic`` comes from the function's declared metadata in the
    catalog function registry and is filled in by the binder.
    """

    function_name: str
    args: Tuple[Expression, ...]
    deterministic: bool = True
    return_type: Optional[DataType] = None

    def get_type(self) -> DataType:
        if self.return_type is not None:
            return self.return_type
        return DataType.VARCHAR

    def accept(self, visitor):
        return visitor.visit_function_call(self)

    def to_sql(self) -> str:
        args_sql = ", ".join(arg.to_sql() for arg in self.args)
        return f"{self.function_name}({args_sql})"

    def children(self) -> List[Expression]:
        return list(self.args)

    def __repr__(self) -> str:
        return f"FunctionCall({self.function_name}, {list(self.args)})"


@dataclass(frozen=True)
class InList(Expression):
    """``value IN (options...)`` expression."""

    value: Expression
    options: Tuple[Expression, ...]

    def get_type(self) -> DataType:
        return DataType.BOOLEAN

    def accept(self, visitor):
        return visitor.visit_in_list(self)

    def to_sql(self) -> str:
        options_sql = ", ".join(option.to_sql() for option in self.options)
        return f"({self.value.to_sql()} IN ({options_sql}))"

    def children(self) -> List[Expression]:
        return [self.value] + list(self.options)

    def __repr__(self) -> str:
        return f"InList({self.value}, {list(self.options)})"


@dataclass(frozen=True)
class BetweenExpression(Expression):
    """``value BETWEEN lower AND upper`` expression."""

    value: Expression
    lower: Expression
    upper: Expression

    def get_type(self) -> DataType:
        return DataType.BOOLEAN

    def accept(self, visitor):
        return visitor.visit_between(self)

    def to_sql(self) -> str:
        return (
            f"({self.value.to_sql()} BETWEEN {self.lower.to_sql()} "
            f"AND {self.upper.to_sql()})"
        )

    def children(self) -> List[Expression]:
        return [self.value, self.lower, self.upper]

    def __repr__(self) -> str:
        return f"Between({self.value}, {self.lower}, {self.upper})"


@dataclass(frozen=True)
class Conjunction(Expression):
    """N-ary AND."""

    operands: Tuple[Expression, ...]

    def get_type(self) -> DataType:
        return DataType.BOOLEAN

    def accept(self, visitor):
        return visitor.visit_conjunction(self)

    def to_sql(self) -> str:
        return "(" + " AND ".join(operand.to_sql() for operand in self.operands) + ")"

    def children(self) -> List[Expression]:
        return list(self.operands)

    def __repr__(self) -> str:
        return "And(" + ", ".join(repr(operand) for operand in self.operands) + ")"


@dataclass(frozen=True)
class Disjunction(Expression):
    """N-ary OR."""

    operands: Tuple[Expression, ...]

    def get_type(self) -> DataType:
        return DataType.BOOLEAN

    def accept(self, visitor):
        return visitor.visit_disjunction(self)

    def to_sql(self) -> str:
        return "(" + " OR ".join(operand.to_sql() for operand in self.operands) + ")"

    def children(self) -> List[Expression]:
        return list(self.operands)

    def __repr__(self) -> str:
        return "Or(" + ", ".join(repr(operand) for operand in self.operands) + ")"


def split_conjuncts(expr: Expression) -> List[Expression]:
    """Flatten nested conjunctions into a list of conjuncts."""
    if not isinstance(expr, Conjunction):
        return [expr]
    conjuncts: List[Expression] = []
    for operand in expr.operands:
        conjuncts.extend(split_conjuncts(operand))
    return conjuncts


def conjunction(expressions: Iterable[Expression]) -> Optional[Expression]:
    """Join expressions with AND.

    Returns None for an empty input and the expression itself for a single
    operand.
    """
    operands = tuple(expressions)
    if not operands:
        return None
    if len(operands) == 1:
        return operands[0]
    return Conjunction(operands)


def disjunction(expressions: Iterable[Expression]) -> Optional[Expression]:
    """Join expressions with OR."""
    operands = tuple(expressions)
    if not operands:
        return None
    if len(operands) == 1:
        return operands[0]
    return Disjunction(operands)


class ExpressionVisitor(ABC):
    """Visitor interface for expressions."""

    @abstractmethod
    def visit_column_ref(self, expr: ColumnRef):
        pass

    @abstractmethod
    def visit_literal(self, expr: Literal):
        pass

    @abstractmethod
    def visit_binary_op(self, expr: BinaryOp):
        pass

    @abstractmethod
    def visit_unary_op(self, expr: UnaryOp):
        pass

    @abstractmethod
    def visit_function_call(self, expr: FunctionCall):
        pass

    @abstractmethod
    def visit_in_list(self, expr: InList):
        pass

    @abstractmethod
    def visit_between(self, expr: BetweenExpression):
        pass

    @abstractmethod
    def visit_conjunction(self, expr: Conjunction):
        pass

    @abstractmethod
    def visit_disjunction(self, expr: Disjunction):
        pass
