"""Operator implementations over Arrow record batches."""

from functools import reduce
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
import pyarrow as pa
import pyarrow.compute as pc
from ..catalog.functions import FunctionDefinition, FunctionRegistry
from ..plan.expressions import (
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
)

Datum = Union[pa.Array, pa.ChunkedArray, pa.Scalar]


class ExecutionError(Exception):
    """Raised when an operator cannot evaluate an expression."""

    pass


_ARROW_TYPES = {
    DataType.INTEGER: pa.int32(),
    DataType.BIGINT: pa.int64(),
    DataType.FLOAT: pa.float32(),
    DataType.DOUBLE: pa.float64(),
    DataType.VARCHAR: pa.string(),
    DataType.TEXT: pa.string(),
    DataType.BOOLEAN: pa.bool_(),
    DataType.DATE: pa.date32(),
    DataType.TIMESTAMP: pa.timestamp("us"),
}

_COMPARISONS = {
    BinaryOpType.EQ: pc.equal,
    BinaryOpType.NEQ: pc.not_equal,
    BinaryOpType.LT: pc.less,
    BinaryOpType.LTE: pc.less_equal,
    BinaryOpType.GT: pc.greater,
    BinaryOpType.GTE: pc.greater_equal,
}

_ARITHMETIC = {
    BinaryOpType.ADD: pc.add,
    BinaryOpType.SUBTRACT: pc.subtract,
    BinaryOpType.MULTIPLY: pc.multiply,
}


def arrow_type(data_type: Optional[DataType]) -> pa.DataType:
    """Arrow type of a plan data type; NULL and unknown types map to null."""
    return _ARROW_TYPES.get(data_type, pa.null())


def _is_integer(value: Datum) -> bool:
    return pa.types.is_integer(value.type)


def _null_if_zero(value: Datum) -> Datum:
    # SQL division and modulo by zero yield NULL
    return pc.if_else(pc.equal(value, 0), pa.scalar(None, value.type), value)


def _sql_round(value: Datum, digits: Optional[Datum] = None) -> Datum:
    if digits is not None and not isinstance(digits, pa.Scalar):
        raise ExecutionError("ROUND needs a constant number of digits")
    ndigits = 0 if digits is None else digits.as_py()
    if _is_integer(value):
        value = pc.cast(value, pa.float64())
    return pc.round(value, ndigits=ndigits, round_mode="half_towards_infinity")


def _sql_concat(*args: Datum) -> Datum:
    strings = [pc.cast(arg, pa.string()) for arg in args]
    return pc.binary_join_element_wise(*strings, "", null_handling="skip")


# Built-in functions with a vectorized Arrow kernel; the rest run element-wise
_KERNELS: Dict[str, Callable[..., Datum]] = {
    "UPPER": pc.utf8_upper,
    "LOWER": pc.utf8_lower,
    "LENGTH": pc.utf8_length,
    "ABS": pc.abs,
    "ROUND": _sql_round,
    "COALESCE": pc.coalesce,
    "CONCAT": _sql_concat,
}


class ExpressionEvaluator:
    """Evaluate an expression over a record batch with Arrow compute kernels.

    AND, OR and NOT follow SQL three-valued logic through the Kleene kernels.
    Functions without a kernel are looked up in the registry and applied to
    each row.
    """

    def __init__(self, functions: Optional[FunctionRegistry] = None):
        self.functions = functions

    def evaluate(self, expr: Expression, batch: pa.RecordBatch) -> pa.Array:
        """Evaluate ``expr`` to an array with one value per row.

        Raises:
            ExecutionError: If the expression cannot be evaluated
        """
        try:
            result = self._evaluate(expr, batch)
        except (pa.ArrowException, TypeError, ValueError) as e:
            raise ExecutionError(f"Cannot evaluate {expr.to_sql()}: {e}") from e
        return self._broadcast(result, batch.num_rows)

    def _evaluate(self, expr: Expression, batch: pa.RecordBatch) -> Datum:
        if isinstance(expr, ColumnRef):
            return self._column(expr, batch)
        if isinstance(expr, Literal):
            return pa.scalar(expr.value, type=self._literal_type(expr))
        if isinstance(expr, BinaryOp):
            return self._evaluate_binary_op(expr, batch)
        if isinstance(expr, UnaryOp):
            return self._evaluate_unary_op(expr, batch)
        if isinstance(expr, Conjunction):
            operands = [self._evaluate(operand, batch) for operand in expr.operands]
            return reduce(pc.and_kleene, operands)
        if isinstance(expr, Disjunction):
            operands = [self._evaluate(operand, batch) for operand in expr.operands]
            return reduce(pc.or_kleene, operands)
        if isinstance(expr, InList):
            value = self._evaluate(expr.value, batch)
            matches = [
                self._compare(BinaryOpType.EQ, value, self._evaluate(option, batch))
                for option in expr.options
            ]
            return reduce(pc.or_kleene, matches)
        if isinstance(expr, BetweenExpression):
            value = self._evaluate(expr.value, batch)
            return pc.and_kleene(
                self._compare(BinaryOpType.GTE, value, self._evaluate(expr.lower, batch)),
                self._compare(BinaryOpType.LTE, value, self._evaluate(expr.upper, batch)),
            )
        if isinstance(expr, FunctionCall):
            return self._evaluate_function(expr, batch)
        raise ExecutionError(f"Cannot evaluate {expr.to_sql()}: unsupported expression")

    def _column(self, expr: ColumnRef, batch: pa.RecordBatch) -> pa.Array:
        for index, name in enumerate(batch.schema.names):
            if name.lower() == expr.column.lower():
                return batch.column(index)
        raise ExecutionError(f"Cannot evaluate {expr.to_sql()}: column not in input")

    def _literal_type(self, expr: Literal) -> Optional[pa.DataType]:
        if expr.value is None:
            return arrow_type(expr.data_type)
        # Let Arrow infer the type of non-null values
        return None

    def _evaluate_binary_op(self, expr: BinaryOp, batch: pa.RecordBatch) -> Datum:
        left = self._evaluate(expr.left, batch)
        right = self._evaluate(expr.right, batch)

        if expr.op in _COMPARISONS:
            return self._compare(expr.op, left, right)
        if expr.op == BinaryOpType.LIKE:
            if not isinstance(expr.right, Literal) or not isinstance(expr.right.value, str):
                raise ExecutionError(
                    f"Cannot evaluate {expr.to_sql()}: LIKE needs a constant pattern"
                )
            return pc.match_like(left, pattern=expr.right.value)
        if expr.op == BinaryOpType.CONCAT:
            return pc.binary_join_element_wise(
                pc.cast(left, pa.string()), pc.cast(right, pa.string()), ""
            )

        if self._is_null(left) or self._is_null(right):
            return pa.scalar(None, pa.float64())
        if expr.op in _ARITHMETIC:
            return _ARITHMETIC[expr.op](left, right)
        if expr.op == BinaryOpType.DIVIDE:
            return pc.divide(
                pc.cast(left, pa.float64()), _null_if_zero(pc.cast(right, pa.float64()))
            )
        if expr.op == BinaryOpType.MODULO:
            return self._modulo(left, right)
        raise ExecutionError(f"Operator {expr.op} not supported in expressions")

    def _compare(self, op: BinaryOpType, left: Datum, right: Datum) -> Datum:
        if self._is_null(left) or self._is_null(right):
            return pa.scalar(None, pa.bool_())
        return _COMPARISONS[op](left, right)

    def _modulo(self, left: Datum, right: Datum) -> Datum:
        """SQL ``%``: ``left - right * trunc(left / right)``."""
        right = _null_if_zero(right)
        if _is_integer(left) and _is_integer(right):
            # Integer division truncates toward zero
            quotient = pc.divide(left, right)
        else:
            left = pc.cast(left, pa.float64())
            right = pc.cast(right, pa.float64())
            quotient = pc.trunc(pc.divide(left, right))
        return pc.subtract(left, pc.multiply(right, quotient))

    def _evaluate_unary_op(self, expr: UnaryOp, batch: pa.RecordBatch) -> Datum:
        operand = self._evaluate(expr.operand, batch)
        if expr.op == UnaryOpType.IS_NULL:
            return pc.is_null(operand)
        if expr.op == UnaryOpType.IS_NOT_NULL:
            return pc.is_valid(operand)
        if expr.op == UnaryOpType.NOT:
            if self._is_null(operand):
                return pa.scalar(None, pa.bool_())
            return pc.invert(operand)
        return pc.negate(operand)

    def _evaluate_function(self, expr: FunctionCall, batch: pa.RecordBatch) -> Datum:
        definition = None
        if self.functions is not None:
            definition = self.functions.lookup(expr.function_name)
        if definition is None:
            raise ExecutionError(
                f"Cannot evaluate {expr.to_sql()}: unknown function {expr.function_name}"
            )

        args = [self._evaluate(arg, batch) for arg in expr.args]
        kernel = _KERNELS.get(definition.name)
        if kernel is not None:
            return kernel(*args)
        return self._apply_rowwise(definition, expr, args, batch.num_rows)

    def _apply_rowwise(
        self,
        definition: FunctionDefinition,
        expr: FunctionCall,
        args: List[Datum],
        num_rows: int,
    ) -> pa.Array:
        columns = [self._broadcast(arg, num_rows).to_pylist() for arg in args]
        values: List[Any] = []
        for row in range(num_rows):
            row_args = [column[row] for column in columns]
            try:
                values.append(definition.invoke(row_args))
            except (NotImplementedError, ArithmeticError) as e:
                raise ExecutionError(f"Cannot evaluate {expr.to_sql()}: {e}") from e

        return_type = expr.return_type or definition.return_type
        if return_type is not None:
            return pa.array(values, type=arrow_type(return_type))
        return pa.array(values)

    @staticmethod
    def _is_null(value: Datum) -> bool:
        return isinstance(value, pa.Scalar) and not value.is_valid

    @staticmethod
    def _broadcast(value: Datum, num_rows: int) -> pa.Array:
        if isinstance(value, pa.Scalar):
            return pa.repeat(value, num_rows)
        if isinstance(value, pa.ChunkedArray):
            return value.combine_chunks()
        return value


class OperatorExecutor:
    """Execute filter, projection and limit over record batches."""

    def __init__(self, functions: Optional[FunctionRegistry] = None):
        self.evaluator = ExpressionEvaluator(functions)

    def execute_filter(
        self, input_batches: Iterator[pa.RecordBatch], predicate: Expression
    ) -> Iterator[pa.RecordBatch]:
        """Execute filter operation.

        Rows whose predicate is FALSE or NULL are dropped.

        Args:
            input_batches: Input record batches
            predicate: Filter predicate expression

        Yields:
            Filtered record batches
        """
        for batch in input_batches:
            mask = self.evaluator.evaluate(predicate, batch)
            if pa.types.is_null(mask.type):
                mask = mask.cast(pa.bool_())
            if not pa.types.is_boolean(mask.type):
                raise ExecutionError(
                    f"Filter predicate {predicate.to_sql()} is not boolean: {mask.type}"
                )
            yield batch.filter(mask, null_selection_behavior="drop")

    def execute_project(
        self,
        input_batches: Iterator[pa.RecordBatch],
        expressions: List[Expression],
        aliases: List[str],
    ) -> Iterator[pa.RecordBatch]:
        """Execute projection operation.

        Args:
            input_batches: Input record batches
            expressions: Projection expressions
            aliases: Output column names

        Yields:
            Projected record batches
        """
        for batch in input_batches:
            arrays = [self.evaluator.evaluate(expr, batch) for expr in expressions]
            yield pa.RecordBatch.from_arrays(arrays, names=list(aliases))

    @staticmethod
    def execute_limit(
        input_batches: Iterator[pa.RecordBatch], limit: int, offset: int = 0
    ) -> Iterator[pa.RecordBatch]:
        """Skip ``offset`` rows, then yield at most ``limit`` rows."""
        to_skip = offset
        remaining = limit
        for batch in input_batches:
            if remaining <= 0:
                break
            if to_skip >= batch.num_rows:
                to_skip -= batch.num_rows
                continue
            batch = batch.slice(to_skip, remaining)
            to_skip = 0
            remaining -= batch.num_rows
            yield batch
