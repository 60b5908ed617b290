"""Binder resolves references and validates types."""

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple
from ..catalog.catalog import Catalog
from ..catalog.schema import Table
from ..optimizer.expression_rewriter import ExpressionRewriter
from ..plan.logical import (
    LogicalPlanNode,
    Scan,
    Project,
    Filter,
    Limit,
)
from ..plan.expressions import (
    Expression,
    ColumnRef,
    FunctionCall,
    Literal,
    BinaryOp,
    BinaryOpType,
    InList,
    BetweenExpression,
    DataType,
)


class BindingError(Exception):
    """Exception raised during binding."""

    pass


# String literals compared with these types are cast the way SQL casts them
_STRING_CASTS = {
    DataType.INTEGER: int,
    DataType.BIGINT: int,
    DataType.FLOAT: float,
    DataType.DOUBLE: float,
    DataType.DECIMAL: Decimal,
    DataType.DATE: date.fromisoformat,
    DataType.TIMESTAMP: datetime.fromisoformat,
}


def _operand_type(expr: Expression) -> Optional[DataType]:
    if isinstance(expr, Literal):
        return None
    try:
        return expr.get_type()
    except NotImplementedError:
        return None


def coerce_literal(expr: Expression, target: Optional[DataType]) -> Expression:
    """Cast a string literal to ``target`` when it is compared with that type.

    Raises:
        BindingError: If the string is not a valid value of ``target``
    """
    if not isinstance(expr, Literal) or not isinstance(expr.value, str):
        return expr
    cast = _STRING_CASTS.get(target)
    if cast is None:
        return expr
    try:
        value = cast(expr.value.strip())
    except (ValueError, InvalidOperation):
        raise BindingError(
            f"Could not convert string '{expr.value}' to {target.value}"
        ) from None
    return Literal(value, target)


class _ExpressionBinder(ExpressionRewriter):
    """Resolve columns and functions of one expression against a table."""

    def __init__(self, catalog: Catalog, table: Table, scan: Scan):
        self.catalog = catalog
        self.table = table
        self.qualifiers = {table.name.lower()}
        if scan.alias:
            self.qualifiers.add(scan.alias.lower())

    def rewrite(self, expr: Expression) -> Expression:
        if isinstance(expr, ColumnRef):
            return self._bind_column_ref(expr)
        if isinstance(expr, FunctionCall):
            return self._bind_function_call(expr)
        return self._coerce(self.rewrite_children(expr))

    def _coerce(self, expr: Expression) -> Expression:
        if isinstance(expr, BinaryOp) and expr.is_comparison():
            if expr.op == BinaryOpType.LIKE:
                return expr
            return BinaryOp(
                op=expr.op,
                left=coerce_literal(expr.left, _operand_type(expr.right)),
                right=coerce_literal(expr.right, _operand_type(expr.left)),
            )
        if isinstance(expr, InList):
            target = _operand_type(expr.value)
            options = tuple(coerce_literal(option, target) for option in expr.options)
            return InList(value=expr.value, options=options)
        if isinstance(expr, BetweenExpression):
            target = _operand_type(expr.value)
            return BetweenExpression(
                value=expr.value,
                lower=coerce_literal(expr.lower, target),
                upper=coerce_literal(expr.upper, target),
            )
        return expr

    def _bind_column_ref(self, col_ref: ColumnRef) -> ColumnRef:
        if col_ref.table and col_ref.table.lower() not in self.qualifiers:
            raise BindingError(
                f"Column '{col_ref.column}' with qualifier '{col_ref.table}' not found"
            )
        column = self.table.get_column(col_ref.column)
        if column is None:
            raise BindingError(
                f"Column '{col_ref.column}' not found in table {self.table.name}"
            )
        return ColumnRef(table=col_ref.table, column=column.name, data_type=column.data_type)

    def _bind_function_call(self, call: FunctionCall) -> FunctionCall:
        definition = self.catalog.functions.lookup(call.function_name)
        if definition is None:
            raise BindingError(f"Unknown function: {call.function_name}")
        args = tuple(self.rewrite(arg) for arg in call.args)
        return FunctionCall(
            function_name=definition.name,
            args=args,
            deterministic=definition.deterministic,
            return_type=definition.return_type,
        )


class Binder:
    """Binder resolves table and column references."""

    def __init__(self, catalog: Catalog):
        """Initialize binder.

        Args:
            catalog: Catalog with metadata
        """
        self.catalog = catalog

    def bind(self, plan: LogicalPlanNode) -> LogicalPlanNode:
        """Bind a logical plan.

        This resolves all table and column references, expands ``*``,
        attaches column types and function metadata.

        Args:
            plan: Unbound logical plan

        Returns:
            Bound logical plan with resolved references

        Raises:
            BindingError: If binding fails
        """
        if isinstance(plan, Scan):
            return self._bind_scan(plan)
        if isinstance(plan, Filter):
            return self._bind_filter(plan)
        if isinstance(plan, Project):
            return self._bind_project(plan)
        if isinstance(plan, Limit):
            return self._bind_limit(plan)
        raise BindingError(f"Unsupported plan node type: {type(plan)}")

    def _bind_scan(self, scan: Scan) -> Scan:
        """Bind a Scan node to a catalog table."""
        datasource, schema_name, table = self._resolve_table(scan)

        if "*" in scan.columns:
            columns = table.column_names()
        else:
            columns = []
            for col_name in scan.columns:
                column = table.get_column(col_name)
                if column is None:
                    raise BindingError(
                        f"Column '{col_name}' not found in table {table.name}"
                    )
                columns.append(column.name)

        return replace(
            scan,
            datasource=datasource,
            schema_name=schema_name,
            table_name=table.name,
            columns=columns,
        )

    def _resolve_table(self, scan: Scan) -> Tuple[str, str, Table]:
        """Resolve a possibly partial table reference."""
        parts = [scan.datasource, scan.schema_name, scan.table_name]
        table_ref = ".".join(part for part in parts if part)
        resolved = self.catalog.resolve_table(table_ref)
        if resolved is None:
            raise BindingError(f"Table not found: {table_ref}")
        datasource, schema_name, _, table = resolved
        return datasource, schema_name, table

    def _bind_filter(self, filter_node: Filter) -> Filter:
        """Bind a Filter node."""
        bound_input = self.bind(filter_node.input)
        table, scan = self._get_table_from_plan(bound_input)
        binder = _ExpressionBinder(self.catalog, table, scan)
        return Filter(input=bound_input, predicate=binder.rewrite(filter_node.predicate))

    def _bind_project(self, project: Project) -> Project:
        """Bind a Project node, expanding ``*``."""
        bound_input = self.bind(project.input)
        table, scan = self._get_table_from_plan(bound_input)
        binder = _ExpressionBinder(self.catalog, table, scan)

        expressions: List[Expression] = []
        aliases: List[str] = []
        for expr, alias in zip(project.expressions, project.aliases):
            if isinstance(expr, ColumnRef) and expr.column == "*":
                for column in table.columns:
                    expressions.append(
                        ColumnRef(table=expr.table, column=column.name, data_type=column.data_type)
                    )
                    aliases.append(column.name)
                continue
            expressions.append(binder.rewrite(expr))
            aliases.append(alias)

        return Project(input=bound_input, expressions=expressions, aliases=aliases)

    def _bind_limit(self, limit: Limit) -> Limit:
        """Bind a Limit node."""
        bound_input = self.bind(limit.input)
        return Limit(input=bound_input, limit=limit.limit, offset=limit.offset)

    def _get_table_from_plan(self, plan: LogicalPlanNode) -> Tuple[Table, Scan]:
        """Find the single scanned table under a bound plan."""
        node: Optional[LogicalPlanNode] = plan
        while node is not None and not isinstance(node, Scan):
            children = node.children()
            node = children[0] if children else None
        if node is None:
            raise BindingError("Can not resolve columns: no table context")
        table = self.catalog.get_table(node.datasource, node.schema_name, node.table_name)
        if table is None:
            raise BindingError(f"Table not found: {node.qualified_name()}")
        return table, node

    def __repr__(self) -> str:
        return f"Binder(catalog={self.catalog})"
