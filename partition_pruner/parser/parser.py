"""SQL parser using sqlglot."""

from typing import List, Optional, Tuple

import sqlglot
from sqlglot import exp

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
    Literal,
    BinaryOp,
    BinaryOpType,
    UnaryOp,
    UnaryOpType,
    DataType,
    FunctionCall,
    InList,
    BetweenExpression,
    Conjunction,
    Disjunction,
)

_BINARY_OPS = {
    exp.Add: BinaryOpType.ADD,
    exp.Sub: BinaryOpType.SUBTRACT,
    exp.Mul: BinaryOpType.MULTIPLY,
    exp.Div: BinaryOpType.DIVIDE,
    exp.Mod: BinaryOpType.MODULO,
    exp.EQ: BinaryOpType.EQ,
    exp.NEQ: BinaryOpType.NEQ,
    exp.LT: BinaryOpType.LT,
    exp.LTE: BinaryOpType.LTE,
    exp.GT: BinaryOpType.GT,
    exp.GTE: BinaryOpType.GTE,
    exp.DPipe: BinaryOpType.CONCAT,
    exp.Like: BinaryOpType.LIKE,
}


class Parser:
    """SQL parser that converts single-table SELECT statements to logical plans."""

    def __init__(self, dialect: str = "postgres"):
        """Initialize parser.

        Args:
            dialect: sqlglot dialect used to read queries
        """
        self.dialect = dialect

    def parse(self, sql: str) -> exp.Expression:
        """Parse SQL string to sqlglot AST.

        Args:
            sql: SQL query string

        Returns:
            sqlglot expression tree
        """
        return sqlglot.parse_one(sql, dialect=self.dialect)

    def ast_to_logical_plan(self, ast: exp.Expression) -> LogicalPlanNode:
        """Convert sqlglot AST to logical plan.

        Args:
            ast: sqlglot expression tree

        Returns:
            Logical plan root node

        Raises:
            ValueError: If the statement uses an unsupported construct
        """
        if isinstance(ast, exp.Select):
            return self._convert_select(ast)
        raise ValueError(f"Unsupported AST node type: {type(ast)}")

    def _convert_select(self, select: exp.Select) -> LogicalPlanNode:
        """Convert SELECT statement to Limit(Project(Filter(Scan)))."""
        if select.args.get("joins"):
            raise ValueError("Joins are not supported")
        if select.args.get("group"):
            raise ValueError("GROUP BY is not supported")

        plan = self._build_from_clause(select)
        plan = self._build_where_clause(select, plan)
        plan = self._build_select_clause(select, plan)
        plan = self._build_limit_clause(select, plan)
        return plan

    def _build_from_clause(self, select: exp.Select) -> LogicalPlanNode:
        """Build scan node from FROM clause.

        Args:
            select: sqlglot Select node

        Returns:
            Scan node
        """
        from_clause = select.args.get("from") or select.args.get("from_")
        if not from_clause:
            raise ValueError("SELECT must have FROM clause")

        table_expr = from_clause.this
        if not isinstance(table_expr, exp.Table):
            raise ValueError(f"Unsupported FROM source: {type(table_expr)}")

        datasource, schema_name, table_name = self._extract_table_parts(table_expr)
        alias = table_expr.alias or None

        return Scan(
            datasource=datasource,
            schema_name=schema_name,
            table_name=table_name,
            columns=self._collect_needed_columns(select),
            alias=alias,
        )

    def _extract_table_parts(
        self, table_expr: exp.Table
    ) -> Tuple[Optional[str], Optional[str], str]:
        """Extract datasource, schema, and table name.

        Missing parts are None and are resolved by the binder.
        """
        datasource = table_expr.catalog or None
        schema_name = table_expr.db or None
        return datasource, schema_name, table_expr.name

    def _collect_needed_columns(self, select: exp.Select) -> List[str]:
        """Collect all columns needed from table.

        Args:
            select: sqlglot Select node

        Returns:
            List of column names
        """
        columns = []

        for expr in select.expressions:
            for col_name in self._extract_column_names(expr):
                if col_name not in columns:
                    columns.append(col_name)

        where = select.args.get("where")
        if where:
            for col_name in self._extract_column_names(where.this):
                if col_name not in columns:
                    columns.append(col_name)

        if not columns:
            columns = ["*"]

        return columns

    def _extract_column_names(self, expr: exp.Expression) -> List[str]:
        """Extract column names from expression."""
        columns = []

        if isinstance(expr, exp.Column):
            if isinstance(expr.this, exp.Star):
                columns.append("*")
            else:
                columns.append(expr.name)
        elif isinstance(expr, exp.Star):
            columns.append("*")
        else:
            for child in expr.iter_expressions():
                columns.extend(self._extract_column_names(child))

        return columns

    def _build_where_clause(
        self, select: exp.Select, input_plan: LogicalPlanNode
    ) -> LogicalPlanNode:
        """Build filter node from WHERE clause.

        Args:
            select: sqlglot Select node
            input_plan: Input logical plan

        Returns:
            Logical plan with filter (or original if no WHERE)
        """
        where = select.args.get("where")
        if not where:
            return input_plan

        predicate = self._convert_expression(where.this)
        return Filter(input=input_plan, predicate=predicate)

    def _build_select_clause(
        self, select: exp.Select, input_plan: LogicalPlanNode
    ) -> LogicalPlanNode:
        """Build projection node from SELECT clause."""
        expressions = []
        aliases = []

        for select_expr in select.expressions:
            expressions.append(self._convert_expression(select_expr))
            aliases.append(self._get_alias(select_expr))

        return Project(input=input_plan, expressions=expressions, aliases=aliases)

    def _get_alias(self, expr: exp.Expression) -> str:
        """Get output name for a select expression."""
        if isinstance(expr, exp.Alias):
            return expr.alias
        if isinstance(expr, exp.Column):
            if isinstance(expr.this, exp.Star):
                return "*"
            return expr.name
        if isinstance(expr, exp.Star):
            return "*"
        return expr.sql(dialect=self.dialect)

    def _build_limit_clause(
        self, select: exp.Select, input_plan: LogicalPlanNode
    ) -> LogicalPlanNode:
        """Build limit node from LIMIT clause.

        Args:
            select: sqlglot Select node
            input_plan: Input logical plan

        Returns:
            Logical plan with limit (or original if no LIMIT)
        """
        limit_expr = select.args.get("limit")
        if not limit_expr:
            return input_plan

        limit_value = int(limit_expr.expression.this)
        offset_value = 0
        offset_expr = select.args.get("offset")
        if offset_expr is not None:
            offset_value = int(offset_expr.expression.this)
        return Limit(input=input_plan, limit=limit_value, offset=offset_value)

    def _convert_expression(self, expr: exp.Expression) -> Expression:
        """Convert sqlglot expression to our Expression.

        Args:
            expr: sqlglot expression

        Returns:
            Our Expression object

        Raises:
            ValueError: For unsupported expression types
        """
        if isinstance(expr, exp.And):
            return self._convert_connector(expr, Conjunction)
        if isinstance(expr, exp.Or):
            return self._convert_connector(expr, Disjunction)
        if isinstance(expr, exp.In):
            return self._convert_in_expression(expr)
        if isinstance(expr, exp.Between):
            return self._convert_between_expression(expr)
        if isinstance(expr, exp.Column):
            return self._convert_column(expr)
        if isinstance(expr, exp.Is):
            return self._convert_is_expression(expr)
        if isinstance(expr, exp.Literal):
            return self._convert_literal(expr)
        if isinstance(expr, exp.Boolean):
            return Literal(value=bool(expr.this), data_type=DataType.BOOLEAN)
        if isinstance(expr, exp.Null):
            return Literal(value=None, data_type=DataType.NULL)
        if isinstance(expr, exp.Binary):
            return self._convert_binary(expr)
        if isinstance(expr, exp.Unary):
            return self._convert_unary(expr)
        if isinstance(expr, exp.Alias):
            return self._convert_expression(expr.this)
        if isinstance(expr, exp.Star):
            return ColumnRef(table=None, column="*")
        if isinstance(expr, exp.AggFunc):
            raise ValueError(f"Aggregate functions are not supported: {expr.sql()}")
        if isinstance(expr, exp.Func):
            return self._convert_function_call(expr)

        raise ValueError(f"Unsupported expression type: {type(expr)}")

    def _convert_connector(self, expr: exp.Connector, node_type) -> Expression:
        """Flatten a chain of AND (or OR) into one n-ary node."""
        operands: List[Expression] = []
        for side in (expr.left, expr.right):
            converted = self._convert_expression(side)
            if isinstance(converted, node_type):
                operands.extend(converted.operands)
            else:
                operands.append(converted)
        return node_type(tuple(operands))

    def _convert_in_expression(self, expr: exp.In) -> Expression:
        """Convert IN list to expression node."""
        if expr.args.get("query") is not None:
            raise ValueError("IN subqueries are not supported")
        value_expr = self._convert_expression(expr.this)
        options: List[Expression] = []
        for option in expr.expressions:
            options.append(self._convert_expression(option))
        return InList(value=value_expr, options=tuple(options))

    def _convert_between_expression(self, expr: exp.Between) -> Expression:
        """Convert BETWEEN to expression node."""
        value_expr = self._convert_expression(expr.this)
        low_expr = self._convert_expression(expr.args["low"])
        high_expr = self._convert_expression(expr.args["high"])
        return BetweenExpression(value=value_expr, lower=low_expr, upper=high_expr)

    def _convert_is_expression(self, expr: exp.Is) -> Expression:
        """Convert IS and IS NOT comparisons into unary operations."""
        operand = self._convert_expression(expr.this)
        comparison = expr.expression
        if isinstance(comparison, exp.Null):
            return UnaryOp(op=UnaryOpType.IS_NULL, operand=operand)
        if isinstance(comparison, exp.Not) and isinstance(comparison.this, exp.Null):
            return UnaryOp(op=UnaryOpType.IS_NOT_NULL, operand=operand)
        raise ValueError("IS comparison supports only NULL and NOT NULL")

    def _convert_column(self, col: exp.Column) -> ColumnRef:
        """Convert sqlglot Column to ColumnRef."""
        if isinstance(col.this, exp.Star):
            return ColumnRef(table=col.table or None, column="*")
        table = col.table if col.table else None
        return ColumnRef(table=table, column=col.name)

    def _convert_literal(self, lit: exp.Literal) -> Literal:
        """Convert sqlglot Literal to our Literal."""
        value_str = lit.this
        if lit.is_string:
            return Literal(value=value_str, data_type=DataType.VARCHAR)
        try:
            return Literal(value=int(value_str), data_type=DataType.INTEGER)
        except ValueError:
            return Literal(value=float(value_str), data_type=DataType.DOUBLE)

    def _convert_binary(self, binary: exp.Binary) -> BinaryOp:
        """Convert sqlglot binary operation."""
        op = _BINARY_OPS.get(type(binary))
        if op is None:
            raise ValueError(f"Unsupported binary operator: {type(binary).__name__}")
        left = self._convert_expression(binary.left)
        right = self._convert_expression(binary.right)
        return BinaryOp(op=op, left=left, right=right)

    def _convert_unary(self, unary: exp.Unary) -> Expression:
        """Convert sqlglot unary operation."""
        if isinstance(unary, exp.Paren):
            return self._convert_expression(unary.this)

        if isinstance(unary, exp.Not):
            inner = unary.this
            if isinstance(inner, exp.Is) and isinstance(inner.expression, exp.Null):
                operand = self._convert_expression(inner.this)
                return UnaryOp(op=UnaryOpType.IS_NOT_NULL, operand=operand)
            return UnaryOp(op=UnaryOpType.NOT, operand=self._convert_expression(inner))

        if isinstance(unary, exp.Neg):
            operand = self._convert_expression(unary.this)
            if isinstance(operand, Literal) and isinstance(operand.value, (int, float)):
                return Literal(value=-operand.value, data_type=operand.data_type)
            return UnaryOp(op=UnaryOpType.NEGATE, operand=operand)

        raise ValueError(f"Unsupported unary operator: {type(unary).__name__}")

    def _convert_function_call(self, func: exp.Func) -> FunctionCall:
        """Convert scalar function expressions.

        Determinism and return type are filled in by the binder.
        """
        if isinstance(func, exp.Anonymous):
            name = func.name.upper()
            raw_args = list(func.expressions)
        else:
            name = func.sql_name().upper()
            raw_args = []
            for key in func.arg_types:
                value = func.args.get(key)
                if isinstance(value, list):
                    raw_args.extend(v for v in value if isinstance(v, exp.Expression))
                elif isinstance(value, exp.Expression):
                    raw_args.append(value)

        args = tuple(self._convert_expression(arg) for arg in raw_args)
        return FunctionCall(function_name=name, args=args)

    def parse_to_logical_plan(self, sql: str) -> LogicalPlanNode:
        """Parse SQL directly to logical plan.

        Args:
            sql: SQL query string

        Returns:
            Logical plan root node
        """
        ast = self.parse(sql)
        return self.ast_to_logical_plan(ast)

    def parse_expression(self, sql: str) -> Expression:
        """Parse a standalone scalar or boolean expression.

        Example: ``part1 = 'A' AND id > 2``
        """
        return self._convert_expression(self.parse(sql))

    def __repr__(self) -> str:
        return f"Parser(dialect={self.dialect})"

