"""Logical plan nodes."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from .expressions import Expression
from .partition import Partition


class LogicalPlanNode(ABC):
    """Base class for logical plan nodes."""

    @abstractmethod
    def children(self) -> List["LogicalPlanNode"]:
        """Return child nodes."""
        pass

    @abstractmethod
    def with_children(self, children: List["LogicalPlanNode"]) -> "LogicalPlanNode":
        """Create a new node with different children (immutable)."""
        pass

    @abstractmethod
    def accept(self, visitor):
        """Accept a visitor for the visitor pattern."""
        pass

    @abstractmethod
    def schema(self) -> List[str]:
        """Return output column names."""
        pass

    def __repr__(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True)
class Scan(LogicalPlanNode):
    """Scan a table from a data source.

    Can represent:
    - Full scan: every partition of the table is read
    - Pruned scan: only ``partitions`` are read. ``partition_predicate`` is the
      partition-only predicate that selected them, kept for EXPLAIN output and
      for sources that received it through pushdown.
    """

    datasource: str
    schema_name: str
    table_name: str
    columns: List[str]  # Columns to read
    alias: Optional[str] = None  # Table alias (e.g., "t" in "FROM my_table t")
    partitions: Optional[Tuple[Partition, ...]] = None  # None means not pruned
    partition_predicate: Optional[Expression] = None
    pushed_down: bool = False  # Partition listing came from source-side pushdown

    def children(self) -> List[LogicalPlanNode]:
        return []

    def with_children(self, children: List[LogicalPlanNode]) -> "Scan":
        assert len(children) == 0
        return self

    def accept(self, visitor):
        return visitor.visit_scan(self)

    def schema(self) -> List[str]:
        return self.columns

    def is_partition_pruned(self) -> bool:
        """True once a partition restriction has been attached."""
        return self.partitions is not None

    def with_partitions(
        self,
        partitions: Tuple[Partition, ...],
        partition_predicate: Optional[Expression],
        pushed_down: bool = False,
    ) -> "Scan":
        """Return a copy of this scan restricted to ``partitions``."""
        return replace(
            self,
            partitions=tuple(partitions),
            partition_predicate=partition_predicate,
            pushed_down=pushed_down,
        )

    def qualified_name(self) -> str:
        return f"{self.datasource}.{self.schema_name}.{self.table_name}"

    def __repr__(self) -> str:
        """Return string representation of Scan node."""
        columns_str = ", ".join(self.columns)
        partition_str = ""
        if self.partitions is not None:
            rendered = ", ".join(repr(partition) for partition in self.partitions)
            partition_str = f", partitions=[{rendered}]"
        if self.pushed_down:
            partition_str += ", pushed_down"
        return f"Scan({self.qualified_name()}, cols=[{columns_str}]{partition_str})"


@dataclass(frozen=True)
class Project(LogicalPlanNode):
    """Project (select) specific expressions."""

    input: LogicalPlanNode
    expressions: List[Expression]
    aliases: List[str]  # Output column names

    def children(self) -> List[LogicalPlanNode]:
        return [self.input]

    def with_children(self, children: List[LogicalPlanNode]) -> "Project":
        assert len(children) == 1
        return Project(children[0], self.expressions, self.aliases)

    def accept(self, visitor):
        return visitor.visit_project(self)

    def schema(self) -> List[str]:
        return self.aliases

    def __repr__(self) -> str:
        return f"Project({', '.join(self.aliases)})"


@dataclass(frozen=True)
class Filter(LogicalPlanNode):
    """Filter rows based on a predicate."""

    input: LogicalPlanNode
    predicate: Expression

    def children(self) -> List[LogicalPlanNode]:
        return [self.input]

    def with_children(self, children: List[LogicalPlanNode]) -> "Filter":
        assert len(children) == 1
        return Filter(children[0], self.predicate)

    def accept(self, visitor):
        return visitor.visit_filter(self)

    def schema(self) -> List[str]:
        return self.input.schema()

    def __repr__(self) -> str:
        return f"Filter({self.predicate.to_sql()})"


@dataclass(frozen=True)
class Limit(LogicalPlanNode):
    """Limit number of rows."""

    input: LogicalPlanNode
    limit: int
    offset: int = 0

    def children(self) -> List[LogicalPlanNode]:
        return [self.input]

    def with_children(self, children: List[LogicalPlanNode]) -> "Limit":
        assert len(children) == 1
        return Limit(children[0], self.limit, self.offset)

    def accept(self, visitor):
        return visitor.visit_limit(self)

    def schema(self) -> List[str]:
        return self.input.schema()

    def __repr__(self) -> str:
        return f"Limit({self.limit}, offset={self.offset})"


class LogicalPlanVisitor(ABC):
    """Visitor interface for logical plan nodes."""

    @abstractmethod
    def visit_scan(self, node: Scan):
        pass

    @abstractmethod
    def visit_project(self, node: Project):
        pass

    @abstractmethod
    def visit_filter(self, node: Filter):
        pass

    @abstractmethod
    def visit_limit(self, node: Limit):
        pass


class PlanPrinter(LogicalPlanVisitor):
    """Render a plan tree as indented text, one node per line."""

    def __init__(self, indent: str = "  "):
        self.indent = indent
        self.depth = 0
        self.lines: List[str] = []

    def print(self, plan: LogicalPlanNode) -> str:
        self.depth = 0
        self.lines = []
        plan.accept(self)
        return "\n".join(self.lines)

    def _emit(self, node: LogicalPlanNode) -> None:
        self.lines.append(f"{self.indent * self.depth}{node!r}")
        self.depth += 1
        for child in node.children():
            child.accept(self)
        self.depth -= 1

    def visit_scan(self, node: Scan):
        self._emit(node)

    def visit_project(self, node: Project):
        self._emit(node)

    def visit_filter(self, node: Filter):
        self._emit(node)

    def visit_limit(self, node: Limit):
        self._emit(node)


def format_plan(plan: LogicalPlanNode) -> str:
    """Return the indented text form of a plan."""
    return PlanPrinter().print(plan)
