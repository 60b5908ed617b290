"""QueryExecutor orchestrates the query pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import pyarrow as pa

from ..catalog import Catalog
from ..config import Config, OptimizerConfig
from ..executor import Executor
from ..optimizer import (
    FilterProjectTransposeRule,
    NullPartitionPolicy,
    PartitionPruner,
    PartitionPruningRule,
    RuleBasedOptimizer,
    RuleDiagnostic,
)
from ..parser import Binder, Parser
from ..plan.logical import LogicalPlanNode, format_plan

logger = logging.getLogger(__name__)


@dataclass
class PlannedQuery:
    """Plans of one statement before and after optimization."""

    sql: str
    bound_plan: LogicalPlanNode
    optimized_plan: LogicalPlanNode
    diagnostics: List[RuleDiagnostic]

    def explain(self) -> str:
        lines = ["Bound plan:", format_plan(self.bound_plan), "", "Optimized plan:"]
        lines.append(format_plan(self.optimized_plan))
        for diagnostic in self.diagnostics:
            lines.append(f"Warning: {diagnostic.message}")
        return "\n".join(lines)


class QueryExecutor:
    """Coordinates parser, binder, optimizer, and executor."""

    def __init__(
        self,
        catalog: Catalog,
        parser: Parser,
        binder: Binder,
        optimizer: RuleBasedOptimizer,
        executor: Executor,
        max_iterations: int = 10,
    ):
        """Initialize dependencies."""
        self.catalog = catalog
        self.parser = parser
        self.binder = binder
        self.optimizer = optimizer
        self.executor = executor
        self.max_iterations = max_iterations

    def plan(self, sql: str) -> PlannedQuery:
        """Parse, bind and optimize a statement."""
        logical_plan = self.parser.parse_to_logical_plan(sql)
        bound_plan = self.binder.bind(logical_plan)
        optimized_plan = self.optimizer.optimize(bound_plan, self.max_iterations)
        return PlannedQuery(
            sql=sql,
            bound_plan=bound_plan,
            optimized_plan=optimized_plan,
            diagnostics=list(self.optimizer.diagnostics),
        )

    def execute(self, sql: str) -> pa.Table:
        """Run the full query pipeline."""
        planned = self.plan(sql)
        logger.debug(f"Executing optimized plan:\n{format_plan(planned.optimized_plan)}")
        return self.executor.execute_to_table(planned.optimized_plan)

    def explain(self, sql: str) -> str:
        return self.plan(sql).explain()


def build_optimizer(
    catalog: Catalog, config: Optional[OptimizerConfig] = None
) -> RuleBasedOptimizer:
    """Create an optimizer with the rules enabled in ``config``."""
    config = config or OptimizerConfig()
    optimizer = RuleBasedOptimizer(catalog)
    if config.enable_filter_project_transpose:
        optimizer.add_rule(FilterProjectTransposeRule())
    if config.enable_partition_pruning:
        pruner = PartitionPruner(
            functions=catalog.functions,
            null_policy=NullPartitionPolicy.from_name(config.null_partition_policy),
        )
        optimizer.add_rule(PartitionPruningRule(catalog, pruner))
    return optimizer


def create_query_executor(catalog: Catalog, config: Optional[Config] = None) -> QueryExecutor:
    """Wire a QueryExecutor from configuration."""
    config = config or Config()
    parser = Parser()
    return QueryExecutor(
        catalog=catalog,
        parser=parser,
        binder=Binder(catalog),
        optimizer=build_optimizer(catalog, config.optimizer),
        executor=Executor(catalog, config.executor),
        max_iterations=config.optimizer.max_iterations,
    )
