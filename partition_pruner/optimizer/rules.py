"""Optimization rules for logical plans."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type
from ..plan.logical import (
    LogicalPlanNode,
    Scan,
    Project,
    Filter,
)
from ..plan.expressions import (
    Expression,
    ColumnRef,
    conjunction,
    split_conjuncts,
)
from ..catalog.catalog import Catalog
from ..datasources.base import CatalogUnavailableError
from ..utils.logging import get_contextual_logger
from .classifier import ExpressionClassifier, referenced_columns
from .expression_rewriter import ExpressionRewriter
from .partition_pruner import PartitionPruner
from .predicate_splitter import PredicateSplitter

logger = logging.getLogger(__name__)


class OptimizationRule(ABC):
    """Base class for optimization rules."""

    # Errors that abandon a single application of the rule instead of
    # failing the whole optimization.
    recoverable_errors: Tuple[Type[BaseException], ...] = ()

    @abstractmethod
    def apply(self, plan: LogicalPlanNode) -> Optional[LogicalPlanNode]:
        """Apply this rule to a plan.

        Args:
            plan: Input plan node

        Returns:
            Transformed plan if rule applies, None otherwise
        """
        pass

    @abstractmethod
    def name(self) -> str:
        """Return rule name for logging."""
        pass

    def _rewrite_children(self, plan: LogicalPlanNode) -> LogicalPlanNode:
        """Apply ``self._rewrite`` to every child, rebuilding only on change."""
        children = plan.children()
        if not children:
            return plan

        rewritten_children = []
        changed = False

        for child in children:
            rewritten = self._rewrite(child)
            rewritten_children.append(rewritten)
            if rewritten is not child:
                changed = True

        if changed:
            return plan.with_children(rewritten_children)
        return plan

    def _rewrite(self, plan: LogicalPlanNode) -> LogicalPlanNode:
        return self._rewrite_children(plan)


class PartitionPruningRule(OptimizationRule):
    """Restrict scans of partitioned tables using their filters.

    Matches ``Filter(Scan)`` where the scan reads a partitioned table. The
    partition-safe part of the filter selects the partitions to read; the
    rest stays in a Filter above the pruned scan.
    """

    recoverable_errors = (CatalogUnavailableError,)

    def __init__(self, catalog: Catalog, pruner: Optional[PartitionPruner] = None):
        """Initialize rule.

        Args:
            catalog: Catalog with table partition specs and data sources
            pruner: Partition pruner (default: built-in functions, NULL excluded)
        """
        self.catalog = catalog
        self.pruner = pruner or PartitionPruner(functions=catalog.functions)
        self.log = get_contextual_logger(__name__, {"rule": self.name()})

    def apply(self, plan: LogicalPlanNode) -> Optional[LogicalPlanNode]:
        """Prune every matching Filter(Scan) fragment in the plan.

        Raises:
            InconsistentPartitionSpecError: If a table's partition spec is invalid
            CatalogUnavailableError: If partition metadata cannot be fetched
        """
        return self._rewrite(plan)

    def _rewrite(self, plan: LogicalPlanNode) -> LogicalPlanNode:
        plan = self._rewrite_children(plan)
        if isinstance(plan, Filter) and isinstance(plan.input, Scan):
            pruned = self.prune_fragment(plan)
            if pruned is not None:
                return pruned
        return plan

    def prune_fragment(self, filter_node: Filter) -> Optional[LogicalPlanNode]:
        """Rewrite one Filter(Scan) fragment.

        Returns:
            Replacement fragment, or None if the rule does not fire
        """
        scan = filter_node.input
        log = self.log.bind(table=scan.qualified_name())

        table = self.catalog.get_table(scan.datasource, scan.schema_name, scan.table_name)
        if table is None or not table.is_partitioned():
            log.debug("Table is not partitioned, skipping")
            return None

        table.validate_partition_spec()

        if scan.is_partition_pruned():
            log.debug("Scan already carries a partition restriction, skipping")
            return None

        partition_keys = {key.lower() for key in table.partition_keys}
        if not referenced_columns(filter_node.predicate) & partition_keys:
            log.debug("Filter references no partition column, skipping")
            return None

        splitter = PredicateSplitter(ExpressionClassifier(table.computed_columns()))
        split = splitter.split(filter_node.predicate, table.partition_keys)
        if not split.has_partition_predicate():
            log.debug("No partition-safe predicate, skipping")
            return None

        datasource = self.catalog.get_datasource(scan.datasource)
        if datasource is None:
            raise CatalogUnavailableError(
                scan.datasource, f"{scan.schema_name}.{scan.table_name}"
            )

        result = self.pruner.prune_table(
            datasource, scan.schema_name, scan.table_name, split.partition_predicate
        )

        new_scan = scan.with_partitions(
            result.partitions, split.partition_predicate, pushed_down=result.delegated
        )

        residual = split.residual_predicate
        if not result.exact:
            # Kept partitions were not all proven to match; re-check rows
            conjuncts = split_conjuncts(split.partition_predicate)
            if residual is not None:
                conjuncts.extend(split_conjuncts(residual))
            residual = conjunction(conjuncts)

        total = result.total_partitions if result.total_partitions is not None else "?"
        log.info(
            f"Pruned scan to {len(result.partitions)}/{total} partitions",
            extra={"delegated": result.delegated, "exact": result.exact},
        )

        if residual is None:
            return new_scan
        return Filter(new_scan, residual)

    def name(self) -> str:
        return "PartitionPruning"


class _ColumnRenamer(ExpressionRewriter):
    """Replace column references by name with other expressions."""

    def __init__(self, mapping: Dict[str, Expression]):
        self.mapping = mapping

    def rewrite(self, expr: Expression) -> Expression:
        if isinstance(expr, ColumnRef):
            return self.mapping.get(expr.column.lower(), expr)
        return self.rewrite_children(expr)


class FilterProjectTransposeRule(OptimizationRule):
    """Move a filter below a projection.

    Only fires when every column the predicate references is a projection
    output that is a plain column of the projection's input, so the filter
    can be rewritten in terms of the input.

    The parser already places WHERE below the projection, so plans built from
    SQL pass through unchanged. The rule matters for plans assembled directly
    from plan nodes, where a filter may sit on top of a renaming projection.
    """

    def apply(self, plan: LogicalPlanNode) -> Optional[LogicalPlanNode]:
        return self._rewrite(plan)

    def _rewrite(self, plan: LogicalPlanNode) -> LogicalPlanNode:
        plan = self._rewrite_children(plan)
        if isinstance(plan, Filter) and isinstance(plan.input, Project):
            transposed = self._transpose(plan, plan.input)
            if transposed is not None:
                return transposed
        return plan

    def _transpose(self, filter_node: Filter, project: Project) -> Optional[LogicalPlanNode]:
        outputs: Dict[str, Expression] = {}
        for alias, expr in zip(project.aliases, project.expressions):
            outputs[alias.lower()] = expr

        mapping: Dict[str, Expression] = {}
        for column in referenced_columns(filter_node.predicate):
            source = outputs.get(column)
            if not isinstance(source, ColumnRef):
                return None
            mapping[column] = source

        predicate = _ColumnRenamer(mapping).rewrite(filter_node.predicate)
        return Project(
            Filter(project.input, predicate), project.expressions, project.aliases
        )

    def name(self) -> str:
        return "FilterProjectTranspose"


@dataclass(frozen=True)
class RuleDiagnostic:
    """A rule application abandoned because of a recoverable error."""

    rule: str
    error: BaseException

    @property
    def message(self) -> str:
        return f"{self.rule}: {self.error}"


class RuleBasedOptimizer:
    """Rule-based query optimizer."""

    def __init__(self, catalog: Catalog):
        """Initialize optimizer.

        Args:
            catalog: Catalog for metadata access
        """
        self.catalog = catalog
        self.rules: List[OptimizationRule] = []
        self.diagnostics: List[RuleDiagnostic] = []

    def add_rule(self, rule: OptimizationRule) -> None:
        """Add an optimization rule.

        Args:
            rule: Optimization rule to add
        """
        self.rules.append(rule)

    def optimize(self, plan: LogicalPlanNode, max_iterations: int = 10) -> LogicalPlanNode:
        """Optimize a logical plan using registered rules.

        Applies rules iteratively until fixed point or max iterations.
        Diagnostics from the previous call are cleared.

        Args:
            plan: Input logical plan
            max_iterations: Maximum number of optimization passes

        Returns:
            Optimized logical plan
        """
        self.diagnostics = []
        failed_rules = set()
        current_plan = plan
        iteration = 0

        while iteration < max_iterations:
            changed = False
            iteration += 1

            for rule in self.rules:
                if rule.name() in failed_rules:
                    continue
                try:
                    result = rule.apply(current_plan)
                except rule.recoverable_errors as e:
                    logger.warning(f"Rule {rule.name()} abandoned: {e}")
                    self.diagnostics.append(RuleDiagnostic(rule.name(), e))
                    failed_rules.add(rule.name())
                    continue

                if result is not None and result != current_plan:
                    current_plan = result
                    changed = True

            # If no rules made changes, we've reached fixed point
            if not changed:
                break

        return current_plan

    def __repr__(self) -> str:
        return f"RuleBasedOptimizer(rules={len(self.rules)})"
