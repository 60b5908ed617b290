"""Partition pruning.

Given a predicate over partition columns only, decide which partitions of a
table can contain matching rows. Either the data source evaluates the
predicate itself (filter pushdown) or the partitions are listed and the
predicate is folded to a constant for each one.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple
from ..catalog.functions import FunctionRegistry
from ..datasources.base import CatalogUnavailableError, DataSource
from ..plan.expressions import Expression, Literal
from ..plan.partition import Partition
from .expression_rewriter import evaluate

logger = logging.getLogger(__name__)


class NullPartitionPolicy(Enum):
    """What to do with a partition whose predicate evaluates to NULL."""

    EXCLUDE = "exclude"
    INCLUDE = "include"

    @classmethod
    def from_name(cls, name: str) -> "NullPartitionPolicy":
        try:
            return cls(name.lower())
        except ValueError:
            raise ValueError(
                f"Unknown null partition policy '{name}', "
                f"expected one of {[policy.value for policy in cls]}"
            )


@dataclass(frozen=True)
class PruneResult:
    """Partitions kept by pruning.

    ``exact`` is False when at least one kept partition was not proven to
    satisfy the predicate; the caller must then keep evaluating the
    predicate on the rows it reads.
    """

    partitions: Tuple[Partition, ...]
    delegated: bool = False
    exact: bool = True
    total_partitions: Optional[int] = None  # Unknown when delegated

    def __len__(self) -> int:
        return len(self.partitions)


class PartitionPruner:
    """Select the partitions a partition-only predicate can match."""

    def __init__(
        self,
        functions: Optional[FunctionRegistry] = None,
        null_policy: NullPartitionPolicy = NullPartitionPolicy.EXCLUDE,
    ):
        """Initialize pruner.

        Args:
            functions: Registry used to evaluate deterministic functions
            null_policy: Handling of partitions whose predicate is NULL
        """
        self.functions = functions
        self.null_policy = null_policy

    def prune(
        self, partitions: Iterable[Partition], predicate: Expression
    ) -> PruneResult:
        """Evaluate ``predicate`` against each partition's values.

        Args:
            partitions: Partition listing
            predicate: Predicate referencing partition columns only

        Returns:
            PruneResult with kept partitions in listing order
        """
        kept: List[Partition] = []
        exact = True
        total = 0

        for partition in partitions:
            total += 1
            result = evaluate(predicate, partition.as_dict(), self.functions)

            if not isinstance(result, Literal):
                logger.debug(
                    f"Predicate {predicate.to_sql()} not reducible for partition "
                    f"{partition!r}, keeping it"
                )
                kept.append(partition)
                exact = False
                continue

            if result.value is None:
                if self.null_policy == NullPartitionPolicy.INCLUDE:
                    kept.append(partition)
                    exact = False
                continue

            if bool(result.value):
                kept.append(partition)

        return PruneResult(
            partitions=tuple(kept), delegated=False, exact=exact, total_partitions=total
        )

    def prune_table(
        self,
        datasource: DataSource,
        schema_name: str,
        table_name: str,
        predicate: Expression,
    ) -> PruneResult:
        """Prune the partitions of a table, delegating to the source if it can.

        Raises:
            CatalogUnavailableError: If partition metadata cannot be fetched
        """
        table_ref = f"{schema_name}.{table_name}"
        try:
            if datasource.supports_filter_pushdown():
                partitions = datasource.push_partition_filter(
                    schema_name, table_name, predicate
                )
                return PruneResult(partitions=tuple(partitions), delegated=True)

            partitions = datasource.list_partitions(schema_name, table_name)
        except CatalogUnavailableError:
            raise
        except Exception as e:
            raise CatalogUnavailableError(datasource.name, table_ref, e) from e

        return self.prune(partitions, predicate)
