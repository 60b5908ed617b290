"""Query executor."""

import logging
from typing import Iterator, Optional
import pyarrow as pa
from ..catalog.catalog import Catalog
from ..config.config import ExecutorConfig
from ..plan.logical import LogicalPlanNode, Scan, Filter, Project, Limit
from ..plan.partition import partitions_predicate
from .operators import OperatorExecutor, ExecutionError

logger = logging.getLogger(__name__)


class Executor:
    """Query executor that runs optimized logical plans.

    Scans are sent to their data source as SQL; a pruned scan only reads the
    rows of its kept partitions. Filters, projections and limits run locally
    on Arrow record batches.
    """

    def __init__(self, catalog: Catalog, config: Optional[ExecutorConfig] = None):
        """Initialize executor.

        Args:
            catalog: Catalog used to find data sources
            config: Executor configuration
        """
        self.catalog = catalog
        self.config = config or ExecutorConfig()
        self.operators = OperatorExecutor(catalog.functions)

    def execute(self, plan: LogicalPlanNode) -> Iterator[pa.RecordBatch]:
        """Execute a plan.

        Args:
            plan: Plan to execute

        Yields:
            Arrow record batches with results
        """
        if isinstance(plan, Scan):
            yield from self._execute_scan(plan)
        elif isinstance(plan, Filter):
            yield from self.operators.execute_filter(self.execute(plan.input), plan.predicate)
        elif isinstance(plan, Project):
            yield from self.operators.execute_project(
                self.execute(plan.input), plan.expressions, plan.aliases
            )
        elif isinstance(plan, Limit):
            yield from self.operators.execute_limit(
                self.execute(plan.input), plan.limit, plan.offset
            )
        else:
            raise ExecutionError(f"Unsupported plan node type: {type(plan)}")

    def execute_to_table(self, plan: LogicalPlanNode) -> pa.Table:
        """Execute a plan and materialize as Arrow table.

        Args:
            plan: Plan to execute

        Returns:
            Arrow table with all results
        """
        batches = list(self.execute(plan))
        if not batches:
            return pa.table({name: pa.array([]) for name in plan.schema()})
        return pa.Table.from_batches(batches)

    def build_scan_query(self, scan: Scan) -> str:
        """SQL sent to the data source for a scan."""
        datasource = self._get_datasource(scan)
        columns = ", ".join(f'"{column}"' for column in scan.columns)
        query = f'SELECT {columns} FROM "{scan.schema_name}"."{scan.table_name}"'
        if scan.partitions is not None:
            where = datasource.render_predicate(partitions_predicate(scan.partitions))
            query = f"{query} WHERE {where}"
        return query

    def _execute_scan(self, scan: Scan) -> Iterator[pa.RecordBatch]:
        datasource = self._get_datasource(scan)
        query = self.build_scan_query(scan)
        logger.debug(f"Scanning {scan.qualified_name()}: {query}")
        batch_size = self.config.batch_size
        for batch in datasource.execute_query(query):
            for offset in range(0, batch.num_rows, batch_size):
                yield batch.slice(offset, batch_size)

    def _get_datasource(self, scan: Scan):
        datasource = self.catalog.get_datasource(scan.datasource)
        if datasource is None:
            raise ExecutionError(f"Unknown data source: {scan.datasource}")
        return datasource

    def __repr__(self) -> str:
        return f"Executor(batch_size={self.config.batch_size})"
