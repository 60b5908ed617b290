"""Query processing pipeline."""

from .query_executor import (
    PlannedQuery,
    QueryExecutor,
    build_optimizer,
    create_query_executor,
)

__all__ = [
    "PlannedQuery",
    "QueryExecutor",
    "build_optimizer",
    "create_query_executor",
]
