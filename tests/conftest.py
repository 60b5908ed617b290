"""Shared fixtures: an in-memory DuckDB source with partitioned tables.

``my_table(id, name, part1, part2)`` is partitioned by (part1, part2) and
holds the partitions {A,1} {A,2} {B,3} {C,1}. ``virtual_table`` is the same
data plus a computed column ``virtual_field = part2 + 1``.
"""

import pytest

from partition_pruner.catalog import Catalog
from partition_pruner.cli.pprune import seed_demo_data
from partition_pruner.datasources.duckdb import DuckDBDataSource
from partition_pruner.parser import Binder, Parser

PARTITIONED_TABLES = {
    "main.my_table": {"partition_keys": ["part1", "part2"]},
    "main.virtual_table": {
        "partition_keys": ["part1", "part2"],
        "computed_columns": {"virtual_field": "part2 + 1"},
    },
}


def make_datasource(pushdown: bool = False, name: str = "mem") -> DuckDBDataSource:
    """Create and seed an in-memory DuckDB data source."""
    datasource = DuckDBDataSource(
        name,
        {
            "path": ":memory:",
            "read_only": False,
            "partitioned_tables": PARTITIONED_TABLES,
            "partition_filter_pushdown": pushdown,
        },
    )
    datasource.connect()
    seed_demo_data(datasource.connection)
    return datasource


def make_catalog(datasource: DuckDBDataSource) -> Catalog:
    """Catalog over ``datasource`` with the MyUdf(x) = x + 1 function."""
    catalog = Catalog()
    catalog.functions.register_function("MyUdf", lambda x: x + 1)
    catalog.register_datasource(datasource)
    catalog.load_metadata()
    return catalog


def bind_sql(catalog: Catalog, sql: str):
    """Parse and bind a statement."""
    plan = Parser().parse_to_logical_plan(sql)
    return Binder(catalog).bind(plan)


@pytest.fixture(params=[False, True], ids=["list-partitions", "filter-pushdown"])
def pushdown(request):
    """Run a test with and without source-side partition filtering."""
    return request.param


@pytest.fixture
def datasource(pushdown):
    ds = make_datasource(pushdown)
    yield ds
    ds.disconnect()


@pytest.fixture
def catalog(datasource):
    return make_catalog(datasource)


@pytest.fixture
def local_datasource():
    """Data source without partition filter pushdown."""
    ds = make_datasource(pushdown=False)
    yield ds
    ds.disconnect()


@pytest.fixture
def local_catalog(local_datasource):
    return make_catalog(local_datasource)


@pytest.fixture
def parser():
    return Parser()
