"""Command line interface for the partition pruning engine."""

from __future__ import annotations

import time
from typing import List, Optional, Tuple

import click
import pyarrow as pa
from sqlglot import errors as sqlglot_errors

from ..catalog import Catalog, InconsistentPartitionSpecError
from ..config import Config, DataSourceConfig, load_config
from ..datasources.duckdb import DuckDBDataSource
from ..executor import ExecutionError
from ..parser import BindingError
from ..processor import QueryExecutor, create_query_executor
from ..utils.logging import setup_logging

DEMO_DATASOURCE = "duckdb_mem"

# Errors reported to the user without a traceback
QUERY_ERRORS = (
    BindingError,
    ExecutionError,
    InconsistentPartitionSpecError,
    ValueError,
    sqlglot_errors.ParseError,
)


class ResultPrinter:
    """Formats Arrow tables for CLI display."""

    def __init__(self, emit):
        self.emit = emit

    def display(self, table: pa.Table, elapsed_ms: float) -> None:
        headers = list(table.schema.names)
        rows = [[row[name] for name in headers] for row in table.to_pylist()]
        for line in self._format_table(headers, rows):
            self.emit(line)
        self.emit(f"{table.num_rows} rows in {elapsed_ms:.2f} ms")

    def _format_table(self, headers: List[str], rows: List[List[object]]) -> List[str]:
        widths = [len(header) for header in headers]
        rendered_rows = []
        for row in rows:
            rendered = [self._stringify_cell(value) for value in row]
            for index, text in enumerate(rendered):
                widths[index] = max(widths[index], len(text))
            rendered_rows.append(rendered)

        border = "+" + "+".join("-" * (width + 2) for width in widths) + "+"
        lines = [border, self._format_row(headers, widths), border]
        for rendered in rendered_rows:
            lines.append(self._format_row(rendered, widths))
        lines.append(border)
        return lines

    def _format_row(self, values: List[str], widths: List[int]) -> str:
        cells = [f" {value.ljust(width)} " for value, width in zip(values, widths)]
        return "|" + "|".join(cells) + "|"

    def _stringify_cell(self, value: object) -> str:
        if value is None:
            return "NULL"
        return str(value)


class CatalogPrinter:
    """Prints catalog metadata, including partition specs."""

    def __init__(self, emit):
        self.emit = emit

    def display_catalog(self, catalog: Catalog) -> None:
        if not catalog.schemas:
            self.emit("Catalog is empty.")
            return
        for key in sorted(catalog.schemas.keys()):
            datasource, schema_name = key
            schema = catalog.schemas[key]
            for table_name in sorted(schema.tables.keys()):
                table = schema.tables[table_name]
                self._print_table(f"{datasource}.{schema_name}.{table.name}", table)

    def _print_table(self, full_name: str, table) -> None:
        self.emit(f"Table: {full_name}")
        if table.is_partitioned():
            self.emit(f"  Partitioned by: {', '.join(table.partition_keys)}")
        for column in table.columns:
            nullable = "NULL" if column.nullable else "NOT NULL"
            computed = " (computed)" if column.is_computed else ""
            self.emit(f"    - {column.name}: {column.data_type.name} {nullable}{computed}")


def _load_config_bundle(config_path: Optional[str]) -> Tuple[Config, bool]:
    if config_path:
        return load_config(config_path), False
    return _build_default_config(), True


def _build_default_config() -> Config:
    config = Config()
    ds_config = DataSourceConfig(
        name=DEMO_DATASOURCE,
        type="duckdb",
        config={
            "path": ":memory:",
            "read_only": False,
            "partitioned_tables": {
                "main.my_table": {"partition_keys": ["part1", "part2"]},
                "main.virtual_table": {
                    "partition_keys": ["part1", "part2"],
                    "computed_columns": {"virtual_field": "part2 + 1"},
                },
            },
        },
    )
    config.datasources[ds_config.name] = ds_config
    return config


def _create_datasource(ds_config: DataSourceConfig):
    if ds_config.type == "duckdb":
        options = dict(ds_config.config)
        options["capabilities"] = list(ds_config.capabilities)
        return DuckDBDataSource(ds_config.name, options)
    raise ValueError(f"Unsupported data source type: {ds_config.type}")


def _build_catalog(ctx: click.Context, config: Config, seed_demo: bool) -> Catalog:
    """Connect every configured source; they are closed with the click context."""
    catalog = Catalog()
    for ds_config in config.datasources.values():
        datasource = ctx.with_resource(_create_datasource(ds_config))
        if seed_demo:
            seed_demo_data(datasource.connection)
        catalog.register_datasource(datasource)
    if seed_demo:
        catalog.functions.register_function("MYUDF", lambda x: x + 1)
    catalog.load_metadata()
    return catalog


def seed_demo_data(connection) -> None:
    """Create the partitioned demo tables in a DuckDB connection."""
    connection.execute(
        """
        CREATE OR REPLACE TABLE my_table (
            id INTEGER,
            name VARCHAR,
            part1 VARCHAR,
            part2 INTEGER
        )
        """
    )
    connection.execute(
        """
        INSERT INTO my_table VALUES
        (1, 'Anna', 'A', 1),
        (2, 'Jack', 'A', 1),
        (3, 'Bob', 'A', 2),
        (4, 'Tom', 'A', 2),
        (5, 'Vivi', 'B', 3),
        (6, 'Fred', 'B', 3),
        (7, 'Carl', 'C', 1),
        (8, 'Gina', 'C', 1)
        """
    )
    connection.execute(
        """
        CREATE OR REPLACE VIEW virtual_table AS
        SELECT id, name, part1, part2, part2 + 1 AS virtual_field FROM my_table
        """
    )
    connection.execute("CREATE OR REPLACE MACRO myudf(x) AS x + 1")


def _prepare_runtime(ctx: click.Context) -> Tuple[QueryExecutor, Catalog]:
    config, seed_demo = ctx.obj["config"], ctx.obj["demo"]
    catalog = _build_catalog(ctx, config, seed_demo)
    return create_query_executor(catalog, config), catalog


@click.group()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, readable=True),
    help="Path to YAML config file. Defaults to an in-memory DuckDB demo.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_level: Optional[str]) -> None:
    """Plan and run queries over partitioned tables."""
    config, seed_demo = _load_config_bundle(config_path)
    level = log_level or config.logging.level
    setup_logging(level, config.logging.structured, config.logging.log_file)
    ctx.obj = {"config": config, "demo": seed_demo}


@cli.command()
@click.argument("sql")
@click.pass_context
def explain(ctx: click.Context, sql: str) -> None:
    """Print the plan of SQL before and after optimization."""
    runtime, _ = _prepare_runtime(ctx)
    try:
        click.echo(runtime.explain(sql))
    except QUERY_ERRORS as e:
        raise click.ClickException(str(e))


@cli.command()
@click.argument("sql")
@click.pass_context
def query(ctx: click.Context, sql: str) -> None:
    """Execute SQL and print the result rows."""
    runtime, _ = _prepare_runtime(ctx)
    printer = ResultPrinter(click.echo)
    start = time.perf_counter()
    try:
        table = runtime.execute(sql)
    except QUERY_ERRORS as e:
        raise click.ClickException(str(e))
    elapsed_ms = (time.perf_counter() - start) * 1000
    printer.display(table, elapsed_ms)


@cli.command(name="catalog")
@click.pass_context
def catalog_command(ctx: click.Context) -> None:
    """List tables with their partition keys."""
    _, catalog = _prepare_runtime(ctx)
    CatalogPrinter(click.echo).display_catalog(catalog)


if __name__ == "__main__":
    cli()
