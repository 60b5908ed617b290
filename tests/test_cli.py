"""Tests for the pprune command line interface."""

import duckdb
import pytest
import yaml
from click.testing import CliRunner

from partition_pruner.cli.pprune import cli
from partition_pruner.datasources.duckdb import DuckDBDataSource


@pytest.fixture
def runner():
    return CliRunner()


def test_explain_shows_pruned_scan(runner):
    result = runner.invoke(
        cli, ["explain", "SELECT id FROM my_table WHERE id > 2 AND part1 = 'A'"]
    )
    assert result.exit_code == 0, result.output
    assert "Optimized plan:" in result.output
    assert "partitions=[{part1=A, part2=1}, {part1=A, part2=2}]" in result.output
    assert "Filter((id > 2))" in result.output


def test_query_prints_rows(runner):
    result = runner.invoke(
        cli, ["query", "SELECT id, name FROM my_table WHERE part1 = 'B' LIMIT 10"]
    )
    assert result.exit_code == 0, result.output
    assert "Vivi" in result.output
    assert "Fred" in result.output
    assert "2 rows in" in result.output


def test_query_with_udf_on_virtual_table(runner):
    result = runner.invoke(
        cli, ["query", "SELECT id FROM virtual_table WHERE MyUdf(part2) < 3 AND id > 6"]
    )
    assert result.exit_code == 0, result.output
    assert "2 rows in" in result.output


def test_catalog_lists_partition_keys(runner):
    result = runner.invoke(cli, ["catalog"])
    assert result.exit_code == 0, result.output
    assert "Table: duckdb_mem.main.my_table" in result.output
    assert "Partitioned by: part1, part2" in result.output
    assert "virtual_field: INTEGER NULL (computed)" in result.output


@pytest.mark.parametrize(
    "args", [["catalog"], ["query", "SELECT id FROM missing_table"]]
)
def test_sources_are_closed_after_command(runner, monkeypatch, args):
    closed = []
    original = DuckDBDataSource.disconnect

    def disconnect(self):
        closed.append(self.name)
        original(self)

    monkeypatch.setattr(DuckDBDataSource, "disconnect", disconnect)
    runner.invoke(cli, args)
    assert closed == ["duckdb_mem"]

def test_binding_error_is_reported(runner):
    result = runner.invoke(cli, ["query", "SELECT id FROM missing_table"])
    assert result.exit_code != 0
    assert "Table not found" in result.output


def test_config_file(runner, tmp_path):
    db_path = tmp_path / "warehouse.duckdb"
    connection = duckdb.connect(str(db_path))
    connection.execute(
        "CREATE TABLE events AS SELECT * FROM (VALUES (1, 'eu'), (2, 'us')) t(id, region)"
    )
    connection.close()

    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "datasources": {
                    "warehouse": {
                        "type": "duckdb",
                        "path": str(db_path),
                        "partitioned_tables": {"events": {"partition_keys": ["region"]}},
                    }
                },
                "logging": {"level": "WARNING"},
            }
        )
    )

    result = runner.invoke(
        cli, ["-c", str(config_path), "query", "SELECT id FROM events WHERE region = 'us'"]
    )
    assert result.exit_code == 0, result.output
    assert "1 rows in" in result.output
