"""Configuration management for the partition pruning engine."""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import yaml
from pathlib import Path


@dataclass
class DataSourceConfig:
    """Configuration for a single data source."""

    name: str
    type: str  # Only "duckdb" is built in
    config: Dict[str, Any]
    capabilities: List[str] = field(default_factory=list)


@dataclass
class OptimizerConfig:
    """Configuration for query optimizer."""

    enable_partition_pruning: bool = True
    enable_filter_project_transpose: bool = True
    null_partition_policy: str = "exclude"  # "exclude" | "include"
    max_iterations: int = 10


@dataclass
class ExecutorConfig:
    """Configuration for query executor."""

    batch_size: int = 10000


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    structured: bool = False
    log_file: Optional[str] = None


@dataclass
class Config:
    """Main configuration class."""

    datasources: Dict[str, DataSourceConfig] = field(default_factory=dict)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Parsed configuration

    Example YAML format:
        datasources:
          warehouse:
            type: duckdb
            path: /data/warehouse.duckdb
            read_only: true
            capabilities: [partition_filter_pushdown]
            partitioned_tables:
              main.events:
                partition_keys: [region, day]
                computed_columns: [day_of_week]

        optimizer:
          enable_partition_pruning: true
          null_partition_policy: exclude
          max_iterations: 10

        executor:
          batch_size: 10000

        logging:
          level: INFO
          structured: false
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    return parse_config(data)


def parse_config(data: Dict[str, Any]) -> Config:
    """Build a Config from an already-parsed mapping."""
    datasources = {}
    for name, ds_config in (data.get("datasources") or {}).items():
        ds_config = dict(ds_config)
        ds_type = ds_config.pop("type")
        capabilities = ds_config.pop("capabilities", [])
        datasources[name] = DataSourceConfig(
            name=name, type=ds_type, config=ds_config, capabilities=capabilities
        )

    optimizer = OptimizerConfig(**(data.get("optimizer") or {}))
    executor = ExecutorConfig(**(data.get("executor") or {}))
    logging_config = LoggingConfig(**(data.get("logging") or {}))

    return Config(
        datasources=datasources,
        optimizer=optimizer,
        executor=executor,
        logging=logging_config,
    )
