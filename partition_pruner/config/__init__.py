"""Configuration management."""

from .config import (
    Config,
    DataSourceConfig,
    OptimizerConfig,
    ExecutorConfig,
    LoggingConfig,
    load_config,
    parse_config,
)

__all__ = [
    "Config",
    "DataSourceConfig",
    "OptimizerConfig",
    "ExecutorConfig",
    "LoggingConfig",
    "load_config",
    "parse_config",
]
