"""Query executor."""

from .executor import Executor
from .operators import OperatorExecutor, ExecutionError

__all__ = ["Executor", "OperatorExecutor", "ExecutionError"]
