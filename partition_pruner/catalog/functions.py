"""Scalar function registry.

Every scalar function a query may call is declared here with its metadata.
Determinism is part of that declaration: the optimizer never guesses it from
the shape of a call.
"""

import random
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional

from ..plan.expressions import DataType


@dataclass(frozen=True)
class FunctionDefinition:
    """Declared metadata of a scalar function."""

    name: str
    implementation: Optional[Callable[..., Any]]
    deterministic: bool = True
    strict: bool = True  # NULL in any argument yields NULL
    return_type: Optional[DataType] = None

    def invoke(self, args: List[Any]) -> Any:
        if self.implementation is None:
            raise NotImplementedError(f"Function {self.name} has no local implementation")
        if self.strict and any(arg is None for arg in args):
            return None
        return self.implementation(*args)


def _coalesce(*args):
    for arg in args:
        if arg is not None:
            return arg
    return None


def _concat(*args):
    parts = []
    for arg in args:
        if arg is not None:
            parts.append(str(arg))
    return "".join(parts)


def _round(value, digits=0):
    """Round half away from zero, as SQL ROUND does."""
    quantum = Decimal(1).scaleb(-int(digits))
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if isinstance(value, int) and int(digits) >= 0:
        return int(rounded)
    return float(rounded)


class FunctionRegistry:
    """Case-insensitive registry of scalar functions."""

    def __init__(self):
        self.functions: Dict[str, FunctionDefinition] = {}

    def register(self, definition: FunctionDefinition) -> None:
        """Register (or replace) a function definition."""
        self.functions[definition.name.upper()] = definition

    def register_function(
        self,
        name: str,
        implementation: Optional[Callable[..., Any]],
        deterministic: bool = True,
        strict: bool = True,
        return_type: Optional[DataType] = None,
    ) -> FunctionDefinition:
        """Convenience wrapper around register()."""
        definition = FunctionDefinition(
            name=name.upper(),
            implementation=implementation,
            deterministic=deterministic,
            strict=strict,
            return_type=return_type,
        )
        self.register(definition)
        return definition

    def lookup(self, name: str) -> Optional[FunctionDefinition]:
        return self.functions.get(name.upper())

    def __contains__(self, name: str) -> bool:
        return name.upper() in self.functions

    def __repr__(self) -> str:
        return f"FunctionRegistry(functions={len(self.functions)})"

    @classmethod
    def with_builtins(cls) -> "FunctionRegistry":
        """Registry pre-populated with the built-in scalar functions."""
        registry = cls()
        registry.register_function("UPPER", str.upper, return_type=DataType.VARCHAR)
        registry.register_function("LOWER", str.lower, return_type=DataType.VARCHAR)
        registry.register_function("LENGTH", len, return_type=DataType.BIGINT)
        registry.register_function("ABS", abs)
        registry.register_function("ROUND", _round, return_type=DataType.DOUBLE)
        registry.register_function(
            "COALESCE", _coalesce, strict=False
        )
        registry.register_function(
            "CONCAT", _concat, strict=False, return_type=DataType.VARCHAR
        )
        registry.register_function(
            "RANDOM", random.random, deterministic=False, return_type=DataType.DOUBLE
        )
        registry.register_function(
            "RAND", random.random, deterministic=False, return_type=DataType.DOUBLE
        )
        registry.register_function(
            "NOW", datetime.now, deterministic=False, return_type=DataType.TIMESTAMP
        )
        registry.register_function(
            "CURRENT_TIMESTAMP",
            datetime.now,
            deterministic=False,
            return_type=DataType.TIMESTAMP,
        )
        registry.register_function(
            "CURRENT_DATE", date.today, deterministic=False, return_type=DataType.DATE
        )
        return registry
