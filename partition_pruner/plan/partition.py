"""Partition values of a partitioned table."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .expressions import (
    BinaryOp,
    BinaryOpType,
    ColumnRef,
    Expression,
    Literal,
    UnaryOp,
    UnaryOpType,
    conjunction,
    disjunction,
    infer_data_type,
)


@dataclass(frozen=True)
class Partition:
    """One physical partition, identified by a value for every partition column.

    Values are kept in partition spec order so two partitions built from the
    same mapping compare and hash equal.
    """

    values: Tuple[Tuple[str, Any], ...]

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, Any], partition_keys: Optional[Sequence[str]] = None
    ) -> "Partition":
        """Build a partition from a column -> value mapping."""
        if partition_keys is None:
            partition_keys = list(mapping.keys())
        missing = [key for key in partition_keys if key not in mapping]
        if missing:
            raise ValueError(f"Partition is missing values for {missing}")
        return cls(tuple((key, mapping[key]) for key in partition_keys))

    def keys(self) -> List[str]:
        return [key for key, _ in self.values]

    def get(self, column: str, default: Any = None) -> Any:
        for key, value in self.values:
            if key.lower() == column.lower():
                return value
        return default

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.values)

    def to_predicate(self) -> Expression:
        """Predicate selecting exactly the rows of this partition."""
        conjuncts: List[Expression] = []
        for key, value in self.values:
            column = ColumnRef(None, key)
            if value is None:
                conjuncts.append(UnaryOp(op=UnaryOpType.IS_NULL, operand=column))
                continue
            conjuncts.append(
                BinaryOp(
                    op=BinaryOpType.EQ,
                    left=column,
                    right=Literal(value, infer_data_type(value)),
                )
            )
        predicate = conjunction(conjuncts)
        if predicate is None:
            return Literal(True, infer_data_type(True))
        return predicate

    def __repr__(self) -> str:
        body = ", ".join(f"{key}={value}" for key, value in self.values)
        return "{" + body + "}"


def partitions_predicate(partitions: Iterable[Partition]) -> Expression:
    """Predicate selecting the rows of any of the given partitions.

    An empty partition set selects nothing.
    """
    branches = [partition.to_predicate() for partition in partitions]
    predicate = disjunction(branches)
    if predicate is None:
        return Literal(False, infer_data_type(False))
    return predicate
