"""Result containers for record normalization."""

from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

T = TypeVar("T")


@dataclass
class NormalizationFailure:
    """A record that could not be turned into a typed model."""

    record_id: str
    reason: str


@dataclass
class NormalizationBatch(Generic[T]):
    """Typed records from one collection plus the ones that were skipped."""

    items: List[T] = field(default_factory=list)
    failures: List[NormalizationFailure] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.failures)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)
