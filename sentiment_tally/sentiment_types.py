from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Optional


SENTIMENT_COMMAND = "sentiment"


class Label(str, enum.Enum):
    """Closed polarity set. Member order is the canonical sort order."""

    NEGATIVE = "Negative"
    POSITIVE = "Positive"

    @classmethod
    def parse(cls, token: str) -> "Label":
        """
        Strict lookup by the persisted token.

        Raises:
            ValueError: unknown token
        """
        for member in cls:
            if member.value == token:
                return member
        raise ValueError(f"Unknown label: {token!r}")

    @property
    def sort_key(self) -> int:
        return _LABEL_ORDER[self]


_LABEL_ORDER = {label: i for i, label in enumerate(Label)}


@dataclass(frozen=True)
class ClassificationRequest:
    command: str
    text: str


@dataclass(frozen=True)
class ClassificationResult:
    """
    Single classifier output.

    - label: Positive|Negative
    - confidence: probability of the chosen label, in [0, 1]
    """

    label: Label
    confidence: float


@dataclass(frozen=True)
class CountRecord:
    label: Label
    count: int


@dataclass(frozen=True)
class CounterDocument:
    """
    Label -> non-negative count. Absent labels read as 0.

    Immutable; use `with_count` to derive a changed document.
    """

    counts: Mapping[Label, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for label, count in self.counts.items():
            if not isinstance(label, Label):
                raise TypeError(f"Counter key must be a Label, got {label!r}")
            if count < 0:
                raise ValueError(f"Negative count for {label.value}: {count}")
        # Freeze a private copy so callers cannot mutate through their dict.
        object.__setattr__(self, "counts", dict(self.counts))

    @classmethod
    def empty(cls) -> "CounterDocument":
        return cls({})

    @classmethod
    def from_records(cls, records: Iterable[CountRecord]) -> "CounterDocument":
        """Duplicate labels collapse by summation."""
        counts: dict[Label, int] = {}
        for rec in records:
            counts[rec.label] = counts.get(rec.label, 0) + rec.count
        return cls(counts)

    def get(self, label: Label) -> int:
        return self.counts.get(label, 0)

    def with_count(self, label: Label, count: int) -> "CounterDocument":
        counts = dict(self.counts)
        counts[label] = count
        return CounterDocument(counts)

    def records(self) -> list[CountRecord]:
        """Records in canonical label order."""
        return [
            CountRecord(label=label, count=self.counts[label])
            for label in sorted(self.counts, key=lambda x: x.sort_key)
        ]

    def __iter__(self) -> Iterator[CountRecord]:
        return iter(self.records())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CounterDocument):
            return NotImplemented
        return dict(self.counts) == dict(other.counts)

    def __hash__(self) -> int:
        return hash(frozenset(self.counts.items()))


@dataclass(frozen=True)
class VersionedDocument:
    """
    A loaded document plus the store's version token.

    version is None when the backing key did not exist.
    """

    document: CounterDocument
    version: Optional[str]
