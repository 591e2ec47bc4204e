"""Drift severity levels and threshold helpers.

Severities are totally ordered: NONE < INFO < WARNING < BREAKING. Aggregation
is always a maximum, so combining results is associative and independent of
the order in which tools were compared.
"""

from enum import Enum
from typing import Iterable, List, TypeVar


class DriftSeverity(Enum):
    """Aggregate classification of a comparison result."""

    NONE = "none"
    INFO = "info"
    WARNING = "warning"
    BREAKING = "breaking"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other: "DriftSeverity") -> bool:
        if not isinstance(other, DriftSeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: "DriftSeverity") -> bool:
        if not isinstance(other, DriftSeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: "DriftSeverity") -> bool:
        if not isinstance(other, DriftSeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: "DriftSeverity") -> bool:
        if not isinstance(other, DriftSeverity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def combine(cls, *severities: "DriftSeverity") -> "DriftSeverity":
        """Maximum of the given severities (NONE when empty)."""
        return max(severities, key=lambda s: s.rank, default=cls.NONE)

    @classmethod
    def parse(cls, value: str) -> "DriftSeverity":
        """Parse a severity name, case-insensitively."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Invalid severity '{value}'. Valid values: {valid}") from None


_RANKS = {
    DriftSeverity.NONE: 0,
    DriftSeverity.INFO: 1,
    DriftSeverity.WARNING: 2,
    DriftSeverity.BREAKING: 3,
}


def compare_severity(a: DriftSeverity, b: DriftSeverity) -> int:
    """Negative if ``a < b``, zero if equal, positive if ``a > b``."""
    return a.rank - b.rank


def severity_meets_threshold(severity: DriftSeverity, threshold: DriftSeverity) -> bool:
    """True when ``severity`` is at or above the fail threshold.

    Every severity meets a threshold of NONE.
    """
    return severity >= threshold


T = TypeVar("T")


def filter_by_minimum_severity(
    items: Iterable[T],
    minimum: DriftSeverity,
    key=lambda item: item.severity,
) -> List[T]:
    """Keep the items whose severity is at least ``minimum``."""
    return [item for item in items if key(item) >= minimum]
