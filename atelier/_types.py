"""
Core types for atelier.

Re-exports from kungfu, the lazy alias and the clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

# ═══════════════════════════════════════════════════════════════════════════════
# Clock
# ═══════════════════════════════════════════════════════════════════════════════


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column stores."""
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(UTC).replace(tzinfo=None)


@dataclass(frozen=True, slots=True)
class Clock:
    """
    Source of "now" for handlers that compare against stored timestamps.

    Injected into the runner so tests can pin time.
    """

    def now(self) -> datetime:
        return utcnow()


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Type aliases
    "Lazy",
    # Time
    "Clock",
    "utcnow",
    "as_naive_utc",
)
