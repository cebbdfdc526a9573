"""Explicit result values for best-effort operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """Container for a successful outcome.

    Args:
        value: Typed payload returned by the operation.
    """

    value: T


@dataclass(frozen=True)
class Failure:
    """Failure value the caller may inspect or deliberately ignore.

    Args:
        reason: Human-readable failure summary.
    """

    reason: str


Result = Success[T] | Failure


def success(value: T) -> Success[T]:
    """Create a successful result."""
    return Success(value=value)


def failure(reason: str) -> Failure:
    """Create a failure result."""
    return Failure(reason=reason)
