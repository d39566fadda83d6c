"""Tagged result type for callers that prefer matching over exceptions."""

from dataclasses import dataclass
from typing import Generic, TypeVar

from powgate.exceptions import ErrorKind, PowError

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a successful value or the PowError that stopped the operation.

    Usage:
        outcome = verifier.check(solution)
        match outcome.kind:
            case None: ...
            case ErrorKind.REPLAY: ...
    """

    value: T | None = None
    error: PowError | None = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PowError) -> "Outcome[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, re-raising the stored error on failure."""
        if self.error is not None:
            raise self.error
        return self.value
