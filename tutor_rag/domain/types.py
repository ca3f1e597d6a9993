"""Result type returned by repositories instead of raising."""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class Result(Generic[T, E]):
    """Outcome of one repository call: either a value or a domain error.

    Use cases call unwrap() and let the carried DomainError propagate.
    """

    ok: bool
    value: T | None = None
    error: E | None = None

    @classmethod
    def success(cls, value: T) -> "Result[T, E]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: E) -> "Result[T, E]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        if self.ok:
            return self.value  # type: ignore[return-value]
        if self.error is None:
            raise RuntimeError("failed Result without an error")
        raise self.error
