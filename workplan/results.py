"""Two-case outcome type used by every core operation.

Core functions never raise for expected conditions. They return either
``Ok(value)`` or ``Err(error)`` and callers chain them explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")
F = TypeVar("F")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def map(self, func: Callable[[T], U]) -> "Ok[U]":
        return Ok(func(self.value))

    def map_err(self, func: Callable[[Any], Any]) -> "Ok[T]":
        return self

    def and_then(self, func: Callable[[T], "Result[U, Any]"]) -> "Result[U, Any]":
        return func(self.value)

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> Any:
        raise ValueError(f"Called unwrap_err on Ok: {self.value!r}")


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed outcome carrying a typed error (or a list of them)."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def map(self, func: Callable[[Any], Any]) -> "Err[E]":
        return self

    def map_err(self, func: Callable[[E], F]) -> "Err[F]":
        return Err(func(self.error))

    def and_then(self, func: Callable[[Any], Any]) -> "Err[E]":
        return self

    def unwrap(self) -> Any:
        raise ValueError(f"Called unwrap on Err: {self.error!r}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]
