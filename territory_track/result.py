"""Tagged result values returned by backend calls.

Backend operations never raise for remote failures. They return ``Ok`` with
the decoded payload or ``Err`` with a :class:`BackendError` whose ``kind``
says what went wrong.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeAlias, TypeVar, Union

from .errors import BackendError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, func: Callable[[T], U]) -> "Ok[U]":
        return Ok(func(self.value))


@dataclass(frozen=True, slots=True)
class Err:
    error: BackendError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error

    def unwrap_or(self, default):
        return default

    def map(self, func) -> "Err":
        return self


Result: TypeAlias = Union[Ok[T], Err]

__all__ = ["Err", "Ok", "Result"]
