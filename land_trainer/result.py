"""
Tagged results for calls that cross a component boundary.

External-call sites never return silent nulls: they return ``Ok(value)`` or
``Err(reason, kind, retryable)`` and callers branch on ``result.ok``.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from land_trainer.errors import ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    reason: str
    kind: ErrorKind = ErrorKind.UPSTREAM
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {"error": self.reason, "kind": self.kind.value, "retryable": self.retryable}


Result = Union[Ok[Any], Err]
