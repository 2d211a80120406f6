from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from utils.errors import LevelUpError

T = TypeVar("T")

GENERIC_FAILURE = "Something went wrong, please try again."


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a repository operation: either a value or a LevelUpError.
    Screens render `message` inline instead of catching exceptions.
    """

    value: Optional[T] = None
    error: Optional[LevelUpError] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: LevelUpError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return str(self.error) or GENERIC_FAILURE
