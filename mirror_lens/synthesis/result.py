"""Tagged outcome of a synthesis task, so callers and tests can tell which path produced a value."""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Repaired(Generic[T]):
    value: T
    notes: tuple[str, ...]


@dataclass(frozen=True)
class Defaulted(Generic[T]):
    value: T
    reason: str


SynthesisResult = Union[Valid[T], Repaired[T], Defaulted[T]]
