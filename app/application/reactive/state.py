from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Idle:
    """The query is disabled or has not been requested yet."""


@dataclass(frozen=True)
class Loading(Generic[T]):
    # Only set while refetching the same key.
    previous: T | None = None


@dataclass(frozen=True)
class Ready(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failed(Generic[T]):
    error: Exception
    last_good: T | None = None


QueryState = Union[Idle, Loading[Any], Ready[Any], Failed[Any]]

IDLE = Idle()


def value_or(state: QueryState, default: T) -> T:
    """Last complete snapshot of a query, or ``default`` when there is none."""
    if isinstance(state, Ready):
        return state.value
    if isinstance(state, Loading) and state.previous is not None:
        return state.previous
    if isinstance(state, Failed) and state.last_good is not None:
        return state.last_good
    return default


def state_tag(state: QueryState) -> str:
    return type(state).__name__.lower()
