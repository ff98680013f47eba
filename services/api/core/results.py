# services/api/core/results.py
"""
Per-stage results for the document pipeline.

render -> rasterize -> merge: a later stage failing must not unwind an
earlier stage's success, so stages hand back one of these instead of raising.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    reason: str


@dataclass(frozen=True)
class Fail:
    reason: str
    error: Optional[BaseException] = None


StageResult = Union[Ok, Degraded, Fail]
