from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of an orchestration call.

    Services never raise past their public methods: a rejected or failed
    operation comes back as ``Outcome(succeeded=False, errors=[...])``.
    """

    succeeded: bool
    value: Optional[T] = None
    errors: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(succeeded=True, value=value, errors=[])

    @classmethod
    def fail(cls, *errors: str) -> "Outcome[T]":
        return cls(succeeded=False, value=None, errors=[str(e) for e in errors if e])

    @property
    def failed(self) -> bool:
        return not self.succeeded

    @property
    def message(self) -> str:
        return ", ".join(self.errors)
