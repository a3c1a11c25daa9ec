# app/lib/outcome.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Type, TypeVar

from app.lib.errors import PipelineError

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result of one pipeline step: either a value or a converted PipelineError.

    Stages call `Outcome.attempt(fn, ..., kind=SomeError)` so provider
    exceptions are turned into our own error kinds at the call site, then pick
    their policy explicitly:
      - `.unwrap()`          fatal: re-raise the converted error
      - `.recover(default)`  non-fatal: fall back to a default value
    """

    value: Optional[T] = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def attempt(
        cls,
        fn: Callable[..., T],
        *args: Any,
        kind: Type[PipelineError] = PipelineError,
        **kwargs: Any,
    ) -> "Outcome[T]":
        try:
            return cls(value=fn(*args, **kwargs))
        except PipelineError as e:
            return cls(error=e)
        except Exception as e:
            return cls(error=kind(str(e) or e.__class__.__name__, cause=e))

    def recover(self, default: Callable[[PipelineError], T]) -> T:
        if self.error is None:
            return self.value  # type: ignore[return-value]
        return default(self.error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
