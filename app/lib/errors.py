# app/lib/errors.py
"""
Error kinds raised inside the story pipeline.

Every external call site converts provider exceptions (openai, httpx,
google-cloud, postgrest) into one of these before the error crosses a stage
boundary. Only `PersistenceError`, `DispatchError` and (before a job starts)
`ValidationError` are ever shown to the caller; the rest degrade the result.
"""
from __future__ import annotations


class PipelineError(Exception):
    """Base class for all story pipeline errors."""

    kind = "pipeline"

    def __init__(self, message: str = "", *, cause: BaseException | None = None):
        super().__init__(message or self.__class__.__name__)
        self.cause = cause


class ValidationError(PipelineError):
    """Malformed or incomplete generation request; the job never starts."""

    kind = "validation"


class AssetError(PipelineError):
    """A single image could not be decoded, uploaded or analyzed."""

    kind = "asset"


class GenerationError(PipelineError):
    """The text model was unreachable or returned unusable output."""

    kind = "generation"


class SynthesisError(PipelineError):
    """The speech service failed (network, quota, service error)."""

    kind = "synthesis"

    def __init__(self, message: str = "", *, status_code: int | None = None, cause: BaseException | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class PersistenceError(PipelineError):
    """The primary story row could not be written. Fatal for the job."""

    kind = "persistence"


class ChildPersistenceError(PipelineError):
    """Image/character rows failed after the story row was committed."""

    kind = "child_persistence"


class DispatchError(PipelineError):
    """An async job could not be handed to its runner (request mirror or queue)."""

    kind = "dispatch"
