"""Error taxonomy and the discriminated result returned by engine operations.

Component internals raise ``EngineError`` subclasses. Public operations of
interview sessions, suggestion editors and synthesis jobs catch them at the
component boundary and hand back a single ``Outcome`` instead.
"""

import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Literal, TypeVar

from expertise_engine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

OutcomeKind = Literal[
    "ok",
    "validation",
    "access_denied",
    "illegal_transition",
    "stream_protocol",
    "upstream",
    "stale_reference",
]


class EngineError(Exception):
    """Base class for errors surfaced to callers as an Outcome."""

    kind: OutcomeKind = "upstream"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(EngineError):
    """Input rejected before any network call (short description, empty message...)."""

    kind = "validation"


class AccessDeniedError(EngineError):
    """Caller may not read or modify the referenced record."""

    kind = "access_denied"


class IllegalTransitionError(EngineError):
    """Operation is not allowed in the component's current state."""

    kind = "illegal_transition"


class StreamProtocolError(EngineError):
    """Malformed typed-event frame or a stream that ended without a terminal frame."""

    kind = "stream_protocol"


class UpstreamError(EngineError):
    """The AI service reported an error, or a request returned a non-success status."""

    kind = "upstream"


class StaleReferenceError(EngineError):
    """The record an operation targets changed or vanished since it was captured."""

    kind = "stale_reference"


class BackgroundTaskError(Exception):
    """Failure of a detached side effect. Logged only, never surfaced."""

    def __init__(self, task_name: str, cause: BaseException):
        super().__init__(f"Background task '{task_name}' failed: {cause}")
        self.task_name = task_name
        self.cause = cause


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Single discriminated result of an engine operation."""

    kind: OutcomeKind
    value: T | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind == "ok"

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(kind="ok", value=value)

    @classmethod
    def failure(cls, error: EngineError) -> "Outcome[T]":
        return cls(kind=error.kind, message=error.message)


def guarded(operation: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[Outcome[T]]]:
    """Convert raised engine errors from an async operation into an Outcome."""

    @functools.wraps(operation)
    async def wrapper(*args: Any, **kwargs: Any) -> Outcome[T]:
        try:
            return Outcome.success(await operation(*args, **kwargs))
        except EngineError as e:
            logger.warning(f"{operation.__qualname__} failed ({e.kind}): {e.message}")
            return Outcome.failure(e)
        except Exception as e:
            logger.error(f"{operation.__qualname__} failed unexpectedly: {e}", exc_info=True)
            return Outcome.failure(UpstreamError(str(e) or e.__class__.__name__))

    return wrapper
