"""
Engine error taxonomy.

Every error carries a machine-readable ``kind`` plus the entity's current
status and the transition that was attempted, so a host can tell a
retryable concurrency conflict (``StaleState``) apart from a rejection it
should surface to the user.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional


class EngineError(Exception):
    kind = "engine_error"

    def __init__(
        self,
        message: str,
        *,
        current_status: Optional[Any] = None,
        attempted: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.current_status = current_status
        self.attempted = attempted

    def to_dict(self) -> dict[str, Any]:
        status = self.current_status
        return {
            "detail": self.message,
            "kind": self.kind,
            "current_status": getattr(status, "value", status),
            "attempted": self.attempted,
        }


class InvalidInput(EngineError):
    """Malformed numeric argument: zero/negative seats, non-positive price."""

    kind = "invalid_input"


class IneligibleOperation(EngineError):
    kind = "ineligible_operation"


class NotFound(EngineError):
    kind = "not_found"


class PreconditionNotMet(EngineError):
    kind = "precondition_not_met"


class TooEarly(PreconditionNotMet):
    """Ride completion attempted before the minimum elapsed time."""

    kind = "too_early"

    def __init__(self, message: str, *, remaining: timedelta, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.remaining = remaining

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["remaining_seconds"] = int(self.remaining.total_seconds())
        return data


class CancellationWindowClosed(PreconditionNotMet):
    kind = "cancellation_window_closed"


class CapacityExceeded(PreconditionNotMet):
    kind = "capacity_exceeded"


class StaleState(EngineError):
    """The entity's status moved on since the caller read it."""

    kind = "stale_state"

    def __init__(self, message: str, *, expected: Optional[Any] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.expected = expected


class TerminalState(EngineError):
    kind = "terminal_state"
