"""Exceptions raised by the propagation tracker sync core."""

from __future__ import annotations

from typing import Any


class PropagationTrackerError(RuntimeError):
    """Base error for the sync core."""

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class LabApiError(PropagationTrackerError):
    """Raised when the remote lab API rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status: int | None = None, reason: str | None = None) -> None:
        super().__init__(message, reason=reason)
        self.status = status

    @property
    def not_found(self) -> bool:
        return self.status == 404


class ReconcileError(PropagationTrackerError):
    """Raised when a batch of summary records cannot be read at all."""


class TransitionError(PropagationTrackerError):
    """Raised when a status change failed and the optimistic patch was rolled back."""

    def __init__(
        self,
        message: str,
        *,
        entity_ref: Any = None,
        previous_status: str | None = None,
        attempted_status: str | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, reason=reason)
        self.entity_ref = entity_ref
        self.previous_status = previous_status
        self.attempted_status = attempted_status


class TransitionInProgressError(TransitionError):
    """Raised when a second transition is requested while one is still pending."""
