"""
Error taxonomy for the orchestration runtime.

Oracle-reported failures are not modelled here: they are written into the
affected transcript as plain text so the acting agent can react to them.
"""

from __future__ import annotations


class OrchestratorError(RuntimeError):
    """Base class for all runtime failures."""


class AuthorizationError(OrchestratorError):
    """Raised when a caller is not allowed to act on a run or callback."""


class ProtocolStateError(OrchestratorError):
    """Raised when an operation arrives while the run is in the wrong state."""


class UnknownRunError(OrchestratorError, LookupError):
    """Raised for run ids that were never assigned."""


class UnknownActorError(OrchestratorError, LookupError):
    """Raised for actor ids that were never assigned."""


class MalformedDirective(OrchestratorError, ValueError):
    """Raised by the directive parser for a single unusable directive."""

    def __init__(self, message: str, *, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


__all__ = [
    "OrchestratorError",
    "AuthorizationError",
    "ProtocolStateError",
    "UnknownRunError",
    "UnknownActorError",
    "MalformedDirective",
]
