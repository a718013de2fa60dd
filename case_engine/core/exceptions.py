"""Custom exception hierarchy for the case engine.

Every service-layer error inherits from CaseEngineError, giving the API
layer a single base class to catch and translate into structured JSON
responses. Lifecycle conflicts carry the case id and the statuses
involved in ``details`` so callers can decide whether to re-read and
retry.
"""

from __future__ import annotations

from typing import Any


class CaseEngineError(Exception):
    """Base exception for all case engine errors."""

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details: dict[str, Any] = details or {}
        super().__init__(message)


class NotFoundError(CaseEngineError):
    """Raised when a requested resource does not exist."""


class ForbiddenError(CaseEngineError):
    """Raised when the caller's role or identity does not permit the action."""


class ConflictError(CaseEngineError):
    """Raised when a resource with the same identity already exists."""


class LexiconError(CaseEngineError):
    """Raised when the keyword lexicon cannot be loaded or is malformed."""


class LifecycleError(CaseEngineError):
    """Base class for case lifecycle failures."""


class InvalidTransition(LifecycleError):
    """Raised when the requested status is not reachable from the current one."""


class StaleState(LifecycleError):
    """Raised when the persisted case changed since the caller last read it.

    The caller must re-read the case and retry or abort.
    """


class AlreadyClaimed(LifecycleError):
    """Raised when another provider already holds the active claim on a case."""


class ProviderUnavailable(LifecycleError):
    """Raised when the target provider is unverified or not accepting cases."""


class NotClaimant(LifecycleError):
    """Raised when the responding provider does not hold the pending claim."""
