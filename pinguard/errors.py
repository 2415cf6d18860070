"""Exception types raised by the PIN guard.

Wrong PINs and active lockouts are normal flow outcomes and never surface
here. These exceptions are reserved for infrastructure and programming errors.
"""

from __future__ import annotations

from typing import Optional


class PinGuardError(Exception):
    pass


class StoreUnavailableError(PinGuardError):
    """Persisted attempt state could not be read or written."""

    def __init__(
        self,
        message: str,
        *,
        backend: str = "unknown",
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.backend = backend
        self.operation = operation


class CredentialCheckError(PinGuardError):
    """The injected PIN predicate raised instead of answering."""


class GuardStateError(PinGuardError):
    """A controller method was called from a state that does not allow it."""
