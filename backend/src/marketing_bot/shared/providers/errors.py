"""Errors raised by the rotation framework and its backend clients."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for provider-layer failures."""


class ProviderInvocationError(ProviderError):
    """A single backend call failed.

    Clients raise this; the rotation engine always catches it.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        provider_id: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.provider_id = provider_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.status_code}] {self.message}"
        return self.message


class PoolExhaustedError(ProviderError):
    """Raised when every allowed attempt failed."""

    def __init__(
        self,
        last_error: str,
        *,
        provider_id: str | None = None,
        attempts: int = 0,
    ) -> None:
        self.last_error = last_error
        self.provider_id = provider_id
        self.attempts = attempts
        super().__init__(
            f"All models failed after {attempts} attempt(s). "
            f"Last ({provider_id or 'unknown'}): {last_error or 'unknown'}"
        )


class NoProvidersConfiguredError(ProviderError):
    """The pool is empty — a deployment defect, not a transient condition."""

    def __init__(self) -> None:
        super().__init__("No language-model providers configured")
