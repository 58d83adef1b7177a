"""Error classifier — decides how a failed provider call is treated."""

from __future__ import annotations

from marketing_bot.shared.providers.errors import ProviderInvocationError
from marketing_bot.shared.providers.types import ErrorClassification, ErrorKind

AUTH_STATUS_CODES = frozenset({401, 403})
AUTH_MARKERS = ("401", "unauthorized")

CAPACITY_STATUS_CODES = frozenset({429, 503})
CAPACITY_MARKERS = (
    "rate_limit",
    "rate limit",
    "quota",
    "too many requests",
    "overloaded",
)


def extract_status_code(error: BaseException) -> int | None:
    """Best-effort numeric status from the error or its attached response."""
    if isinstance(error, ProviderInvocationError) and error.status_code is not None:
        return error.status_code
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


class ErrorClassifier:
    """Maps an exception to an ``ErrorClassification``.

    Credential failures stop retries of that entry but never stop the
    pool walk.  Unknown errors fail over too.
    """

    def classify(self, error: BaseException) -> ErrorClassification:
        status = extract_status_code(error)
        message = str(error).lower()

        if status in AUTH_STATUS_CODES or any(m in message for m in AUTH_MARKERS):
            return ErrorClassification(
                kind=ErrorKind.AUTH,
                retryable_across_pool=True,
                retry_same_entry=False,
            )

        if status in CAPACITY_STATUS_CODES or any(m in message for m in CAPACITY_MARKERS):
            return ErrorClassification(kind=ErrorKind.CAPACITY)

        return ErrorClassification(kind=ErrorKind.UNKNOWN)
