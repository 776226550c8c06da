"""Resilience primitives: exception hierarchy, location error classification, storage retry."""

import logging

import aiosqlite
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.models.enums import LocationErrorKind

logger = logging.getLogger(__name__)


# ── Exception Hierarchy ──────────────────────────────────────────────────────


class TrackingError(Exception):
    """Base class for all tracking errors."""


class LocationError(TrackingError):
    """An error reported by the location provider.

    Args:
        raw_message: The provider's message, passed through untouched.
        code: Provider-native numeric code, when one was supplied.
    """

    kind = LocationErrorKind.UNCLASSIFIED
    fatal = False

    def __init__(self, raw_message: str = "", code: int | None = None) -> None:
        super().__init__(raw_message)
        self.raw_message = raw_message
        self.code = code


class PermissionDeniedError(LocationError):
    """Location permission refused — the user must act in device settings."""

    kind = LocationErrorKind.PERMISSION_DENIED
    fatal = True


class SignalUnavailableError(LocationError):
    """No fix available (GPS off, indoors, provider disabled)."""

    kind = LocationErrorKind.SIGNAL_UNAVAILABLE


class LocationTimeoutError(LocationError):
    """The provider did not deliver a fix within the watch timeout."""

    kind = LocationErrorKind.TIMEOUT


class UnclassifiedLocationError(LocationError):
    """Anything the classifier does not recognise."""


class TransientStorageError(TrackingError):
    """Retriable persistence failure (e.g. database locked)."""


# Provider-native geolocation codes
PERMISSION_DENIED_CODE = 1
POSITION_UNAVAILABLE_CODE = 2
TIMEOUT_CODE = 3

_PERMISSION_PHRASES = ("permission denied", "denied", "not authorized", "unauthorized")
_TIMEOUT_PHRASES = ("timeout", "timed out")
_UNAVAILABLE_PHRASES = (
    "position unavailable",
    "unavailable",
    "no location",
    "location unavailable",
    "location services",
)


# ── Classification ───────────────────────────────────────────────────────────


def _raw_code(err: object) -> int | None:
    code = getattr(err, "code", None)
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    return None


def _raw_message(err: object) -> str:
    if isinstance(err, LocationError):
        return err.raw_message.strip()
    message = getattr(err, "message", None)
    if message is None:
        message = err if err is not None else ""
    return str(message).strip()


def classify_location_error(err: object) -> LocationError:
    """Turn a raw provider error into a typed ``LocationError``.

    The numeric code wins when present (1 permission, 2 unavailable,
    3 timeout); otherwise the message is matched case-insensitively.

    Args:
        err: An exception, an object with ``code``/``message`` attributes,
            or a plain string.

    Returns:
        A ``LocationError`` subclass instance carrying the raw message.
    """
    if isinstance(err, LocationError) and type(err) is not LocationError:
        return err

    code = _raw_code(err)
    raw = _raw_message(err)
    msg = raw.lower()

    if code == PERMISSION_DENIED_CODE or any(p in msg for p in _PERMISSION_PHRASES):
        return PermissionDeniedError(raw, code)

    if code == TIMEOUT_CODE or any(p in msg for p in _TIMEOUT_PHRASES):
        return LocationTimeoutError(raw, code)

    provider_off = ("gps" in msg and "off" in msg) or (
        "provider" in msg and "disabled" in msg
    )
    if (
        code == POSITION_UNAVAILABLE_CODE
        or provider_off
        or any(p in msg for p in _UNAVAILABLE_PHRASES)
    ):
        return SignalUnavailableError(raw, code)

    return UnclassifiedLocationError(raw, code)


# ── Retry ─────────────────────────────────────────────────────────────────


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` callback that logs each retry."""
    attempt = retry_state.attempt_number
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Storage retry attempt %d after error: %s", attempt, exc)


resilient_write = retry(
    retry=retry_if_exception_type((aiosqlite.OperationalError, TransientStorageError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    before_sleep=log_retry_attempt,
    reraise=True,
)
"""Tenacity decorator for retrying writes on a locked or busy database."""
