"""User-friendly location error messages and safe tool wrapper."""

import logging

from src.clients.resilience import (
    LocationTimeoutError,
    PermissionDeniedError,
    SignalUnavailableError,
    classify_location_error,
)
from src.models.status import LocationErrorInfo

logger = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = (
    "Location permission denied. Enable it in Settings to use tracking."
)
NO_SIGNAL_MESSAGE = (
    "Can’t get GPS signal. Try moving outdoors or enabling Location services."
)
RETRY_HINT = " Trying again…"


def to_friendly_location_error(
    error: object, include_retry_hint: bool = False
) -> LocationErrorInfo:
    """Map a raw provider error to a user-facing message and a fatal flag.

    Args:
        error: Anything the provider hands back (exception, coded object, str).
        include_retry_hint: Append "Trying again…" to non-fatal messages,
            used while the watch keeps retrying on its own.

    Returns:
        ``LocationErrorInfo``; only permission denial is fatal.
    """
    classified = classify_location_error(error)
    hint = RETRY_HINT if include_retry_hint else ""

    if isinstance(classified, PermissionDeniedError):
        return LocationErrorInfo(
            message=PERMISSION_DENIED_MESSAGE, fatal=True, kind=classified.kind
        )
    if isinstance(classified, (SignalUnavailableError, LocationTimeoutError)):
        return LocationErrorInfo(
            message=NO_SIGNAL_MESSAGE + hint, fatal=False, kind=classified.kind
        )
    return LocationErrorInfo(
        message=(classified.raw_message or "Location error.") + hint,
        fatal=False,
        kind=classified.kind,
    )


async def safe_tool_wrapper(
    func,  # type: ignore[no-untyped-def]
    *args: object,
    **kwargs: object,
) -> str:
    """Call an async function, catching errors and returning friendly messages.

    Args:
        func: Async callable to invoke.
        *args: Positional arguments for *func*.
        **kwargs: Keyword arguments for *func*.

    Returns:
        The function's return value on success, or a user-friendly error string.
    """
    try:
        return await func(*args, **kwargs)
    except ValueError as exc:
        logger.warning("Invalid input for %s: %s", func.__name__, exc)
        return f"Invalid input: {exc}"
    except Exception:  # noqa: BLE001
        logger.exception("Tool error in %s", func.__name__)
        return "Something went wrong. Please try again."
