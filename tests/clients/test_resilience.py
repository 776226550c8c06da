"""Tests for src.clients.resilience — exceptions, location error classification, retry."""

from unittest.mock import AsyncMock, MagicMock

import aiosqlite
import pytest

from src.clients.location import ProviderError
from src.clients.resilience import (
    LocationError,
    LocationTimeoutError,
    PermissionDeniedError,
    SignalUnavailableError,
    TrackingError,
    TransientStorageError,
    UnclassifiedLocationError,
    classify_location_error,
    log_retry_attempt,
    resilient_write,
)
from src.models.enums import LocationErrorKind

# ── Exception Hierarchy ──────────────────────────────────────────────────────


class TestExceptionHierarchy:
    def test_location_error_is_tracking_error(self):
        assert issubclass(LocationError, TrackingError)

    def test_permission_denied_is_fatal(self):
        assert PermissionDeniedError.fatal is True

    @pytest.mark.parametrize(
        "cls", [SignalUnavailableError, LocationTimeoutError, UnclassifiedLocationError]
    )
    def test_others_not_fatal(self, cls):
        assert cls.fatal is False
        assert issubclass(cls, LocationError)

    def test_storage_error_is_tracking_error(self):
        assert issubclass(TransientStorageError, TrackingError)

    def test_keeps_code_and_raw_message(self):
        err = SignalUnavailableError("no fix", 2)
        assert err.code == 2
        assert err.raw_message == "no fix"


# ── classify_location_error ──────────────────────────────────────────────────


class TestClassifyByCode:
    def test_code_1_permission(self):
        assert isinstance(classify_location_error(ProviderError("", 1)), PermissionDeniedError)

    def test_code_2_unavailable(self):
        assert isinstance(classify_location_error(ProviderError("", 2)), SignalUnavailableError)

    def test_code_3_timeout(self):
        assert isinstance(classify_location_error(ProviderError("", 3)), LocationTimeoutError)

    def test_unknown_code_unclassified(self):
        result = classify_location_error(ProviderError("weird", 42))
        assert isinstance(result, UnclassifiedLocationError)
        assert result.raw_message == "weird"

    def test_code_from_mock_object(self):
        err = MagicMock(code=1, message="whatever")
        assert classify_location_error(err).kind == LocationErrorKind.PERMISSION_DENIED


class TestClassifyByMessage:
    @pytest.mark.parametrize(
        "message",
        [
            "User denied Geolocation",
            "Permission denied",
            "App is not authorized to use location",
            "Unauthorized",
        ],
    )
    def test_permission_phrases(self, message):
        assert isinstance(classify_location_error(message), PermissionDeniedError)

    @pytest.mark.parametrize("message", ["Timeout expired", "Request timed out"])
    def test_timeout_phrases(self, message):
        assert isinstance(classify_location_error(message), LocationTimeoutError)

    @pytest.mark.parametrize(
        "message",
        [
            "Position unavailable",
            "location unavailable",
            "No location found",
            "Location services are not enabled",
            "GPS is switched off",
            "Network provider is disabled",
        ],
    )
    def test_unavailable_phrases(self, message):
        assert isinstance(classify_location_error(message), SignalUnavailableError)

    def test_exception_message(self):
        result = classify_location_error(RuntimeError("position unavailable"))
        assert isinstance(result, SignalUnavailableError)

    def test_unmatched_passes_raw_message(self):
        result = classify_location_error("  Kaboom  ")
        assert isinstance(result, UnclassifiedLocationError)
        assert result.raw_message == "Kaboom"

    def test_none_is_unclassified(self):
        result = classify_location_error(None)
        assert isinstance(result, UnclassifiedLocationError)
        assert result.raw_message == ""

    def test_already_classified_is_returned(self):
        err = LocationTimeoutError("slow", 3)
        assert classify_location_error(err) is err

    def test_permission_wins_over_timeout_code(self):
        result = classify_location_error(ProviderError("permission denied", 3))
        assert isinstance(result, PermissionDeniedError)


# ── Retry ────────────────────────────────────────────────────────────────────


class TestLogRetryAttempt:
    def test_logs_warning(self, caplog):
        state = MagicMock()
        state.attempt_number = 2
        state.outcome.exception.return_value = ValueError("boom")
        with caplog.at_level("WARNING"):
            log_retry_attempt(state)
        assert "Storage retry attempt 2" in caplog.text


class TestResilientWrite:
    async def test_retries_operational_error_then_succeeds(self):
        inner = AsyncMock(side_effect=[aiosqlite.OperationalError("database is locked"), "ok"])

        @resilient_write
        async def write():
            return await inner()

        assert await write() == "ok"
        assert inner.await_count == 2

    async def test_gives_up_after_three_attempts(self):
        inner = AsyncMock(side_effect=TransientStorageError("busy"))

        @resilient_write
        async def write():
            return await inner()

        with pytest.raises(TransientStorageError):
            await write()
        assert inner.await_count == 3

    async def test_does_not_retry_other_errors(self):
        inner = AsyncMock(side_effect=ValueError("bad"))

        @resilient_write
        async def write():
            return await inner()

        with pytest.raises(ValueError):
            await write()
        assert inner.await_count == 1
