"""Tests for configuration, identifiers, clock utilities and validation plumbing."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from brenner_loop.config import LOG_FORMAT, Settings, configure_logging
from brenner_loop.foundation.clock import ensure_utc, is_valid_date, to_utc, utc_now
from brenner_loop.foundation.identifiers import (
    format_sequence,
    prefixed_uuid,
    session_scoped_id,
    validate_sequence,
    validate_session_id,
)
from brenner_loop.foundation.validation import (
    InvalidRecordError,
    ValidationIssue,
    ValidationResult,
    is_blank,
    raise_for_errors,
)


class TestSessionScopedIds:
    def test_zero_pads_sequence(self) -> None:
        assert session_scoped_id("EV", "S", 7) == "EV-S-007"
        assert format_sequence(999) == "999"

    def test_hyphenated_session_id(self) -> None:
        assert session_scoped_id("GY", "lab-2026-a", 1) == "GY-lab-2026-a-001"

    @pytest.mark.parametrize("bad", ["", "-lead", "has space", "under_score", "ünï"])
    def test_rejects_bad_session_id(self, bad: str) -> None:
        with pytest.raises(ValueError, match="Invalid sessionId"):
            validate_session_id(bad)

    @pytest.mark.parametrize("bad", [-1, 1000, 1.5, True, "3"])
    def test_rejects_bad_sequence(self, bad: object) -> None:
        with pytest.raises(ValueError, match="Invalid sequence"):
            validate_sequence(bad)  # type: ignore[arg-type]

    def test_sequence_bounds_accepted(self) -> None:
        assert validate_sequence(0) == 0
        assert validate_sequence(999) == 999

    def test_prefixed_uuid_is_unique(self) -> None:
        a, b = prefixed_uuid("AT"), prefixed_uuid("AT")
        assert a.startswith("AT-")
        assert a != b


class TestClock:
    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo is not None

    def test_naive_gets_utc(self) -> None:
        assert ensure_utc(datetime(2026, 1, 1)).tzinfo == timezone.utc

    def test_offset_converted(self) -> None:
        dt = datetime(2026, 1, 1, 12, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(dt).hour == 10

    def test_to_utc_parses_trailing_z(self) -> None:
        assert to_utc("2026-01-05T10:00:00Z") == datetime(2026, 1, 5, 10, tzinfo=timezone.utc)

    def test_to_utc_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            to_utc("yesterday")
        with pytest.raises(TypeError):
            to_utc(42)  # type: ignore[arg-type]

    def test_is_valid_date(self) -> None:
        assert is_valid_date("2026-01-05T10:00:00+00:00")
        assert is_valid_date(utc_now())
        assert not is_valid_date("not a date")
        assert not is_valid_date(None)


class TestValidationPlumbing:
    def test_result_validity_follows_errors(self) -> None:
        warning = ValidationIssue(field="f", message="m", code="W")
        assert ValidationResult.from_issues([], [warning]).valid
        assert not ValidationResult.from_issues([warning], []).valid

    def test_raise_for_errors_aggregates(self) -> None:
        errors = [
            ValidationIssue(field="a", message="first", code="X"),
            ValidationIssue(field="b", message="second", code="Y"),
        ]
        with pytest.raises(InvalidRecordError) as exc_info:
            raise_for_errors("Thing", ValidationResult.from_issues(errors, []))
        assert str(exc_info.value) == "Invalid Thing: a: first; b: second"
        assert exc_info.value.errors == errors

    def test_invalid_record_error_is_value_error(self) -> None:
        assert issubclass(InvalidRecordError, ValueError)

    def test_is_blank(self) -> None:
        assert is_blank(None)
        assert is_blank("   ")
        assert not is_blank("x")


class TestConfig:
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BRENNER_SIGNIFICANCE_THRESHOLD", "12.5")
        monkeypatch.setenv("BRENNER_DORMANCY_THRESHOLD_DAYS", "7")
        fresh = Settings()
        assert fresh.significance_threshold == 12.5
        assert fresh.dormancy_threshold_days == 7

    def test_defaults(self) -> None:
        fresh = Settings()
        assert fresh.default_confidence == 50.0
        assert fresh.app_name == "brenner-loop"

    def test_configure_logging(self) -> None:
        with patch("brenner_loop.config.logging.basicConfig") as basic:
            configure_logging("DEBUG")
        basic.assert_called_once_with(level="DEBUG", format=LOG_FORMAT)
