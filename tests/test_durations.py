"""Tests for duration parsing and timestamps."""

import datetime

import pytest

from supportbot.durations import (
    duration_to_ms,
    expiry_from,
    format_timestamp,
    parse_timestamp,
    to_hours,
)
from supportbot.errors import InvalidDuration

NOW = datetime.datetime(2025, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("90m", 2),
        ("60m", 1),
        ("1m", 1),
        ("168", 168),
        ("2h", 2),
        ("3d", 72),
        ("1w", 168),
        (" 2H ", 2),
        ("0", 0),
    ],
)
def test_to_hours_rounds_minutes_up(text, expected):
    assert to_hours(text) == expected


@pytest.mark.parametrize("text", [None, "", "   "])
def test_blank_duration_is_permanent(text):
    assert to_hours(text) == 0


@pytest.mark.parametrize("text", ["abc", "-5", "1.5h", "2y", "h", "10 m", "1h30m"])
def test_invalid_durations_raise(text):
    with pytest.raises(InvalidDuration):
        duration_to_ms(text)


def test_expiry_is_exact_to_the_millisecond():
    assert expiry_from("90m", NOW) == NOW + datetime.timedelta(milliseconds=5_400_000)
    assert duration_to_ms("90m") == 5_400_000


def test_expiry_rejects_bad_duration():
    with pytest.raises(InvalidDuration):
        expiry_from("soon", NOW)


@pytest.mark.parametrize("text", ["1000000w", "99999999999d"])
def test_expiry_past_the_calendar_is_invalid(text):
    with pytest.raises(InvalidDuration):
        expiry_from(text, NOW)


def test_timestamps_round_trip_with_milliseconds():
    text = format_timestamp(NOW + datetime.timedelta(milliseconds=5))
    assert text == "2025-01-01T12:00:00.005+00:00"
    assert parse_timestamp("2025-01-01T12:00:00.005Z") == parse_timestamp(text)
