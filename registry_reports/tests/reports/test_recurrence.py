from __future__ import annotations

from datetime import datetime

import pytest

from registry_reports.reports import recurrence as rr
from registry_reports.reports.errors import InvalidRecurrenceRule, InvalidReportDefinition

# A Saturday
NOON = datetime(2024, 6, 1, 12, 0, 0)


def _naive(moment):
    return moment.replace(tzinfo=None)


def test_parse_normalizes_whitespace():
    rule = rr.RecurrenceRule.parse("  0   6 *  * 1-5 ")
    assert rule.expression == "0 6 * * 1-5"


def test_next_after_daily_midnight():
    rule = rr.RecurrenceRule.parse("0 0 * * *")
    assert _naive(rule.next_after(NOON)) == datetime(2024, 6, 2, 0, 0)


def test_next_after_is_strictly_after():
    rule = rr.RecurrenceRule.parse("0 12 * * *")
    assert _naive(rule.next_after(NOON)) == datetime(2024, 6, 2, 12, 0)


def test_weekday_numbers_use_crontab_semantics():
    # 1-5 is Monday..Friday; from Saturday noon the next run is Monday
    rule = rr.RecurrenceRule.parse("0 6 * * 1-5")
    assert _naive(rule.next_after(NOON)) == datetime(2024, 6, 3, 6, 0)


def test_zero_is_sunday():
    rule = rr.RecurrenceRule.parse("30 9 * * 0")
    assert _naive(rule.next_after(NOON)) == datetime(2024, 6, 2, 9, 30)


@pytest.mark.parametrize(
    "field, expected",
    [
        ("*", "*"),
        ("1-5", "mon,tue,wed,thu,fri"),
        ("0,7", "sun"),
        ("*/2", "sun,tue,thu,sat"),
        ("mon-fri", "mon-fri"),
        ("6", "sat"),
        ("5/2", "fri,sun"),
        ("1/3", "mon,thu,sun"),
    ],
)
def test_crontab_day_of_week(field, expected):
    assert rr.crontab_day_of_week(field) == expected


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "   ",
        None,
        "not a cron",
        "0 0 * *",
        "0 0 * * * *",
        "61 * * * *",
        "a b c d e",
        "0 0 * * 8",
        "0 0 1 * 1",
        "0 0 12 * * MON",
        "0 0 12 ? * ?",
        "0 0 12 1 * 2",
        "0 0 12 ? * 8",
        "0 0 0 0 12 ? * MON 2024",
        "0 25 * * *",
    ],
)
def test_parse_rejects_invalid(expression):
    with pytest.raises(InvalidRecurrenceRule) as exc_info:
        rr.RecurrenceRule.parse(expression)
    assert isinstance(exc_info.value, InvalidReportDefinition)


def test_invalid_rule_keeps_expression_and_reason():
    with pytest.raises(InvalidRecurrenceRule) as exc_info:
        rr.RecurrenceRule.parse("0 0 * *")
    assert exc_info.value.expression == "0 0 * *"
    assert "5 fields" in exc_info.value.reason


def test_validate_recurrence_rule_returns_normalized():
    assert rr.validate_recurrence_rule("*/15  *  * * *") == "*/15 * * * *"


def test_resolve_timezone_blank_is_local():
    assert rr.resolve_timezone(None) is None
    assert rr.resolve_timezone("  ") is None


def test_resolve_timezone_unknown_raises():
    with pytest.raises(ValueError, match="Unknown timezone"):
        rr.resolve_timezone("Not/AZone")


def test_restricting_both_day_fields_is_rejected():
    with pytest.raises(InvalidRecurrenceRule) as exc_info:
        rr.RecurrenceRule.parse("0 0 1 * 1")
    assert "both be restricted" in exc_info.value.reason


@pytest.mark.parametrize(
    "field, expected",
    [
        ("*", "*"),
        ("1", "sun"),
        ("2-6", "mon,tue,wed,thu,fri"),
        ("7", "sat"),
        ("MON", "MON"),
        ("*/3", "sun,wed,sat"),
    ],
)
def test_quartz_day_of_week(field, expected):
    assert rr.quartz_day_of_week(field) == expected


def test_quartz_weekly_rule():
    rule = rr.RecurrenceRule.parse("0 0 12 ? * MON")
    assert rule.expression == "0 0 12 ? * MON"
    assert _naive(rule.next_after(NOON)) == datetime(2024, 6, 3, 12, 0)


def test_quartz_day_numbers_start_on_sunday():
    # 1 is Sunday in Quartz
    rule = rr.RecurrenceRule.parse("0 30 9 ? * 1")
    assert _naive(rule.next_after(NOON)) == datetime(2024, 6, 2, 9, 30)


def test_quartz_seconds_and_day_of_month():
    rule = rr.RecurrenceRule.parse("15 0 6 1 * ?")
    assert _naive(rule.next_after(NOON)) == datetime(2024, 7, 1, 6, 0, 15)


def test_quartz_year_field():
    rule = rr.RecurrenceRule.parse("0 0 0 1 1 ? 2030")
    assert _naive(rule.next_after(NOON)) == datetime(2030, 1, 1, 0, 0)
    with pytest.raises(InvalidRecurrenceRule, match="never fires"):
        rr.RecurrenceRule.parse("0 0 0 1 1 ? 2020", now=NOON)
