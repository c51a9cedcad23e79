"""
Validated cron recurrence rules backed by APScheduler's CronTrigger.

Two dialects are accepted:

- crontab, five fields: ``minute hour day month day-of-week``
  (day-of-week 0 and 7 are Sunday)
- Quartz, six or seven fields: ``second minute hour day month day-of-week [year]``
  with ``?`` in exactly one of the day fields (day-of-week 1 is Sunday),
  e.g. ``0 0 12 ? * MON``

APScheduler matches an occurrence only when day-of-month AND day-of-week both
match, whereas crontab fires when either does. Rules restricting both day
fields are rejected rather than silently taking a different meaning.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Callable, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from registry_reports.reports.errors import InvalidRecurrenceRule

CRON_FIELD_COUNT = 5
QUARTZ_FIELD_COUNTS = (6, 7)

_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_UNRESTRICTED = ("*", "?")

_EPSILON = timedelta(microseconds=1)


def _day_names(value: str, low: int, high: int, name_for: Callable[[int], str]) -> str:
    parts: List[str] = []
    for part in value.split(","):
        if not part or any(c.isalpha() for c in part):
            parts.append(part)
            continue
        span, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if span == "*":
            if not step_text:
                parts.append("*")
                continue
            first, last = low, high
        elif "-" in span:
            first_text, _, last_text = span.partition("-")
            first, last = int(first_text), int(last_text)
        else:
            first = int(span)
            # N/step runs to the end of the range
            last = high if step_text else first
        if not (low <= first <= high and low <= last <= high) or first > last or step < 1:
            raise ValueError(f"invalid day-of-week value {part!r}")
        for day in range(first, last + 1, step):
            name = name_for(day)
            if name not in parts:
                parts.append(name)
    return ",".join(parts)


def crontab_day_of_week(value: str) -> str:
    """
    Rewrite a numeric crontab day-of-week field using day names.

    APScheduler numbers weekdays from Monday = 0 while crontab uses
    Sunday = 0 (and 7); names mean the same thing to both.
    """
    return _day_names(value, 0, 7, lambda day: _DAY_NAMES[day % 7])


def quartz_day_of_week(value: str) -> str:
    """Rewrite a numeric Quartz day-of-week field (1 = Sunday .. 7 = Saturday) using day names."""
    return _day_names(value, 1, 7, lambda day: _DAY_NAMES[day - 1])


def resolve_timezone(name: Union[str, tzinfo, None]) -> Optional[tzinfo]:
    """Turn a configured zone name into a tzinfo; None keeps host local time."""
    if name is None or isinstance(name, tzinfo):
        return name
    if not name.strip():
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


def _check_day_fields(day: str, day_of_week: str) -> None:
    if day not in _UNRESTRICTED and day_of_week not in _UNRESTRICTED:
        raise ValueError("day-of-month and day-of-week cannot both be restricted")


def _crontab_trigger(fields: List[str], tz: Optional[tzinfo]) -> CronTrigger:
    minute, hour, day, month, day_of_week = fields
    _check_day_fields(day, day_of_week)
    return CronTrigger.from_crontab(
        " ".join((minute, hour, day, month, crontab_day_of_week(day_of_week))), timezone=tz
    )


def _quartz_trigger(fields: List[str], tz: Optional[tzinfo]) -> CronTrigger:
    second, minute, hour, day, month, day_of_week, *year = fields
    if (day == "?") == (day_of_week == "?"):
        raise ValueError("'?' must appear in exactly one of day-of-month and day-of-week")
    _check_day_fields(day, day_of_week)
    return CronTrigger(
        year=year[0] if year else None,
        month=month,
        day="*" if day == "?" else day,
        day_of_week="*" if day_of_week == "?" else quartz_day_of_week(day_of_week),
        hour=hour,
        minute=minute,
        second=second,
        timezone=tz,
    )


@dataclass(frozen=True)
class RecurrenceRule:
    """
    A cron expression parsed once into a next-occurrence function.

    Accepts the five-field crontab form or the six/seven-field Quartz form.
    Build instances with ``parse`` so an invalid rule fails before it is
    saved rather than at first fire.
    """
    expression: str
    trigger: CronTrigger = field(repr=False, compare=False)

    @classmethod
    def parse(
        cls,
        expression: Optional[str],
        timezone: Union[str, tzinfo, None] = None,
        now: Optional[datetime] = None,
    ) -> "RecurrenceRule":
        if not isinstance(expression, str) or not expression.strip():
            raise InvalidRecurrenceRule(str(expression), "expression is empty")

        normalized = " ".join(expression.split())
        fields = normalized.split(" ")
        if len(fields) == CRON_FIELD_COUNT:
            build = _crontab_trigger
        elif len(fields) in QUARTZ_FIELD_COUNTS:
            build = _quartz_trigger
        else:
            raise InvalidRecurrenceRule(
                expression,
                f"expected {CRON_FIELD_COUNT} fields (minute hour day month day-of-week) "
                "or a 6-7 field Quartz expression",
            )

        try:
            trigger = build(fields, resolve_timezone(timezone))
        except (ValueError, TypeError, KeyError) as exc:
            raise InvalidRecurrenceRule(expression, str(exc)) from exc

        rule = cls(expression=normalized, trigger=trigger)
        if rule.next_after(now) is None:
            raise InvalidRecurrenceRule(expression, "rule never fires")
        return rule

    @property
    def timezone(self) -> tzinfo:
        return self.trigger.timezone

    def next_after(self, moment: Optional[datetime] = None) -> Optional[datetime]:
        """Return the first occurrence strictly after ``moment`` (default: now)."""
        if moment is None:
            moment = datetime.now(self.timezone)
        elif moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.timezone)
        return self.trigger.get_next_fire_time(None, moment + _EPSILON)


def validate_recurrence_rule(expression: Optional[str], timezone: Union[str, tzinfo, None] = None) -> str:
    """Parse ``expression`` and return its normalized form."""
    return RecurrenceRule.parse(expression, timezone).expression
