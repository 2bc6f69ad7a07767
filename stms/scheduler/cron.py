"""Crontab matching for keepalive schedules.

A keepalive task is due on a tick when its five-field crontab fires in the
tick's minute. Expressions are turned into APScheduler ``CronTrigger``s; the
day-of-week field is rewritten to day names first because crontab counts
from Sunday (0 or 7) while APScheduler counts from Monday.
"""

from __future__ import annotations

from datetime import datetime, tzinfo

from apscheduler.triggers.cron import CronTrigger

from stms.errors import ValidationError

_DOW_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _dow_index(token: str) -> int:
    token = token.strip().lower()
    if token in _DOW_NAMES:
        return _DOW_NAMES.index(token)
    if not token.isdigit() or int(token) > 7:
        msg = f"invalid day-of-week value: {token!r}"
        raise ValidationError(msg)
    return int(token) % 7


def _dow_field(field: str) -> str:
    """Expand a crontab day-of-week field into APScheduler day names."""
    if field in ("*", "?"):
        return "*"
    values: set[int] = set()
    for part in field.split(","):
        body, _, step = part.partition("/")
        step_n = int(step) if step.isdigit() else 1
        if step and not step.isdigit():
            msg = f"invalid day-of-week step: {part!r}"
            raise ValidationError(msg)
        if body == "*":
            start, end = 0, 6
        elif "-" in body:
            low, high = body.split("-", 1)
            start, end = _dow_index(low), _dow_index(high)
            # "1-7" means Monday through Sunday
            if end == 0 and high.strip() == "7":
                end = 7
        else:
            start = _dow_index(body)
            end = 6 if step else start
        if start > end:
            msg = f"invalid day-of-week range: {part!r}"
            raise ValidationError(msg)
        values.update(v % 7 for v in range(start, end + 1, step_n))
    return ",".join(_DOW_NAMES[v] for v in sorted(values))


def build_trigger(expression: str, timezone: tzinfo | str) -> CronTrigger:
    """Parse a five-field crontab into a ``CronTrigger``.

    Raises:
        ValidationError: If the expression is malformed.
    """
    fields = expression.split()
    if len(fields) != 5:
        msg = f"crontab must have 5 fields, got {len(fields)}: {expression!r}"
        raise ValidationError(msg)
    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_dow_field(day_of_week),
            timezone=timezone,
        )
    except ValueError as exc:
        msg = f"invalid crontab {expression!r}: {exc}"
        raise ValidationError(msg) from exc


def matches(expression: str, now: datetime, timezone: tzinfo | str) -> bool:
    """True when *expression* fires within the minute containing *now*."""
    minute = now.replace(second=0, microsecond=0)
    trigger = build_trigger(expression, timezone)
    fire_time = trigger.get_next_fire_time(None, minute)
    return fire_time is not None and fire_time == minute
