"""Calendar arithmetic over recurrence rules.

All functions are pure: they take a :class:`RecurrenceRule` and return a new
value without touching storage. Occurrences are anchored to ``start_date`` so
clamping a short month (Jan 31 -> Feb 29) does not drift later occurrences
(the one after Feb 29 is Mar 31, not Mar 29).
"""

from __future__ import annotations

import calendar
from dataclasses import replace
from datetime import datetime, timedelta, tzinfo

from stms.scheduler.models import RecurrenceRule


def add_units(moment: datetime, unit: str, count: int) -> datetime:
    """Add *count* days/months/years to *moment*, clamping the day of month.

    ``add_units(Jan 31, "month", 1)`` is Feb 28/29, never Mar 2/3.
    """
    if unit == "day":
        return moment + timedelta(days=count)
    months = count if unit == "month" else count * 12
    total = moment.month - 1 + months
    year = moment.year + total // 12
    month = total % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _past_end(rule: RecurrenceRule, moment: datetime) -> bool:
    return rule.end_date is not None and moment > rule.end_date


def compute_next_due(rule: RecurrenceRule, from_date: datetime) -> datetime | None:
    """Advance *from_date* by one interval. Returns None once past ``end_date``."""
    candidate = add_units(from_date, rule.unit, rule.interval)
    if _past_end(rule, candidate):
        return None
    return candidate


def first_due(rule: RecurrenceRule) -> datetime | None:
    """Initial occurrence of a fresh rule, or None if it can never fire."""
    if _past_end(rule, rule.start_date):
        return None
    return rule.start_date


def pending_due(rule: RecurrenceRule) -> datetime | None:
    """The occurrence the rule is currently waiting on."""
    if rule.exhausted:
        return None
    if rule.next_due is not None:
        return rule.next_due
    return first_due(rule)


def compute_reminder_time(rule: RecurrenceRule, due_date: datetime) -> datetime:
    """*due_date* minus the reminder advance; no advance means remind at due time."""
    if not rule.has_advance:
        return due_date
    if rule.reminder_advance_unit == "day":
        return due_date - timedelta(days=rule.reminder_advance_value)
    return due_date - timedelta(hours=rule.reminder_advance_value)


def is_due(rule: RecurrenceRule, now: datetime) -> bool:
    """True once *now* reaches the reminder time of the pending occurrence."""
    due = pending_due(rule)
    if due is None:
        return False
    return now >= compute_reminder_time(rule, due)


def advance(rule: RecurrenceRule, now: datetime) -> RecurrenceRule:
    """Return the rule state after it fired at *now*.

    Auto-renewing rules move to the first anchored occurrence after both the
    fired occurrence and *now*; a tick that arrives several intervals late
    therefore fires once and skips the missed occurrences. Other rules, and
    rules whose next occurrence would pass ``end_date``, become exhausted.
    """
    due = pending_due(rule)
    if due is None:
        return rule.with_next_due(None)
    if not rule.auto_renew:
        return rule.with_next_due(None)

    floor = max(due, now)
    index = 1
    candidate = add_units(rule.start_date, rule.unit, rule.interval)
    while candidate <= floor:
        index += 1
        candidate = add_units(rule.start_date, rule.unit, rule.interval * index)
    if _past_end(rule, candidate):
        return rule.with_next_due(None)
    return rule.with_next_due(candidate)


def localize(rule: RecurrenceRule, tz: tzinfo) -> RecurrenceRule:
    """Attach *tz* to any naive datetimes on the rule."""

    def _attach(value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value

    return replace(
        rule,
        start_date=_attach(rule.start_date),
        end_date=_attach(rule.end_date),
        next_due=_attach(rule.next_due),
    )
