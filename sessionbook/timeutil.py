"""Minute-offset helpers shared by the slot and wizard code."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: time) -> int:
    """Minutes from midnight for a wall-clock time."""
    return value.hour * 60 + value.minute


def fmt_minutes(minutes: int) -> str:
    """Render a minute offset as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def week_dates(week_start: date) -> list[date]:
    return [week_start + timedelta(days=i) for i in range(7)]


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute
