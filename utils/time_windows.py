"""Weekly anchor and reporting window arithmetic.

Windows are half-open ``[anchor, anchor + 7 days)`` intervals. All arithmetic
is done on elapsed time in UTC from a fixed reference anchor, so every window
is exactly ``7 * 24`` hours long regardless of daylight-saving transitions in
the configured timezone, and consecutive windows never overlap or leave gaps.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterator
from zoneinfo import ZoneInfo

WEEK = timedelta(days=7)
# 1970-01-05 was a Monday; weekday offsets are added to it.
_REFERENCE_MONDAY = (1970, 1, 5)


@dataclass(frozen=True, slots=True)
class Window:
    """Half-open reporting window."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def following(self) -> "Window":
        return Window(self.end, self.end + WEEK)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True, slots=True)
class TimeRemaining:
    days: int
    hours: int
    minutes: int

    def as_dict(self) -> dict[str, int]:
        return {"days": self.days, "hours": self.hours, "minutes": self.minutes}


def resolve_timezone(name: str | tzinfo | None) -> tzinfo:
    if name is None:
        return timezone.utc
    if isinstance(name, tzinfo):
        return name
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class PeriodCalculator:
    """Compute weekly anchors for a fixed weekday and time of day.

    ``weekday`` follows :meth:`datetime.weekday` (Monday is 0, Wednesday 2).
    Returned instants are timezone-aware UTC datetimes. Naive inputs are
    interpreted in the calculator's timezone.
    """

    def __init__(
        self,
        weekday: int = 2,
        hour: int = 18,
        minute: int = 0,
        tz: str | tzinfo | None = None,
    ) -> None:
        if not 0 <= weekday <= 6:
            raise ValueError(f"weekday must be in 0..6, got {weekday}")
        self.weekday = weekday
        self.hour = hour
        self.minute = minute
        self.tz = resolve_timezone(tz)
        local_reference = datetime(*_REFERENCE_MONDAY, hour, minute, tzinfo=self.tz) + timedelta(days=weekday)
        self._reference = local_reference.astimezone(timezone.utc)

    @classmethod
    def from_settings(cls, scheduler_settings) -> "PeriodCalculator":
        return cls(
            weekday=scheduler_settings.anchor_weekday,
            hour=scheduler_settings.anchor_hour,
            minute=scheduler_settings.anchor_minute,
            tz=scheduler_settings.timezone,
        )

    def normalise(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        return moment.astimezone(timezone.utc)

    def anchor_on_or_before(self, moment: datetime) -> datetime:
        """Most recent anchor instant at or before ``moment``."""
        elapsed_weeks = (self.normalise(moment) - self._reference) // WEEK
        return self._reference + elapsed_weeks * WEEK

    def next_anchor_after(self, moment: datetime) -> datetime:
        """Soonest anchor instant strictly after ``moment``."""
        return self.anchor_on_or_before(moment) + WEEK

    def window_containing(self, moment: datetime) -> Window:
        start = self.anchor_on_or_before(moment)
        return Window(start, start + WEEK)

    def iter_windows(self, first: datetime, last: datetime) -> Iterator[Window]:
        """Yield consecutive windows from the one containing ``first`` through ``last``."""
        last = self.normalise(last)
        window = self.window_containing(first)
        while window.start <= last:
            yield window
            window = window.following()

    def time_until(self, target: datetime, now: datetime) -> TimeRemaining:
        remaining = self.normalise(target) - self.normalise(now)
        if remaining <= timedelta(0):
            return TimeRemaining(0, 0, 0)
        total_minutes = int(remaining.total_seconds() // 60)
        days, minutes = divmod(total_minutes, 24 * 60)
        hours, minutes = divmod(minutes, 60)
        return TimeRemaining(days, hours, minutes)
