"""Time-remaining breakdown for the 'next session' countdown display."""

import asyncio
from datetime import datetime, timezone
from typing import AsyncIterator, NamedTuple

from .config import COUNTDOWN_TICK_INTERVAL


class TimeLeft(NamedTuple):
    days: int
    hours: int
    minutes: int
    seconds: int

    @property
    def expired(self) -> bool:
        return not any(self)

    def to_dict(self) -> dict[str, int]:
        return self._asdict()


ZERO = TimeLeft(0, 0, 0, 0)


def time_left(target: datetime, now: datetime | None = None) -> TimeLeft:
    """Whole days/hours/minutes/seconds until target; all zero once it has passed.

    Naive datetimes are taken as UTC.
    """
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    remaining = int((target - now).total_seconds())
    if remaining <= 0:
        return ZERO
    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return TimeLeft(days, hours, minutes, seconds)


async def ticker(target: datetime, interval: float = COUNTDOWN_TICK_INTERVAL) -> AsyncIterator[TimeLeft]:
    """Yield the countdown every interval until it reaches zero (yielded once)."""
    while True:
        left = time_left(target)
        yield left
        if left.expired:
            return
        await asyncio.sleep(interval)
