"""Calendar-day facts that feed the daily bonus and the streak multiplier.

Day boundaries are computed in one explicit timezone (UTC unless configured
otherwise), never in whatever zone the process happens to run in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, tzinfo


@dataclass(frozen=True, slots=True)
class DayStatus:
    is_first_today: bool
    streak_days: int
    """Streak length including the measurement being recorded."""


def calendar_day(moment: datetime, tz: tzinfo = UTC) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz).date()


def resolve_day_status(
    last_measured_at: datetime | None,
    previous_streak_days: int,
    now: datetime,
    tz: tzinfo = UTC,
) -> DayStatus:
    """Work out first-of-day and the updated streak for a measurement at *now*.

    Same day as the previous measurement keeps the streak; the following day
    extends it by one; any longer gap (or no history) restarts it at 1.
    """
    if last_measured_at is None:
        return DayStatus(is_first_today=True, streak_days=1)
    today = calendar_day(now, tz)
    last_day = calendar_day(last_measured_at, tz)
    gap_days = (today - last_day).days
    if gap_days <= 0:
        return DayStatus(is_first_today=False, streak_days=max(1, previous_streak_days))
    if gap_days == 1:
        return DayStatus(is_first_today=True, streak_days=max(0, previous_streak_days) + 1)
    return DayStatus(is_first_today=True, streak_days=1)
