"""Login streak bookkeeping."""

from __future__ import annotations

from datetime import date, datetime

from ..models.gamification import GameProfile
from ..utils.time import utc_day


def day_difference(today: datetime | date, last: datetime | date) -> int:
    """Whole calendar days between two instants, both taken in UTC."""
    return (utc_day(today) - utc_day(last)).days


def advance_login_streak(profile: GameProfile, now: datetime) -> GameProfile:
    """Advance ``profile``'s login streak for an ``app_login`` at ``now``.

    Logging in again on the same UTC day is a no-op, the next day extends the
    streak, a gap of more than one day restarts it at 1. A login dated before
    the last recorded one (clock skew, replays) leaves the streak untouched.
    """
    today = utc_day(now)

    if profile.last_login_date is None:
        profile.current_login_streak = 1
    else:
        delta = day_difference(today, profile.last_login_date)
        if delta <= 0:
            return profile
        if delta == 1:
            profile.current_login_streak = (profile.current_login_streak or 0) + 1
        else:
            profile.current_login_streak = 1

    profile.longest_login_streak = max(
        profile.longest_login_streak or 0, profile.current_login_streak
    )
    profile.last_login_date = today
    return profile
