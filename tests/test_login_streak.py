from datetime import date, datetime, timedelta, timezone

from voltquest.models.gamification import GameProfile
from voltquest.services.streaks import advance_login_streak, day_difference


DAY_1 = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


def _profile(**kwargs) -> GameProfile:
    return GameProfile(user_id=7, **kwargs)


def test_first_login_starts_streak():
    profile = advance_login_streak(_profile(), DAY_1)

    assert profile.current_login_streak == 1
    assert profile.longest_login_streak == 1
    assert profile.last_login_date == date(2024, 3, 1)


def test_streak_grows_resets_and_keeps_longest():
    profile = _profile()

    advance_login_streak(profile, DAY_1)
    assert profile.current_login_streak == 1

    advance_login_streak(profile, DAY_1 + timedelta(days=1))
    assert profile.current_login_streak == 2

    advance_login_streak(profile, DAY_1 + timedelta(days=3))
    assert profile.current_login_streak == 1
    assert profile.longest_login_streak == 2
    assert profile.last_login_date == date(2024, 3, 4)


def test_second_login_same_day_is_noop():
    profile = _profile()
    advance_login_streak(profile, DAY_1)
    advance_login_streak(profile, DAY_1 + timedelta(hours=14))

    assert profile.current_login_streak == 1
    assert profile.last_login_date == date(2024, 3, 1)


def test_login_before_last_recorded_day_is_ignored():
    profile = _profile(
        current_login_streak=4,
        longest_login_streak=6,
        last_login_date=date(2024, 3, 10),
    )

    advance_login_streak(profile, datetime(2024, 3, 8, tzinfo=timezone.utc))

    assert profile.current_login_streak == 4
    assert profile.longest_login_streak == 6
    assert profile.last_login_date == date(2024, 3, 10)


def test_days_are_counted_in_utc():
    # 23:30 at UTC-2 is already the next UTC day.
    evening = datetime(2024, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
    profile = _profile(
        current_login_streak=1,
        longest_login_streak=1,
        last_login_date=date(2024, 3, 1),
    )

    advance_login_streak(profile, evening)

    assert profile.current_login_streak == 2
    assert profile.last_login_date == date(2024, 3, 2)


def test_day_difference_accepts_dates_and_datetimes():
    assert day_difference(DAY_1 + timedelta(days=2), date(2024, 3, 1)) == 2
    assert day_difference(date(2024, 3, 1), DAY_1) == 0
