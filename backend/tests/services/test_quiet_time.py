from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from backend.geomission.schemas import QuietTimeMission
from backend.geomission.services.quiet_time import describe_quiet_time, format_hour_label, is_within_quiet_time

SEOUL = ZoneInfo("Asia/Seoul")


def _mission(start: float | None, end: float | None, days: list[str] | None = None) -> QuietTimeMission:
    return QuietTimeMission(
        id="11",
        title="한산 시간대 방문 인증",
        reward_coins=100,
        quiet_time_start_hour=start,
        quiet_time_end_hour=end,
        quiet_time_days=days,
    )


def _at(hour: int, minute: int = 0, day: int = 19) -> datetime:
    # 2026-10-19는 월요일
    return datetime(2026, 10, day, hour, minute, tzinfo=SEOUL)


@pytest.mark.parametrize("hour, minute, expected", [(23, 30, True), (2, 0, True), (12, 0, False), (6, 0, False), (22, 0, True)])
def test_window_wrapping_past_midnight(hour: int, minute: int, expected: bool) -> None:
    assert is_within_quiet_time(_mission(22, 6), _at(hour, minute)) is expected


@pytest.mark.parametrize("hour, minute, expected", [(14, 0, True), (15, 59, True), (16, 0, False), (13, 59, False)])
def test_same_day_window_is_half_open(hour: int, minute: int, expected: bool) -> None:
    assert is_within_quiet_time(_mission(14, 16), _at(hour, minute)) is expected


def test_fractional_hours() -> None:
    mission = _mission(14.5, 15.25)
    assert not is_within_quiet_time(mission, _at(14, 29))
    assert is_within_quiet_time(mission, _at(14, 30))
    assert not is_within_quiet_time(mission, _at(15, 15))


def test_unconfigured_window_is_always_eligible() -> None:
    assert is_within_quiet_time(_mission(None, None), _at(3))
    assert is_within_quiet_time(_mission(None, None, ["SUN"]), _at(3))


def test_day_filter() -> None:
    mission = _mission(14, 16, ["MON", "WED"])
    assert is_within_quiet_time(mission, _at(15))
    assert not is_within_quiet_time(mission, _at(15, day=20))


def test_aware_now_is_converted_to_local_timezone() -> None:
    # UTC 14:00 == 서울 23:00
    now = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)
    assert is_within_quiet_time(_mission(22, 6), now, "Asia/Seoul")
    assert not is_within_quiet_time(_mission(22, 6), now, "UTC")


def test_labels() -> None:
    assert format_hour_label(14) == "오후 2시"
    assert format_hour_label(0) == "오전 12시"
    assert format_hour_label(9.5) == "오전 9시 30분"
    assert describe_quiet_time(_mission(22, 6, ["SAT", "SUN"])) == "오후 10시~오전 6시 (토/일)"
