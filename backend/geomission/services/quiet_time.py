"""한산 시간대(quiet time) 방문 미션의 인증 가능 시간 판정"""
from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from ..core.config import settings
from ..schemas.missions import QuietTimeMission

WEEKDAY_CODES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")

DAY_LABELS = {
    "MON": "월",
    "TUE": "화",
    "WED": "수",
    "THU": "목",
    "FRI": "금",
    "SAT": "토",
    "SUN": "일",
}


def _to_local(now: datetime, tz_name: str | None) -> datetime:
    if now.tzinfo is None:
        return now
    return now.astimezone(ZoneInfo(tz_name or settings.local_timezone))


def is_within_quiet_time(mission: QuietTimeMission, now: datetime, tz_name: str | None = None) -> bool:
    """
    현재 시각이 미션의 한산 시간대 안에 있는지 판정합니다.

    시작/종료 시각이 모두 없으면 언제든 방문 가능한 미션으로 취급합니다.
    종료 시각이 시작 시각보다 작으면 자정을 넘기는 구간입니다.
    """
    start = mission.quiet_time_start_hour
    end = mission.quiet_time_end_hour
    if start is None and end is None:
        return True

    local_now = _to_local(now, tz_name)
    if mission.quiet_time_days and WEEKDAY_CODES[local_now.weekday()] not in mission.quiet_time_days:
        return False

    start = 0.0 if start is None else start
    end = 24.0 if end is None else end
    hour = local_now.hour + local_now.minute / 60

    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


def format_hour_label(value: float) -> str:
    normalized = value % 24
    hour = int(normalized)
    minute = round((normalized - hour) * 60)
    minute_text = f" {minute}분" if minute > 0 else ""
    period = "오전" if hour < 12 else "오후"
    hour12 = 12 if hour % 12 == 0 else hour % 12
    return f"{period} {hour12}시{minute_text}"


def describe_quiet_time(mission: QuietTimeMission) -> str:
    if mission.quiet_time_start_hour is None and mission.quiet_time_end_hour is None:
        return "언제든"
    start = mission.quiet_time_start_hour if mission.quiet_time_start_hour is not None else 0.0
    end = mission.quiet_time_end_hour if mission.quiet_time_end_hour is not None else 24.0
    label = f"{format_hour_label(start)}~{format_hour_label(end)}"
    if mission.quiet_time_days:
        label += f" ({'/'.join(DAY_LABELS[day] for day in mission.quiet_time_days)})"
    return label
