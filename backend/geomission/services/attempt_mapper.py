"""원격 attempt 기록을 로컬 참여 활동(ParticipatedActivity)으로 변환"""
from __future__ import annotations

from datetime import datetime

from ..schemas.attempts import AttemptStatus, MissionAttempt
from ..schemas.geo import Coordinate
from ..schemas.missions import (
    Board,
    Mission,
    QuietTimeMission,
    ReceiptMission,
    StampMission,
    StayMission,
    TreasureHuntMission,
)
from ..schemas.participation import ParticipatedActivity, ParticipationSnapshot


def activity_id_for(attempt: MissionAttempt) -> str:
    return f"attempt-{attempt.attempt_id}"


def build_mission_title(mission: Mission, reward_granted: bool) -> str:
    match mission:
        case ReceiptMission(receipt_item_name=str() as item_name) if item_name:
            return f"{mission.title} ({item_name})"
        case TreasureHuntMission(treasure_guide_text=str() as guide_text) if guide_text:
            return f"{mission.title} ({guide_text})"
        case StampMission():
            return f"{mission.title} 카드 완성" if reward_granted else f"{mission.title} 스탬프 적립"
        case QuietTimeMission() | StayMission() | ReceiptMission() | TreasureHuntMission():
            return mission.title
    raise TypeError(f"unknown mission variant: {type(mission).__name__}")


def _is_reward_granted(mission: Mission, attempt: MissionAttempt) -> bool:
    if attempt.status is not AttemptStatus.SUCCESS:
        return False
    match mission:
        case StampMission():
            # 카드를 채우지 못한 스탬프 적립은 SUCCESS여도 보상이 없다
            return attempt.has_reward
        case _:
            return True


def map_attempt_to_activity(
    board: Board,
    mission: Mission,
    attempt: MissionAttempt,
    *,
    now: datetime,
    coordinate: Coordinate | None = None,
    image_uri: str | None = None,
) -> ParticipatedActivity | None:
    """
    attempt 한 건을 참여 활동으로 변환합니다.

    FAILED/RETRY는 표현하지 않으며, PENDING은 체크인/체크아웃 2단계인
    체류 미션에서만 의미가 있습니다. 나머지는 None을 반환합니다.
    """
    match attempt.status:
        case AttemptStatus.SUCCESS:
            status = "completed"
        case AttemptStatus.PENDING if isinstance(mission, StayMission):
            status = "started"
        case _:
            return None

    reward_granted = _is_reward_granted(mission, attempt)
    started_at = attempt.timestamp or now
    completed_at = (attempt.checkout_at or started_at) if status == "completed" else None
    location = coordinate or board.coordinate

    return ParticipatedActivity(
        id=activity_id_for(attempt),
        board_id=board.id,
        board_title=board.title,
        mission_id=mission.id,
        mission_type=mission.type,
        mission_title=build_mission_title(mission, reward_granted),
        reward_coins=mission.reward_coins if reward_granted else 0,
        status=status,
        started_at=started_at,
        completed_at=completed_at,
        required_minutes=mission.min_duration_minutes if isinstance(mission, StayMission) else None,
        image_uri=image_uri,
        start_coordinate=location,
        end_coordinate=location if status == "completed" else None,
    )


def sort_activities(activities: list[ParticipatedActivity]) -> list[ParticipatedActivity]:
    return sorted(activities, key=lambda activity: activity.started_at, reverse=True)


def apply_local_attempt(snapshot: ParticipationSnapshot, activity: ParticipatedActivity) -> ParticipationSnapshot:
    """
    활동 하나를 스냅샷에 upsert한 새 스냅샷을 반환합니다.

    같은 id는 교체되고, 같은 (보드, 미션)의 기존 started 활동은 제거됩니다.
    completed가 들어오면 진행 중 기록이 정리되고, started는 쌍마다 하나만 남습니다.
    """
    remaining = [
        a
        for a in snapshot.participated_activities
        if a.id != activity.id
        and not (a.board_id == activity.board_id and a.mission_id == activity.mission_id and a.status == "started")
    ]
    return snapshot.model_copy(update={"participated_activities": sort_activities([activity, *remaining])})


def remove_activity(snapshot: ParticipationSnapshot, activity_id: str) -> ParticipationSnapshot:
    return snapshot.model_copy(
        update={"participated_activities": [a for a in snapshot.participated_activities if a.id != activity_id]}
    )
