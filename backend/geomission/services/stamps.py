from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from ..core.config import settings
from ..schemas.attempts import AttemptStatus, MissionAttempt
from ..schemas.missions import Board, StampMission
from ..schemas.participation import RepeatVisitProgress


def stamp_goal_count(mission: StampMission) -> int:
    return max(mission.stamp_goal_count or settings.default_stamp_goal_count, 1)


def build_repeat_visit_progress(
    board: Board, mission: StampMission, attempts: Iterable[MissionAttempt]
) -> RepeatVisitProgress:
    """
    전체 attempt 이력에서 스탬프 카드 진행도를 계산합니다.

    카드 완성 여부는 서버가 결정하므로 rewardId가 붙은 SUCCESS 수를 완성 횟수로
    우선 사용하고, 보상 연결 정보가 없는 예전 데이터만 목표 개수로 나눠 추정합니다.
    """
    goal = stamp_goal_count(mission)
    relevant = [a for a in attempts if a.status in (AttemptStatus.SUCCESS, AttemptStatus.PENDING)]
    successes = [a for a in relevant if a.status is AttemptStatus.SUCCESS]

    success_count = len(successes)
    rewarded_count = sum(1 for a in successes if a.has_reward)
    completed_rounds = rewarded_count if rewarded_count > 0 else success_count // goal
    current_stamp_count = min(max(success_count - completed_rounds * goal, 0), goal - 1)

    stamped_times = [a.checkout_at or a.checkin_at for a in relevant if (a.checkout_at or a.checkin_at)]

    return RepeatVisitProgress(
        board_id=board.id,
        mission_id=mission.id,
        current_stamp_count=current_stamp_count,
        completed_rounds=completed_rounds,
        last_stamped_at=max(stamped_times) if stamped_times else None,
    )


def estimate_repeat_visit_progress(
    board: Board,
    mission: StampMission,
    previous: RepeatVisitProgress | None,
    attempt: MissionAttempt,
    now: datetime,
) -> RepeatVisitProgress:
    """이력 재조회가 실패했을 때만 쓰는 로컬 증분 추정치"""
    goal = stamp_goal_count(mission)
    base = previous or RepeatVisitProgress(board_id=board.id, mission_id=mission.id)
    round_completed = attempt.status is AttemptStatus.SUCCESS and attempt.has_reward

    if round_completed:
        next_count = 0
    else:
        next_count = min(base.current_stamp_count + 1, goal - 1)

    return base.model_copy(
        update={
            "current_stamp_count": next_count,
            "completed_rounds": base.completed_rounds + (1 if round_completed else 0),
            "last_stamped_at": attempt.timestamp or now,
            "estimated": True,
        }
    )
