"""원격 attempt 이력으로 참여 스냅샷을 재구성하는 reconciliation"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import NamedTuple

from ..schemas.attempts import MissionAttempt
from ..schemas.missions import Board, Mission, StampMission
from ..schemas.participation import ParticipatedActivity, ParticipationSnapshot, RepeatVisitProgress
from .attempt_api import MissionApiError, MissionAttemptClient, parse_mission_id
from .attempt_mapper import map_attempt_to_activity, sort_activities
from .stamps import build_repeat_visit_progress

logger = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class MissionRecord(NamedTuple):
    board: Board
    mission: Mission


class AttemptRecord(NamedTuple):
    board: Board
    mission: Mission
    attempts: list[MissionAttempt]


def sort_attempts_by_latest(attempts: list[MissionAttempt]) -> list[MissionAttempt]:
    # 시각이 같거나 없으면 attemptId 내림차순으로 순서를 고정
    return sorted(attempts, key=lambda a: (a.timestamp or _EPOCH, a.attempt_id), reverse=True)


def mission_records_for(boards: list[Board]) -> list[MissionRecord]:
    return [MissionRecord(board, mission) for board in boards for mission in board.missions]


async def _fetch_one(client: MissionAttemptClient, record: MissionRecord, token: str) -> AttemptRecord:
    mission_id = parse_mission_id(record.mission.id)
    if mission_id is None:
        return AttemptRecord(record.board, record.mission, [])
    try:
        attempts = await client.list_my_attempts(mission_id, token)
    except MissionApiError as exc:
        logger.warning(f"미션 {record.mission.id} 이력 조회 실패, 빈 이력으로 대체: {exc}")
        attempts = []
    return AttemptRecord(record.board, record.mission, attempts)


async def fetch_attempt_records(
    client: MissionAttemptClient, records: list[MissionRecord], token: str
) -> list[AttemptRecord]:
    """미션별 이력을 동시에 조회합니다. 한 미션의 실패는 전체를 중단시키지 않습니다."""
    return list(await asyncio.gather(*(_fetch_one(client, record, token) for record in records)))


def build_snapshot(records: list[AttemptRecord], now: datetime) -> ParticipationSnapshot:
    activities: list[ParticipatedActivity] = []
    progress_by_mission_id: dict[str, RepeatVisitProgress] = {}

    for record in records:
        for attempt in sort_attempts_by_latest(record.attempts):
            activity = map_attempt_to_activity(record.board, record.mission, attempt, now=now)
            if activity is not None:
                activities.append(activity)

        if isinstance(record.mission, StampMission):
            progress_by_mission_id[record.mission.id] = build_repeat_visit_progress(
                record.board, record.mission, record.attempts
            )

    unique: list[ParticipatedActivity] = []
    seen_ids: set[str] = set()
    for activity in activities:
        if activity.id in seen_ids:
            continue
        seen_ids.add(activity.id)
        unique.append(activity)

    return ParticipationSnapshot(
        participated_activities=sort_activities(unique),
        repeat_visit_progress_by_mission_id=progress_by_mission_id,
    )


def reconcile(
    snapshot: ParticipationSnapshot,
    records: list[AttemptRecord],
    now: datetime,
    *,
    replace_boards: bool = False,
) -> ParticipationSnapshot:
    """
    조회한 이력 범위만 새로 계산해 기존 스냅샷에 합칩니다.

    범위 밖 보드/미션의 상태는 그대로 두고, replace_boards=True이면
    해당 보드의 활동 전체를 새 결과로 교체합니다.
    """
    fresh = build_snapshot(records, now)
    scoped_pairs = {(r.board.id, r.mission.id) for r in records}
    scoped_boards = {r.board.id for r in records}
    stamp_mission_ids = {r.mission.id for r in records if isinstance(r.mission, StampMission)}

    def _in_scope(activity: ParticipatedActivity) -> bool:
        if replace_boards and activity.board_id in scoped_boards:
            return True
        return (activity.board_id, activity.mission_id) in scoped_pairs

    kept = [a for a in snapshot.participated_activities if not _in_scope(a)]
    progress = {
        mission_id: value
        for mission_id, value in snapshot.repeat_visit_progress_by_mission_id.items()
        if mission_id not in stamp_mission_ids
    }
    progress.update(fresh.repeat_visit_progress_by_mission_id)

    return ParticipationSnapshot(
        participated_activities=sort_activities([*kept, *fresh.participated_activities]),
        repeat_visit_progress_by_mission_id=progress,
    )


async def reconcile_boards(
    client: MissionAttemptClient, boards: list[Board], token: str, now: datetime
) -> ParticipationSnapshot:
    """보드 로드 시 전체 참여 상태를 처음부터 다시 만듭니다."""
    records = mission_records_for(boards)
    if not records:
        return ParticipationSnapshot()
    return build_snapshot(await fetch_attempt_records(client, records, token), now)


async def refresh_board(
    client: MissionAttemptClient,
    snapshot: ParticipationSnapshot,
    board: Board,
    token: str,
    now: datetime,
) -> ParticipationSnapshot:
    records = await fetch_attempt_records(client, mission_records_for([board]), token)
    return reconcile(snapshot, records, now, replace_boards=True)
