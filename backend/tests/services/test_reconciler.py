from datetime import timedelta

import pytest
from conftest import NOW, STORE, FakeMissionBackend, make_attempt

from backend.geomission.schemas import Board, MissionAttempt, ParticipationSnapshot
from backend.geomission.services.attempt_api import MissionAttemptClient
from backend.geomission.services.catalog import map_store_to_board
from backend.geomission.services.reconciler import (
    AttemptRecord,
    build_snapshot,
    reconcile,
    reconcile_boards,
    refresh_board,
    sort_attempts_by_latest,
)

TOKEN = "token-abc"


def _attempts(*payloads: dict) -> list[MissionAttempt]:
    return [MissionAttempt.model_validate(p) for p in payloads]


def _seed_history(backend: FakeMissionBackend) -> None:
    backend.history = {
        11: [make_attempt(1, 11, "SUCCESS", checkin_at=NOW - timedelta(days=2))],
        12: [
            make_attempt(2, 12, "FAILED", checkin_at=NOW - timedelta(days=3)),
            make_attempt(3, 12, "PENDING", checkin_at=NOW - timedelta(minutes=5)),
        ],
        15: [
            make_attempt(4, 15, "SUCCESS", checkin_at=NOW - timedelta(days=1)),
            make_attempt(5, 15, "SUCCESS", checkin_at=NOW),
        ],
    }


def test_sort_breaks_timestamp_ties_by_attempt_id() -> None:
    attempts = _attempts(
        make_attempt(1, 11, "SUCCESS", checkin_at=NOW),
        make_attempt(3, 11, "SUCCESS", checkin_at=NOW),
        make_attempt(2, 11, "SUCCESS", checkin_at=NOW + timedelta(seconds=1)),
        make_attempt(4, 11, "SUCCESS"),
    )
    assert [a.attempt_id for a in sort_attempts_by_latest(attempts)] == [2, 3, 1, 4]


def test_build_snapshot_dedups_and_sorts(board: Board) -> None:
    quiet = board.find_mission("11")
    duplicate = make_attempt(1, 11, "SUCCESS", checkin_at=NOW - timedelta(hours=1))
    records = [
        AttemptRecord(board, quiet, _attempts(duplicate, duplicate, make_attempt(2, 11, "FAILED", checkin_at=NOW))),
        AttemptRecord(board, board.find_mission("15"), _attempts(make_attempt(7, 15, "SUCCESS", checkin_at=NOW))),
    ]
    snapshot = build_snapshot(records, NOW)

    assert [a.id for a in snapshot.participated_activities] == ["attempt-7", "attempt-1"]
    assert snapshot.repeat_visit_progress_by_mission_id["15"].current_stamp_count == 1


@pytest.mark.asyncio
async def test_reconcile_boards_builds_full_snapshot(
    board: Board, mission_backend: FakeMissionBackend, attempt_client: MissionAttemptClient
) -> None:
    _seed_history(mission_backend)
    snapshot = await reconcile_boards(attempt_client, [board], TOKEN, NOW)

    assert [a.id for a in snapshot.participated_activities] == ["attempt-5", "attempt-3", "attempt-4", "attempt-1"]
    started = snapshot.find_activity("attempt-3")
    assert started.status == "started"
    assert started.required_minutes == 20
    assert snapshot.repeat_visit_progress_by_mission_id["15"].current_stamp_count == 2
    assert len(mission_backend.paths("GET")) == len(board.missions)


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(
    board: Board, mission_backend: FakeMissionBackend, attempt_client: MissionAttemptClient
) -> None:
    _seed_history(mission_backend)
    first = await reconcile_boards(attempt_client, [board], TOKEN, NOW)
    second = await reconcile_boards(attempt_client, [board], TOKEN, NOW)
    assert first == second


@pytest.mark.asyncio
async def test_failed_mission_history_degrades_to_empty(
    board: Board, mission_backend: FakeMissionBackend, attempt_client: MissionAttemptClient
) -> None:
    _seed_history(mission_backend)
    mission_backend.fail("GET", "/api/missions/15/attempts/me")

    snapshot = await reconcile_boards(attempt_client, [board], TOKEN, NOW)

    assert {a.mission_id for a in snapshot.participated_activities} == {"11", "12"}
    progress = snapshot.repeat_visit_progress_by_mission_id["15"]
    assert progress.current_stamp_count == 0
    assert progress.completed_rounds == 0


@pytest.mark.asyncio
async def test_reconcile_without_boards_is_empty(attempt_client: MissionAttemptClient) -> None:
    assert await reconcile_boards(attempt_client, [], TOKEN, NOW) == ParticipationSnapshot()


@pytest.mark.asyncio
async def test_refresh_board_keeps_other_boards(
    board: Board, mission_backend: FakeMissionBackend, attempt_client: MissionAttemptClient
) -> None:
    other_board = map_store_to_board(
        {**STORE, "id": 2, "name": "CU 성수점"},
        [{"id": 21, "storeId": 2, "type": "TIME_WINDOW", "configJson": "{}", "rewardAmount": 50}],
    )
    mission_backend.history = {21: [make_attempt(30, 21, "SUCCESS", checkin_at=NOW - timedelta(days=5))]}
    snapshot = await reconcile_boards(attempt_client, [other_board], TOKEN, NOW)

    _seed_history(mission_backend)
    refreshed = await refresh_board(attempt_client, snapshot, board, TOKEN, NOW)

    assert refreshed.find_activity("attempt-30") is not None
    assert refreshed.find_activity("attempt-1") is not None
    assert mission_backend.paths("GET").count("/api/missions/21/attempts/me") == 1


def test_scoped_reconcile_replaces_stale_entries(board: Board) -> None:
    stay = board.find_mission("12")
    stale = build_snapshot(
        [AttemptRecord(board, stay, _attempts(make_attempt(3, 12, "PENDING", checkin_at=NOW)))], NOW
    )
    updated = reconcile(
        stale,
        [
            AttemptRecord(
                board,
                stay,
                _attempts(make_attempt(3, 12, "SUCCESS", checkin_at=NOW, checkout_at=NOW + timedelta(minutes=21))),
            )
        ],
        NOW,
    )

    assert len(updated.participated_activities) == 1
    assert updated.participated_activities[0].status == "completed"


def test_scoped_reconcile_leaves_unscoped_stamp_progress(board: Board) -> None:
    stamp = board.find_mission("15")
    existing = build_snapshot(
        [AttemptRecord(board, stamp, _attempts(make_attempt(4, 15, "SUCCESS", checkin_at=NOW)))], NOW
    )
    updated = reconcile(existing, [AttemptRecord(board, board.find_mission("11"), [])], NOW)

    assert updated.repeat_visit_progress_by_mission_id == existing.repeat_visit_progress_by_mission_id
    assert updated.find_activity("attempt-4") is not None


@pytest.mark.asyncio
async def test_blank_timestamp_does_not_drop_mission_history(
    board: Board, mission_backend: FakeMissionBackend, attempt_client: MissionAttemptClient
) -> None:
    mission_backend.history = {
        11: [
            make_attempt(40, 11, "SUCCESS", checkin_at=NOW),
            {**make_attempt(41, 11, "FAILED"), "checkinAt": ""},
        ]
    }

    snapshot = await reconcile_boards(attempt_client, [board], TOKEN, NOW)

    assert [a.id for a in snapshot.participated_activities] == ["attempt-40"]
    assert snapshot.has_activity("1", "11", "completed")
