from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from ...core.auth import get_access_token
from ...dependencies import (
    get_attempt_client,
    get_board_catalog,
    get_orchestrator,
    get_participation_store,
    get_session_id,
)
from ...schemas import CertifyRequest, MissionOutcome, ParticipationSnapshot
from ...services.attempt_api import MissionApiError, MissionAttemptClient
from ...services.catalog import BoardCatalog
from ...services.orchestrator import MissionOrchestrator
from ...services.participation_store import ParticipationStore
from ...services.reconciler import reconcile_boards, refresh_board
from .boards import load_board

router = APIRouter()
activities_router = APIRouter()


@router.get("/", response_model=ParticipationSnapshot)
async def get_participation(
    session_id: str = Depends(get_session_id),
    store: ParticipationStore = Depends(get_participation_store),
) -> ParticipationSnapshot:
    return await store.get(session_id)


@router.post("/reconcile", response_model=ParticipationSnapshot)
async def reconcile_participation(
    token: str = Depends(get_access_token),
    session_id: str = Depends(get_session_id),
    client: MissionAttemptClient = Depends(get_attempt_client),
    catalog: BoardCatalog = Depends(get_board_catalog),
    store: ParticipationStore = Depends(get_participation_store),
) -> ParticipationSnapshot:
    """보드 로드 시 전체 참여 상태를 attempt 이력으로 다시 구성"""
    try:
        boards = await catalog.fetch_boards(use_cache=False)
    except MissionApiError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    snapshot = await reconcile_boards(client, boards, token, datetime.now(timezone.utc))
    return await store.replace(session_id, snapshot)


@router.post("/boards/{board_id}/refresh", response_model=ParticipationSnapshot)
async def refresh_board_participation(
    board_id: str,
    token: str = Depends(get_access_token),
    session_id: str = Depends(get_session_id),
    client: MissionAttemptClient = Depends(get_attempt_client),
    catalog: BoardCatalog = Depends(get_board_catalog),
    store: ParticipationStore = Depends(get_participation_store),
) -> ParticipationSnapshot:
    """보드 하나의 미션 이력만 다시 조회해 다른 보드 상태는 유지"""
    board = await load_board(board_id, catalog)
    current = await store.get(session_id)
    refreshed = await refresh_board(client, current, board, token, datetime.now(timezone.utc))
    return await store.replace(session_id, refreshed)


@activities_router.post("/{activity_id}/complete", response_model=MissionOutcome)
async def complete_stay(
    activity_id: str,
    payload: CertifyRequest,
    orchestrator: MissionOrchestrator = Depends(get_orchestrator),
) -> MissionOutcome:
    """체류 미션 체크아웃"""
    return await orchestrator.complete_stay_mission(activity_id, payload.coordinate)
