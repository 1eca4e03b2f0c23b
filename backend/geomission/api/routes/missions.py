from fastapi import APIRouter, Depends, HTTPException, status

from ...dependencies import get_board_catalog, get_orchestrator
from ...schemas import Board, CertifyRequest, ImageCertifyRequest, Mission, MissionOutcome
from ...services.catalog import BoardCatalog
from ...services.orchestrator import MissionOrchestrator
from .boards import load_board

router = APIRouter()


async def load_board_mission(board_id: str, mission_id: str, catalog: BoardCatalog) -> tuple[Board, Mission]:
    board = await load_board(board_id, catalog)
    mission = board.find_mission(mission_id)
    if mission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="미션 정보를 찾지 못했습니다.")
    return board, mission


@router.post("/{board_id}/missions/{mission_id}/quiet-time", response_model=MissionOutcome)
async def certify_quiet_time(
    board_id: str,
    mission_id: str,
    payload: CertifyRequest,
    catalog: BoardCatalog = Depends(get_board_catalog),
    orchestrator: MissionOrchestrator = Depends(get_orchestrator),
) -> MissionOutcome:
    """한산 시간대 방문 인증"""
    board, mission = await load_board_mission(board_id, mission_id, catalog)
    return await orchestrator.certify_quiet_time_mission(board, mission, payload.coordinate)


@router.post("/{board_id}/missions/{mission_id}/receipt", response_model=MissionOutcome)
async def certify_receipt(
    board_id: str,
    mission_id: str,
    payload: ImageCertifyRequest,
    catalog: BoardCatalog = Depends(get_board_catalog),
    orchestrator: MissionOrchestrator = Depends(get_orchestrator),
) -> MissionOutcome:
    """영수증 구매 인증"""
    board, mission = await load_board_mission(board_id, mission_id, catalog)
    return await orchestrator.certify_receipt_purchase_mission(board, mission, payload.coordinate, payload.image_uri)


@router.post("/{board_id}/missions/{mission_id}/treasure-hunt", response_model=MissionOutcome)
async def certify_treasure_hunt(
    board_id: str,
    mission_id: str,
    payload: ImageCertifyRequest,
    catalog: BoardCatalog = Depends(get_board_catalog),
    orchestrator: MissionOrchestrator = Depends(get_orchestrator),
) -> MissionOutcome:
    """카메라 보물찾기 인증"""
    board, mission = await load_board_mission(board_id, mission_id, catalog)
    return await orchestrator.certify_treasure_hunt_mission(board, mission, payload.coordinate, payload.image_uri)


@router.post("/{board_id}/missions/{mission_id}/stamp", response_model=MissionOutcome)
async def certify_repeat_visit(
    board_id: str,
    mission_id: str,
    payload: CertifyRequest,
    catalog: BoardCatalog = Depends(get_board_catalog),
    orchestrator: MissionOrchestrator = Depends(get_orchestrator),
) -> MissionOutcome:
    """반복 방문 스탬프 적립"""
    board, mission = await load_board_mission(board_id, mission_id, catalog)
    return await orchestrator.certify_repeat_visit_mission(board, mission, payload.coordinate)


@router.post("/{board_id}/missions/{mission_id}/stay/start", response_model=MissionOutcome)
async def start_stay(
    board_id: str,
    mission_id: str,
    payload: CertifyRequest,
    catalog: BoardCatalog = Depends(get_board_catalog),
    orchestrator: MissionOrchestrator = Depends(get_orchestrator),
) -> MissionOutcome:
    """체류 미션 체크인"""
    board, mission = await load_board_mission(board_id, mission_id, catalog)
    return await orchestrator.start_stay_mission(board, mission, payload.coordinate)
