from fastapi import APIRouter, Depends, HTTPException, Path, status

from ...dependencies import get_board_catalog
from ...schemas import Board
from ...services.attempt_api import MissionApiError
from ...services.catalog import BoardCatalog

router = APIRouter()


async def load_board(board_id: str, catalog: BoardCatalog) -> Board:
    try:
        board = await catalog.get_board(board_id)
    except MissionApiError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    if board is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="게시판 정보를 찾지 못했습니다.")
    return board


@router.get("/", response_model=list[Board])
async def list_boards(catalog: BoardCatalog = Depends(get_board_catalog)) -> list[Board]:
    try:
        return await catalog.fetch_boards()
    except MissionApiError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc


@router.get("/{board_id}", response_model=Board)
async def get_board(
    board_id: str = Path(..., description="보드(매장) ID"),
    catalog: BoardCatalog = Depends(get_board_catalog),
) -> Board:
    return await load_board(board_id, catalog)
