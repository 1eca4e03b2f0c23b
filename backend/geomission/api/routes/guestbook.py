from fastapi import APIRouter, Depends, Path
from motor.motor_asyncio import AsyncIOMotorDatabase

from ...dependencies import get_mongo_db
from ...schemas import GuestbookCreate, GuestbookOut
from ...services.guestbook import add_guestbook_entry, list_guestbook_entries

router = APIRouter()


@router.get("/{board_id}/guestbook", response_model=list[GuestbookOut])
async def get_guestbook(
    board_id: str = Path(..., description="보드(매장) ID"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> list[GuestbookOut]:
    entries = await list_guestbook_entries(db, board_id)
    return [GuestbookOut(**e) for e in entries]


@router.post("/{board_id}/guestbook", response_model=GuestbookOut)
async def create_guestbook_entry(
    payload: GuestbookCreate,
    board_id: str = Path(..., description="보드(매장) ID"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> GuestbookOut:
    entry = await add_guestbook_entry(db, board_id, payload.content)
    return GuestbookOut(**entry)
