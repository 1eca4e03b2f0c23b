from datetime import datetime

from pydantic import BaseModel


class GuestbookCreate(BaseModel):
    content: str


class GuestbookOut(GuestbookCreate):
    id: str
    board_id: str
    created_at: datetime | None = None
