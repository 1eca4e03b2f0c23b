from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..services.guestbook import GUESTBOOK_COL


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await db[GUESTBOOK_COL].create_index([("board_id", 1), ("created_at", -1)])
