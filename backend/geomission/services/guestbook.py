from __future__ import annotations

from datetime import datetime, timezone

from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

GUESTBOOK_COL = "guestbook_entries"
MAX_CONTENT_LENGTH = 20


def _normalize(doc: dict) -> dict:
    doc = {**doc}
    doc["id"] = str(doc.pop("_id"))
    return doc


def validate_content(content: str) -> str:
    trimmed = (content or "").strip()
    if not trimmed:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="내용을 입력해 주세요.")
    if len(trimmed) > MAX_CONTENT_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"방명록은 {MAX_CONTENT_LENGTH}자까지 입력할 수 있어요.",
        )
    return trimmed


async def add_guestbook_entry(db: AsyncIOMotorDatabase, board_id: str, content: str) -> dict:
    doc = {
        "board_id": board_id,
        "content": validate_content(content),
        "created_at": datetime.now(timezone.utc),
    }
    result = await db[GUESTBOOK_COL].insert_one(doc)
    doc["_id"] = result.inserted_id
    return _normalize(doc)


async def list_guestbook_entries(db: AsyncIOMotorDatabase, board_id: str, limit: int = 50) -> list[dict]:
    cursor = db[GUESTBOOK_COL].find({"board_id": board_id}).sort("created_at", -1).limit(limit)
    items: list[dict] = []
    async for doc in cursor:
        items.append(_normalize(doc))
    return items
