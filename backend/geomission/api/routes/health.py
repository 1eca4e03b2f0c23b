from fastapi import APIRouter

from ...db.mongo import MongoConnectionManager
from ...db.redis import RedisConnectionManager

router = APIRouter()


@router.get("/health", summary="애플리케이션 헬스체크")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/dependencies", summary="Redis/MongoDB 연결 상태")
async def dependency_check() -> dict[str, bool]:
    return {
        "redis": await RedisConnectionManager.ping(),
        "mongodb": await MongoConnectionManager.ping(),
    }
