from collections.abc import AsyncGenerator

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.asyncio import Redis

from .core.auth import get_access_token
from .core.config import settings
from .db.mongo import MongoConnectionManager
from .db.redis import RedisConnectionManager
from .services.attempt_api import MissionAttemptClient
from .services.catalog import BoardCatalog
from .services.orchestrator import MissionOrchestrator
from .services.participation_store import (
    InMemoryParticipationStore,
    ParticipationStore,
    RedisParticipationStore,
    session_id_for_token,
)

_memory_store = InMemoryParticipationStore()


async def get_mongo_db() -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    db = MongoConnectionManager.get_database()
    yield db


async def get_redis() -> AsyncGenerator[Redis, None]:
    client = RedisConnectionManager.get_client()
    try:
        yield client
    finally:
        # 싱글톤으로 유지하므로 종료하지 않음
        pass


def get_attempt_client() -> MissionAttemptClient:
    return MissionAttemptClient()


def get_board_catalog(redis: Redis = Depends(get_redis)) -> BoardCatalog:
    return BoardCatalog(redis_client=redis)


def get_participation_store(redis: Redis = Depends(get_redis)) -> ParticipationStore:
    if settings.participation_store_backend == "memory":
        return _memory_store
    return RedisParticipationStore(redis)


def get_session_id(token: str = Depends(get_access_token)) -> str:
    return session_id_for_token(token)


def get_orchestrator(
    token: str = Depends(get_access_token),
    client: MissionAttemptClient = Depends(get_attempt_client),
    catalog: BoardCatalog = Depends(get_board_catalog),
    store: ParticipationStore = Depends(get_participation_store),
) -> MissionOrchestrator:
    return MissionOrchestrator(client, catalog, store, session_id=session_id_for_token(token), token=token)
