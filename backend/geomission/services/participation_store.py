"""세션별 참여 스냅샷 저장소 (항상 통째로 교체)"""
from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from typing import Protocol

from pydantic import ValidationError
from redis.asyncio import Redis

from ..core.config import settings
from ..schemas.participation import ParticipationSnapshot

logger = logging.getLogger(__name__)

SNAPSHOT_KEY_PREFIX = "participation:snapshot:"

SnapshotUpdater = Callable[[ParticipationSnapshot], ParticipationSnapshot]


def session_id_for_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ParticipationStore(Protocol):
    async def get(self, session_id: str) -> ParticipationSnapshot: ...

    async def replace(self, session_id: str, snapshot: ParticipationSnapshot) -> ParticipationSnapshot: ...

    async def update(self, session_id: str, updater: SnapshotUpdater) -> ParticipationSnapshot: ...


class InMemoryParticipationStore:
    def __init__(self) -> None:
        self._snapshots: dict[str, ParticipationSnapshot] = {}

    async def get(self, session_id: str) -> ParticipationSnapshot:
        return self._snapshots.get(session_id) or ParticipationSnapshot()

    async def replace(self, session_id: str, snapshot: ParticipationSnapshot) -> ParticipationSnapshot:
        self._snapshots[session_id] = snapshot
        return snapshot

    async def update(self, session_id: str, updater: SnapshotUpdater) -> ParticipationSnapshot:
        return await self.replace(session_id, updater(await self.get(session_id)))


class RedisParticipationStore:
    def __init__(self, redis: Redis, ttl_seconds: int | None = None) -> None:
        self._redis = redis
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.participation_ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{SNAPSHOT_KEY_PREFIX}{session_id}"

    async def get(self, session_id: str) -> ParticipationSnapshot:
        raw = await self._redis.get(self._key(session_id))
        if raw is None:
            return ParticipationSnapshot()
        try:
            return ParticipationSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"손상된 참여 스냅샷 폐기: {session_id[:8]}")
            return ParticipationSnapshot()

    async def replace(self, session_id: str, snapshot: ParticipationSnapshot) -> ParticipationSnapshot:
        await self._redis.set(self._key(session_id), snapshot.model_dump_json(), ex=self._ttl)
        return snapshot

    async def update(self, session_id: str, updater: SnapshotUpdater) -> ParticipationSnapshot:
        # 읽기-계산-쓰기. 동시 갱신은 다음 reconciliation이 수렴시킨다
        return await self.replace(session_id, updater(await self.get(session_id)))
