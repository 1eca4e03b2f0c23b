from __future__ import annotations

import json
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT))

from backend.geomission.db import init  # noqa: E402
from backend.geomission.db.mongo import MongoConnectionManager  # noqa: E402
from backend.geomission.db.redis import RedisConnectionManager  # noqa: E402
from backend.geomission.schemas import Board, Coordinate  # noqa: E402
from backend.geomission.services.attempt_api import MissionAttemptClient  # noqa: E402
from backend.geomission.services.catalog import BoardCatalog, map_store_to_board  # noqa: E402
from backend.geomission.services.orchestrator import MissionOrchestrator  # noqa: E402
from backend.geomission.services.participation_store import InMemoryParticipationStore  # noqa: E402

MISSION_API_URL = "http://missions.test"

# 2026-10-19 23:00 (Asia/Seoul)
NOW = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)

BOARD_COORDINATE = Coordinate(latitude=37.5463937599992, longitude=127.065889477465)

STORE = {
    "id": 1,
    "name": "성수 카페",
    "address": "서울 성동구 성수이로 1",
    "detailAddress": None,
    "lat": BOARD_COORDINATE.latitude,
    "lng": BOARD_COORDINATE.longitude,
    "ownerId": 7,
    "businessNumber": None,
    "imageUrl": None,
}

MISSION_DEFINITIONS = [
    {"id": 11, "storeId": 1, "type": "TIME_WINDOW", "configJson": '{"startHour": 22, "endHour": 6}', "rewardAmount": 100},
    {"id": 12, "storeId": 1, "type": "DWELL", "configJson": '{"durationMinutes": 20}', "rewardAmount": 300},
    {
        "id": 13,
        "storeId": 1,
        "type": "RECEIPT",
        "configJson": '{"targetProductKey": "아메리카노", "targetProductPrice": 4500}',
        "rewardAmount": 200,
    },
    {"id": 14, "storeId": 1, "type": "INVENTORY", "configJson": '{"answerImageUrl": "https://img.test/a.jpg"}', "rewardAmount": 150},
    {"id": 15, "storeId": 1, "type": "STAMP", "configJson": '{"requiredCount": 5}', "rewardAmount": 500},
]


def iso(value: datetime) -> str:
    return value.isoformat()


def make_attempt(
    attempt_id: int,
    mission_id: int,
    status: str,
    *,
    reward_id: int | None = None,
    checkin_at: datetime | None = None,
    checkout_at: datetime | None = None,
    retry_hint: str | None = None,
) -> dict[str, Any]:
    return {
        "attemptId": attempt_id,
        "missionId": mission_id,
        "status": status,
        "retryHint": retry_hint,
        "rewardId": reward_id,
        "checkinAt": iso(checkin_at) if checkin_at else None,
        "checkoutAt": iso(checkout_at) if checkout_at else None,
    }


class FakeMissionBackend:
    """attempt ledger와 매장 카탈로그를 흉내내는 httpx MockTransport 핸들러"""

    _ATTEMPT_PATH = re.compile(r"^/api/missions/(\d+)/attempts(?:/(checkin|checkout|me))?$")
    _STORE_MISSIONS_PATH = re.compile(r"^/api/stores/(\d+)/missions$")

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.bodies: list[Any] = []
        self.queued: dict[tuple[int, str], list[dict[str, Any]]] = {}
        self.history: dict[int, list[dict[str, Any]]] = {}
        self.failing: set[tuple[str, str]] = set()
        self.stores: list[dict[str, Any]] = [STORE]
        self.store_missions: dict[int, list[dict[str, Any]]] = {1: MISSION_DEFINITIONS}

    def queue(self, mission_id: int, action: str, attempt: dict[str, Any]) -> None:
        self.queued.setdefault((mission_id, action), []).append(attempt)

    def fail(self, method: str, path: str) -> None:
        self.failing.add((method, path))

    def paths(self, method: str | None = None) -> list[str]:
        return [path for m, path in self.calls if method is None or m == method]

    def _record(self, mission_id: int, attempt: dict[str, Any]) -> None:
        entries = [a for a in self.history.get(mission_id, []) if a["attemptId"] != attempt["attemptId"]]
        self.history[mission_id] = [*entries, attempt]

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))
        if request.content:
            self.bodies.append(json.loads(request.content))
        if (method, path) in self.failing:
            return httpx.Response(500, json={"message": "서버 내부 오류"})

        if path == "/api/stores":
            return httpx.Response(200, json=self.stores)
        store_match = self._STORE_MISSIONS_PATH.match(path)
        if store_match:
            return httpx.Response(200, json=self.store_missions.get(int(store_match.group(1)), []))

        match = self._ATTEMPT_PATH.match(path)
        if match is None:
            return httpx.Response(404, json={"error": "not found"})

        mission_id = int(match.group(1))
        action = match.group(2) or "attempt"
        if action == "me":
            return httpx.Response(200, json=self.history.get(mission_id, []))

        queue = self.queued.get((mission_id, action)) or []
        if not queue:
            return httpx.Response(409, json={})
        attempt = queue.pop(0)
        self._record(mission_id, attempt)
        return httpx.Response(200, json=attempt)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class _DummyCollection:
    async def create_index(self, *_args: Any, **_kwargs: Any) -> None:
        return None


class _DummyDatabase:
    def __getitem__(self, _name: str) -> _DummyCollection:
        return _DummyCollection()


class _DummyMongoClient:
    def __init__(self) -> None:
        self._db = _DummyDatabase()

    def __getitem__(self, _name: str) -> _DummyDatabase:
        return self._db

    def close(self) -> None:
        return None


class _DummyRedisClient:
    async def get(self, _key: str) -> None:
        return None

    async def setex(self, *_args: Any) -> None:
        return None

    async def aclose(self) -> None:
        return None


@pytest.fixture(autouse=True)
def stub_infrastructure(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    DB 연결을 stub으로 대체하는 fixture

    환경 변수 MONGODB_URI와 REDIS_URL이 설정되어 있으면 실제 DB를 사용합니다.
    """
    mongodb_uri = os.getenv("MONGODB_URI", "").strip()
    redis_url = os.getenv("REDIS_URL", "").strip()
    if mongodb_uri and redis_url:
        return

    dummy_mongo_client = _DummyMongoClient()
    dummy_redis_client = _DummyRedisClient()

    async def _noop_ensure_indexes(_db: Any) -> None:
        return None

    async def _noop_close(cls: type) -> None:
        return None

    monkeypatch.setattr(MongoConnectionManager, "get_client", classmethod(lambda cls: dummy_mongo_client))
    monkeypatch.setattr(RedisConnectionManager, "get_client", classmethod(lambda cls: dummy_redis_client))
    monkeypatch.setattr(MongoConnectionManager, "close", classmethod(lambda cls: _noop_close(cls)))
    monkeypatch.setattr(RedisConnectionManager, "close", classmethod(lambda cls: _noop_close(cls)))
    monkeypatch.setattr(init, "ensure_indexes", _noop_ensure_indexes)


@pytest.fixture
def mission_backend() -> FakeMissionBackend:
    return FakeMissionBackend()


@pytest.fixture
def board() -> Board:
    return map_store_to_board(STORE, MISSION_DEFINITIONS)


@pytest.fixture
def store() -> InMemoryParticipationStore:
    return InMemoryParticipationStore()


@pytest.fixture
def attempt_client(mission_backend: FakeMissionBackend) -> MissionAttemptClient:
    return MissionAttemptClient(base_url=MISSION_API_URL, transport=mission_backend.transport())


@pytest.fixture
def board_catalog(mission_backend: FakeMissionBackend) -> BoardCatalog:
    return BoardCatalog(base_url=MISSION_API_URL, transport=mission_backend.transport())


@pytest.fixture
def make_orchestrator(attempt_client: MissionAttemptClient, board_catalog: BoardCatalog, store: InMemoryParticipationStore):
    def _make(clock=lambda: NOW, proximity_meters: float = 200.0) -> MissionOrchestrator:
        return MissionOrchestrator(
            attempt_client,
            board_catalog,
            store,
            session_id="session-1",
            token="token-abc",
            proximity_meters=proximity_meters,
            tz_name="Asia/Seoul",
            clock=clock,
        )

    return _make
