"""매장(보드)과 미션 정의 카탈로그 조회 서비스"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis

from ..core.config import settings
from ..schemas.geo import Coordinate
from ..schemas.missions import (
    Board,
    Mission,
    QuietTimeMission,
    ReceiptMission,
    StampMission,
    StayMission,
    TreasureHuntMission,
)
from .attempt_api import MissionApiError, parse_error_message
from .quiet_time import WEEKDAY_CODES, describe_quiet_time

logger = logging.getLogger(__name__)

CATALOG_CACHE_KEY = "catalog:boards"
DEFAULT_TREASURE_GUIDE_TEXT = "정답 이미지와 같은 장면을 촬영해 인증하세요."

_BOARD_LIST = TypeAdapter(list[Board])


def parse_config_json(config_json: Any) -> dict[str, Any]:
    if isinstance(config_json, dict):
        return config_json
    try:
        parsed = json.loads(config_json or "")
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _as_text(value: Any) -> str | None:
    return value if isinstance(value, str) and value.strip() else None


def _as_days(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    days = [day for day in value if day in WEEKDAY_CODES]
    return days or None


def _as_hour(value: Any) -> float | None:
    hour = _as_number(value)
    if hour is None or not 0 <= hour <= 24:
        return None
    return hour


def _as_non_negative_int(value: Any) -> int | None:
    number = _as_number(value)
    if number is None or number < 0:
        return None
    return int(number)


def _build_mission(definition: dict[str, Any]) -> Mission | None:
    config = parse_config_json(definition.get("configJson"))
    mission_id = str(definition.get("id", ""))
    reward = _as_non_negative_int(definition.get("rewardAmount")) or 0
    backend_type = definition.get("type")

    if backend_type == "TIME_WINDOW":
        start = _as_hour(config.get("startHour"))
        end = _as_hour(config.get("endHour"))
        mission = QuietTimeMission(
            id=mission_id,
            title="한산 시간대 방문 인증",
            reward_coins=reward,
            quiet_time_start_hour=14 if start is None else start,
            quiet_time_end_hour=16 if end is None else end,
            quiet_time_days=_as_days(config.get("days")),
        )
        return mission.model_copy(update={"description": f"{describe_quiet_time(mission)} 방문 시 인증됩니다."})

    if backend_type == "DWELL":
        minutes = _as_non_negative_int(config.get("durationMinutes"))
        minutes = 20 if minutes is None else minutes
        return StayMission(
            id=mission_id,
            title=f"{minutes}분 이상 체류",
            description="체류 시작/종료로 머문 시간을 인증하면 보상을 받습니다.",
            reward_coins=reward,
            min_duration_minutes=minutes,
        )

    if backend_type == "RECEIPT":
        item_name = _as_text(config.get("targetProductKey")) or "지정 상품"
        price = _as_number(config.get("targetProductPrice"))
        price_label = f" ({price:,.0f}원)" if price is not None else ""
        return ReceiptMission(
            id=mission_id,
            title="영수증 구매 인증",
            description=f"{item_name}{price_label} 구매 영수증을 촬영해 인증하세요.",
            reward_coins=reward,
            receipt_item_name=item_name,
            receipt_item_price=price,
        )

    if backend_type == "INVENTORY":
        return TreasureHuntMission(
            id=mission_id,
            title="카메라 보물찾기",
            description=DEFAULT_TREASURE_GUIDE_TEXT,
            reward_coins=reward,
            treasure_guide_text=DEFAULT_TREASURE_GUIDE_TEXT,
            treasure_guide_image_uri=_as_text(config.get("answerImageUrl")),
        )

    if backend_type == "STAMP":
        goal = _as_non_negative_int(config.get("requiredCount"))
        goal = settings.default_stamp_goal_count if goal is None else goal
        return StampMission(
            id=mission_id,
            title=f"반복 방문 스탬프 ({goal}회)",
            description="하루 1회 방문 인증으로 스탬프를 적립하고 목표를 달성하면 보상을 받습니다.",
            reward_coins=reward,
            stamp_goal_count=goal,
        )

    logger.warning(f"알 수 없는 미션 타입 무시: {backend_type}")
    return None


def map_mission_definition(definition: dict[str, Any]) -> Mission | None:
    """
    백엔드 미션 정의를 로컬 미션 모델로 변환합니다.

    configJson이 깨져 있거나 범위를 벗어난 값은 앱과 같은 기본값으로 대체하고,
    비활성화된 미션, 알 수 없는 타입, 검증에 실패한 정의는 None을 반환합니다.
    """
    if definition.get("active", definition.get("isActive", True)) is False:
        return None
    try:
        return _build_mission(definition)
    except ValidationError as exc:
        logger.warning(f"미션 정의 {definition.get('id')} 변환 실패, 건너뜀: {exc}")
        return None


def fallback_store_emoji(name: str) -> str:
    normalized = name.lower()
    if "카페" in normalized or "커피" in normalized:
        return "☕"
    if "cu" in normalized or "gs" in normalized or "마트" in normalized:
        return "🏪"
    if "식당" in normalized or "국수" in normalized or "치킨" in normalized:
        return "🍽️"
    return "📍"


def map_store_to_board(store: dict[str, Any], definitions: list[dict[str, Any]]) -> Board:
    missions = [m for m in (map_mission_definition(d) for d in definitions) if m is not None]
    address = (store.get("address") or "").strip()
    detail = (store.get("detailAddress") or "").strip()
    description = f"{address} {detail}".strip() if detail else address
    name = store.get("name") or ""
    return Board(
        id=str(store["id"]),
        coordinate=Coordinate(latitude=store["lat"], longitude=store["lng"]),
        emoji=fallback_store_emoji(name),
        title=name,
        description=description or "가게 설명이 아직 등록되지 않았습니다.",
        created_at=datetime.now(timezone.utc),
        missions=missions,
    )


class BoardCatalog:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        redis_client: Redis | None = None,
        cache_ttl: int | None = None,
    ) -> None:
        self.base_url = (base_url or settings.mission_api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.mission_api_timeout_seconds
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.catalog_cache_ttl_seconds
        self._transport = transport
        self._redis = redis_client

    async def _get_json(self, path: str, fallback_message: str) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(path)
        except httpx.HTTPError as exc:
            logger.warning("카탈로그 API 호출 실패 %s: %s", path, exc)
            raise MissionApiError(fallback_message) from exc
        if not response.is_success:
            raise MissionApiError(parse_error_message(response, fallback_message), status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise MissionApiError(fallback_message) from exc

    async def list_stores(self) -> list[dict[str, Any]]:
        return await self._get_json("/api/stores", "매장 목록을 불러오지 못했습니다.")

    async def list_store_missions(self, store_id: int | str) -> list[dict[str, Any]]:
        return await self._get_json(f"/api/stores/{store_id}/missions", "매장 미션 목록을 불러오지 못했습니다.")

    async def _missions_or_empty(self, store: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            return await self.list_store_missions(store["id"])
        except MissionApiError as exc:
            logger.warning(f"매장 {store.get('id')} 미션 조회 실패, 빈 목록 사용: {exc}")
            return []

    async def _read_cache(self) -> list[Board] | None:
        if self._redis is None:
            return None
        try:
            cached = await self._redis.get(CATALOG_CACHE_KEY)
        except Exception as e:
            logger.warning(f"Redis 캐시 조회 실패: {e}")
            return None
        if not cached:
            return None
        try:
            return _BOARD_LIST.validate_json(cached)
        except ValidationError:
            logger.warning("손상된 카탈로그 캐시 무시")
            return None

    async def _write_cache(self, boards: list[Board]) -> None:
        if self._redis is None or self.cache_ttl <= 0:
            return
        try:
            await self._redis.setex(CATALOG_CACHE_KEY, self.cache_ttl, _BOARD_LIST.dump_json(boards).decode())
        except Exception as e:
            logger.warning(f"Redis 캐싱 실패: {e}")

    async def fetch_boards(self, use_cache: bool = True) -> list[Board]:
        if use_cache:
            cached = await self._read_cache()
            if cached is not None:
                return cached

        stores = await self.list_stores()
        mission_lists = await asyncio.gather(*(self._missions_or_empty(store) for store in stores))
        boards: list[Board] = []
        for store, missions in zip(stores, mission_lists):
            try:
                boards.append(map_store_to_board(store, missions))
            except (KeyError, ValidationError) as exc:
                logger.warning(f"매장 {store.get('id')} 정보가 올바르지 않아 건너뜀: {exc}")
        await self._write_cache(boards)
        return boards

    async def get_board(self, board_id: str) -> Board | None:
        boards = await self.fetch_boards()
        return next((board for board in boards if board.id == board_id), None)
