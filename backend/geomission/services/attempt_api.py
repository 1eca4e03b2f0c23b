"""원격 미션 백엔드의 attempt ledger API 클라이언트"""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..core.config import settings
from ..schemas.attempts import MissionAttempt, MissionAttemptRequest

logger = logging.getLogger(__name__)


class MissionApiError(Exception):
    """원격 API 호출 실패 (네트워크 오류, 2xx 이외 응답, 해석 불가 응답)"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def parse_mission_id(mission_id: str) -> int | None:
    """양의 정수로 해석되는 미션 ID만 허용합니다."""
    try:
        parsed = float(str(mission_id).strip())
    except ValueError:
        return None
    if not parsed.is_integer() or parsed <= 0:
        return None
    return int(parsed)


def parse_error_message(response: httpx.Response, fallback_message: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return fallback_message
    if isinstance(data, dict):
        if data.get("message"):
            return str(data["message"])
        if data.get("error"):
            return str(data["error"])
    return fallback_message


class MissionAttemptClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.mission_api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.mission_api_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        fallback_message: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            async with self._client() as client:
                response = await client.request(method, path, headers=headers, json=json)
        except httpx.HTTPError as exc:
            logger.warning("미션 API 호출 실패 %s %s: %s", method, path, exc)
            raise MissionApiError(fallback_message) from exc

        if not response.is_success:
            message = parse_error_message(response, fallback_message)
            logger.warning("미션 API 오류 응답 %s %s: %s %s", method, path, response.status_code, message)
            raise MissionApiError(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise MissionApiError(fallback_message, status_code=response.status_code) from exc

    @staticmethod
    def _to_attempt(data: Any, fallback_message: str) -> MissionAttempt:
        try:
            return MissionAttempt.model_validate(data)
        except ValidationError as exc:
            logger.warning("attempt 응답 형식 오류: %s", exc)
            raise MissionApiError(fallback_message) from exc

    async def attempt_mission(self, mission_id: int, token: str, image_url: str | None = None) -> MissionAttempt:
        fallback = "미션 인증 요청에 실패했습니다."
        payload = MissionAttemptRequest(image_url=image_url).model_dump(by_alias=True, exclude_none=True)
        data = await self._request("POST", f"/api/missions/{mission_id}/attempts", token, fallback, json=payload)
        return self._to_attempt(data, fallback)

    async def checkin_stay_mission(self, mission_id: int, token: str) -> MissionAttempt:
        fallback = "체류 체크인에 실패했습니다."
        data = await self._request("POST", f"/api/missions/{mission_id}/attempts/checkin", token, fallback)
        return self._to_attempt(data, fallback)

    async def checkout_stay_mission(self, mission_id: int, token: str) -> MissionAttempt:
        fallback = "체류 체크아웃에 실패했습니다."
        data = await self._request("POST", f"/api/missions/{mission_id}/attempts/checkout", token, fallback)
        return self._to_attempt(data, fallback)

    async def list_my_attempts(self, mission_id: int, token: str) -> list[MissionAttempt]:
        fallback = "미션 수행 이력을 불러오지 못했습니다."
        data = await self._request("GET", f"/api/missions/{mission_id}/attempts/me", token, fallback)
        if not isinstance(data, list):
            logger.warning("attempt 이력 응답 형식 오류: %r", type(data))
            raise MissionApiError(fallback)

        attempts: list[MissionAttempt] = []
        for item in data:
            try:
                attempts.append(MissionAttempt.model_validate(item))
            except ValidationError as exc:
                # 한 건이 깨져도 나머지 이력은 유지
                logger.warning("해석할 수 없는 attempt 무시 (미션 %s): %s", mission_id, exc)
        return attempts
