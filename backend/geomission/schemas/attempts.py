from datetime import datetime
from enum import Enum
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from ..core.config import settings

_DATETIME = TypeAdapter(datetime)


class AttemptStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    RETRY = "RETRY"


class MissionAttempt(BaseModel):
    """원격 attempt ledger의 시도 기록 (보상 지급 여부의 유일한 근거)"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    attempt_id: int = Field(..., alias="attemptId")
    mission_id: int = Field(..., alias="missionId")
    status: AttemptStatus
    retry_hint: str | None = Field(default=None, alias="retryHint")
    reward_id: int | None = Field(default=None, alias="rewardId")
    checkin_at: datetime | None = Field(default=None, alias="checkinAt")
    checkout_at: datetime | None = Field(default=None, alias="checkoutAt")

    @field_validator("checkin_at", "checkout_at", mode="before")
    @classmethod
    def _drop_unparseable(cls, value: object) -> object:
        # 빈 문자열이나 해석할 수 없는 시각은 시각 없음으로 취급하고 시도 기록은 유지
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, str) and not value.strip():
            return None
        try:
            return _DATETIME.validate_python(value)
        except ValidationError:
            return None

    @field_validator("checkin_at", "checkout_at")
    @classmethod
    def _localize_naive(cls, value: datetime | None) -> datetime | None:
        # 서버가 오프셋 없이 내려주는 시각은 현지 시간으로 해석
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=ZoneInfo(settings.local_timezone))
        return value

    @property
    def has_reward(self) -> bool:
        return self.reward_id is not None

    @property
    def timestamp(self) -> datetime | None:
        return self.checkin_at or self.checkout_at


class MissionAttemptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str | None = Field(default=None, alias="imageUrl")
