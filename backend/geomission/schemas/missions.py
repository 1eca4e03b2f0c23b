from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .geo import Coordinate


class MissionType(str, Enum):
    QUIET_TIME_VISIT = "quiet_time_visit"
    STAY_DURATION = "stay_duration"
    RECEIPT_PURCHASE = "receipt_purchase"
    CAMERA_TREASURE_HUNT = "camera_treasure_hunt"
    REPEAT_VISIT_STAMP = "repeat_visit_stamp"


QuietTimeDay = Literal["MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN"]


class MissionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    reward_coins: int = Field(default=0, ge=0)


class QuietTimeMission(MissionBase):
    type: Literal[MissionType.QUIET_TIME_VISIT] = MissionType.QUIET_TIME_VISIT
    quiet_time_start_hour: float | None = Field(default=None, ge=0, le=24)
    quiet_time_end_hour: float | None = Field(default=None, ge=0, le=24)
    quiet_time_days: list[QuietTimeDay] | None = None


class StayMission(MissionBase):
    type: Literal[MissionType.STAY_DURATION] = MissionType.STAY_DURATION
    min_duration_minutes: int | None = Field(default=None, ge=0)


class ReceiptMission(MissionBase):
    type: Literal[MissionType.RECEIPT_PURCHASE] = MissionType.RECEIPT_PURCHASE
    receipt_item_name: str | None = None
    receipt_item_price: float | None = None


class TreasureHuntMission(MissionBase):
    type: Literal[MissionType.CAMERA_TREASURE_HUNT] = MissionType.CAMERA_TREASURE_HUNT
    treasure_guide_text: str | None = None
    treasure_guide_image_uri: str | None = None


class StampMission(MissionBase):
    type: Literal[MissionType.REPEAT_VISIT_STAMP] = MissionType.REPEAT_VISIT_STAMP
    stamp_goal_count: int | None = None


Mission = Annotated[
    Union[QuietTimeMission, StayMission, ReceiptMission, TreasureHuntMission, StampMission],
    Field(discriminator="type"),
]


class Board(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    coordinate: Coordinate
    emoji: str = "📍"
    title: str
    description: str = ""
    created_at: datetime | None = None
    missions: list[Mission] = Field(default_factory=list)

    def find_mission(self, mission_id: str) -> Mission | None:
        return next((mission for mission in self.missions if mission.id == mission_id), None)
