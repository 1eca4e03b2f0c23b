from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .geo import Coordinate
from .missions import MissionType

ActivityStatus = Literal["started", "completed"]


class ParticipatedActivity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str  # attempt-{attemptId}
    board_id: str
    board_title: str
    mission_id: str
    mission_type: MissionType
    mission_title: str
    reward_coins: int = 0
    status: ActivityStatus
    started_at: datetime
    completed_at: datetime | None = None
    required_minutes: int | None = None
    image_uri: str | None = None
    start_coordinate: Coordinate
    end_coordinate: Coordinate | None = None


class RepeatVisitProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    board_id: str
    mission_id: str
    current_stamp_count: int = 0
    completed_rounds: int = 0
    last_stamped_at: datetime | None = None
    estimated: bool = Field(default=False, description="재조회 실패 시 로컬 추정치 여부")


class ParticipationSnapshot(BaseModel):
    """세션별 참여 상태. 항상 통째로 교체되며 제자리 수정하지 않는다."""

    model_config = ConfigDict(frozen=True)

    participated_activities: list[ParticipatedActivity] = Field(default_factory=list)
    repeat_visit_progress_by_mission_id: dict[str, RepeatVisitProgress] = Field(default_factory=dict)

    def find_activity(self, activity_id: str) -> ParticipatedActivity | None:
        return next((a for a in self.participated_activities if a.id == activity_id), None)

    def has_activity(self, board_id: str, mission_id: str, status: ActivityStatus) -> bool:
        return any(
            a.board_id == board_id and a.mission_id == mission_id and a.status == status
            for a in self.participated_activities
        )


class OutcomeCategory(str, Enum):
    COMPLETED = "completed"
    STARTED = "started"
    STAMPED = "stamped"
    PRECONDITION = "precondition"
    TRANSPORT = "transport"
    REJECTED = "rejected"
    RECOVERED = "recovered"


class MissionOutcome(BaseModel):
    success: bool
    category: OutcomeCategory
    title: str
    message: str
    activity: ParticipatedActivity | None = None
    progress: RepeatVisitProgress | None = None
    snapshot: ParticipationSnapshot


class CertifyRequest(BaseModel):
    coordinate: Coordinate | None = None


class ImageCertifyRequest(CertifyRequest):
    image_uri: str = Field(..., min_length=1, description="촬영 이미지 참조 (업로드된 URL)")
