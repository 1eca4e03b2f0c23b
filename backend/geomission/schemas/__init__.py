from .attempts import AttemptStatus, MissionAttempt, MissionAttemptRequest
from .geo import Coordinate
from .guestbook import GuestbookCreate, GuestbookOut
from .missions import (
    Board,
    Mission,
    MissionType,
    QuietTimeMission,
    ReceiptMission,
    StampMission,
    StayMission,
    TreasureHuntMission,
)
from .participation import (
    CertifyRequest,
    ImageCertifyRequest,
    MissionOutcome,
    OutcomeCategory,
    ParticipatedActivity,
    ParticipationSnapshot,
    RepeatVisitProgress,
)

__all__ = [
    "AttemptStatus",
    "MissionAttempt",
    "MissionAttemptRequest",
    "Coordinate",
    "GuestbookCreate",
    "GuestbookOut",
    "Board",
    "Mission",
    "MissionType",
    "QuietTimeMission",
    "ReceiptMission",
    "StampMission",
    "StayMission",
    "TreasureHuntMission",
    "CertifyRequest",
    "ImageCertifyRequest",
    "MissionOutcome",
    "OutcomeCategory",
    "ParticipatedActivity",
    "ParticipationSnapshot",
    "RepeatVisitProgress",
]
