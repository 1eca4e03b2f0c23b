"""
미션 인증/진행 오케스트레이션

모든 작업은 사전 조건 확인 → 원격 attempt 호출 → 로컬 상태 반영 → 사용자 메시지
순서로 진행됩니다. 실패 경로는 참여 상태를 바꾸지 않습니다.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from ..core.config import settings
from ..schemas.attempts import AttemptStatus, MissionAttempt
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
from ..schemas.participation import (
    MissionOutcome,
    OutcomeCategory,
    ParticipatedActivity,
    ParticipationSnapshot,
    RepeatVisitProgress,
)
from .attempt_api import MissionApiError, MissionAttemptClient, parse_mission_id
from .attempt_mapper import apply_local_attempt, map_attempt_to_activity, remove_activity
from .catalog import BoardCatalog
from .geolocation import calculate_distance
from .participation_store import ParticipationStore
from .quiet_time import describe_quiet_time, is_within_quiet_time
from .reconciler import AttemptRecord, reconcile, sort_attempts_by_latest
from .stamps import estimate_repeat_visit_progress, stamp_goal_count

logger = logging.getLogger(__name__)


class MissionRefusal(Exception):
    """네트워크 호출 없이 로컬에서 거절되는 사전 조건 실패"""

    def __init__(self, title: str, message: str, category: OutcomeCategory = OutcomeCategory.PRECONDITION):
        super().__init__(message)
        self.title = title
        self.message = message
        self.category = category


def attempt_failure_message(attempt: MissionAttempt, default_message: str) -> str:
    retry_hint = (attempt.retry_hint or "").strip()
    if retry_hint:
        return retry_hint
    if attempt.status is AttemptStatus.RETRY:
        return "다시 시도해주세요."
    if attempt.status is AttemptStatus.PENDING:
        return "아직 미션이 완료되지 않았습니다."
    return default_message


def format_remaining_duration(remaining: timedelta) -> str:
    remaining_seconds = max(math.ceil(remaining.total_seconds()), 0)
    minutes, seconds = divmod(remaining_seconds, 60)
    if minutes <= 0:
        return f"{seconds}초"
    if seconds <= 0:
        return f"{minutes}분"
    return f"{minutes}분 {seconds}초"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MissionOrchestrator:
    def __init__(
        self,
        client: MissionAttemptClient,
        catalog: BoardCatalog,
        store: ParticipationStore,
        *,
        session_id: str,
        token: str,
        proximity_meters: float | None = None,
        tz_name: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.store = store
        self.session_id = session_id
        self.token = token
        self.proximity_meters = proximity_meters if proximity_meters is not None else settings.mission_proximity_meters
        self.tz_name = tz_name or settings.local_timezone
        self.clock = clock

    # 공통 사전 조건 ------------------------------------------------------

    def _require_near_board(self, coordinate: Coordinate | None, board: Board) -> Coordinate:
        if coordinate is None:
            raise MissionRefusal("위치 필요", "GPS 위치를 확인할 수 없어요. 잠시 후 다시 시도해주세요.")
        distance = calculate_distance(coordinate, board.coordinate)
        if distance > self.proximity_meters:
            raise MissionRefusal(
                "거리 확인 필요",
                f"{board.title}에서 약 {round(distance)}m 떨어져 있어요. "
                f"{self.proximity_meters:g}m 이내에서 다시 시도해주세요.",
            )
        return coordinate

    @staticmethod
    def _require_mission_id(mission_id: str) -> int:
        parsed = parse_mission_id(mission_id)
        if parsed is None:
            raise MissionRefusal("오류", "미션 ID 형식이 올바르지 않습니다.")
        return parsed

    @staticmethod
    def _require_not_completed(
        snapshot: ParticipationSnapshot, board: Board, mission: Mission, message: str = "이 활동은 이미 인증을 완료했습니다."
    ) -> None:
        if snapshot.has_activity(board.id, mission.id, "completed"):
            raise MissionRefusal("이미 완료됨", message)

    @staticmethod
    def _require_type(mission: Mission, expected: type) -> None:
        if not isinstance(mission, expected):
            raise MissionRefusal("오류", "이 작업을 지원하지 않는 미션 유형입니다.")

    # 결과 생성 ------------------------------------------------------------

    @staticmethod
    def _failure(
        snapshot: ParticipationSnapshot, category: OutcomeCategory, title: str, message: str
    ) -> MissionOutcome:
        return MissionOutcome(success=False, category=category, title=title, message=message, snapshot=snapshot)

    async def _fold_activity(self, activity: ParticipatedActivity) -> ParticipationSnapshot:
        return await self.store.update(self.session_id, lambda s: apply_local_attempt(s, activity))

    # 단일 attempt 인증 (한산 시간대 / 영수증 / 보물찾기) ---------------------

    async def _certify_single_attempt(
        self,
        board: Board,
        mission: Mission,
        coordinate: Coordinate,
        *,
        snapshot: ParticipationSnapshot,
        failure_title: str,
        rejected_message: str,
        unmapped_message: str,
        success_title: str,
        success_message: Callable[[ParticipatedActivity], str],
        image_uri: str | None = None,
    ) -> MissionOutcome:
        mission_id = self._require_mission_id(mission.id)
        self._require_not_completed(snapshot, board, mission)

        try:
            attempt = await self.client.attempt_mission(mission_id, self.token, image_url=image_uri)
        except MissionApiError as exc:
            return self._failure(snapshot, OutcomeCategory.TRANSPORT, failure_title, exc.message)

        if attempt.status is not AttemptStatus.SUCCESS:
            return self._failure(
                snapshot, OutcomeCategory.REJECTED, failure_title, attempt_failure_message(attempt, rejected_message)
            )

        activity = map_attempt_to_activity(
            board, mission, attempt, now=self.clock(), coordinate=coordinate, image_uri=image_uri
        )
        if activity is None:
            return self._failure(snapshot, OutcomeCategory.REJECTED, failure_title, unmapped_message)

        next_snapshot = await self._fold_activity(activity)
        logger.info(f"미션 {mission.id} 인증 완료 (attempt {attempt.attempt_id}, {activity.reward_coins} 코인)")
        return MissionOutcome(
            success=True,
            category=OutcomeCategory.COMPLETED,
            title=success_title,
            message=success_message(activity),
            activity=activity,
            snapshot=next_snapshot,
        )

    async def certify_quiet_time_mission(
        self, board: Board, mission: Mission, coordinate: Coordinate | None
    ) -> MissionOutcome:
        snapshot = await self.store.get(self.session_id)
        try:
            self._require_type(mission, QuietTimeMission)
            location = self._require_near_board(coordinate, board)
            if not is_within_quiet_time(mission, self.clock(), self.tz_name):
                raise MissionRefusal(
                    "인증 가능 시간 아님", f"이 미션은 {describe_quiet_time(mission)}에만 인증할 수 있어요."
                )
            return await self._certify_single_attempt(
                board,
                mission,
                location,
                snapshot=snapshot,
                failure_title="미션 인증 실패",
                rejected_message="미션 인증에 실패했습니다.",
                unmapped_message="미션 인증 응답을 처리하지 못했습니다.",
                success_title="미션 완료",
                success_message=lambda activity: f"{activity.reward_coins} 코인을 획득했어요.",
            )
        except MissionRefusal as refusal:
            return self._failure(snapshot, refusal.category, refusal.title, refusal.message)

    async def certify_receipt_purchase_mission(
        self, board: Board, mission: Mission, coordinate: Coordinate | None, image_uri: str
    ) -> MissionOutcome:
        snapshot = await self.store.get(self.session_id)
        try:
            self._require_type(mission, ReceiptMission)
            location = self._require_near_board(coordinate, board)
            if not mission.receipt_item_name:
                raise MissionRefusal("구매 대상 없음", "판매자가 지정한 구매 상품 정보가 아직 등록되지 않았어요.")
            return await self._certify_single_attempt(
                board,
                mission,
                location,
                snapshot=snapshot,
                image_uri=image_uri,
                failure_title="구매 인증 실패",
                rejected_message="영수증 검증에 실패했습니다.",
                unmapped_message="구매 인증 응답을 처리하지 못했습니다.",
                success_title="구매 인증 완료",
                success_message=lambda activity: (
                    f"{mission.receipt_item_name} 구매가 확인되어 {activity.reward_coins} 코인을 획득했어요."
                ),
            )
        except MissionRefusal as refusal:
            return self._failure(snapshot, refusal.category, refusal.title, refusal.message)

    async def certify_treasure_hunt_mission(
        self, board: Board, mission: Mission, coordinate: Coordinate | None, image_uri: str
    ) -> MissionOutcome:
        snapshot = await self.store.get(self.session_id)
        try:
            self._require_type(mission, TreasureHuntMission)
            location = self._require_near_board(coordinate, board)
            if not mission.treasure_guide_text:
                raise MissionRefusal("보물찾기 정보 없음", "가이드 문구가 아직 등록되지 않았어요.")
            return await self._certify_single_attempt(
                board,
                mission,
                location,
                snapshot=snapshot,
                image_uri=image_uri,
                failure_title="보물찾기 인증 실패",
                rejected_message="이미지 유사도 검증에 실패했습니다.",
                unmapped_message="보물찾기 인증 응답을 처리하지 못했습니다.",
                success_title="보물찾기 인증 완료",
                success_message=lambda activity: f"{activity.reward_coins} 코인을 획득했어요.",
            )
        except MissionRefusal as refusal:
            return self._failure(snapshot, refusal.category, refusal.title, refusal.message)

    # 반복 방문 스탬프 -------------------------------------------------------

    async def certify_repeat_visit_mission(
        self, board: Board, mission: Mission, coordinate: Coordinate | None
    ) -> MissionOutcome:
        snapshot = await self.store.get(self.session_id)
        failure_title = "스탬프 적립 실패"
        try:
            self._require_type(mission, StampMission)
            location = self._require_near_board(coordinate, board)
            mission_id = self._require_mission_id(mission.id)
        except MissionRefusal as refusal:
            return self._failure(snapshot, refusal.category, refusal.title, refusal.message)

        try:
            attempt = await self.client.attempt_mission(mission_id, self.token)
        except MissionApiError as exc:
            return self._failure(snapshot, OutcomeCategory.TRANSPORT, failure_title, exc.message)

        if attempt.status not in (AttemptStatus.PENDING, AttemptStatus.SUCCESS):
            return self._failure(
                snapshot,
                OutcomeCategory.REJECTED,
                failure_title,
                attempt_failure_message(attempt, "반복 방문 스탬프 적립에 실패했습니다."),
            )

        now = self.clock()
        previous = snapshot.repeat_visit_progress_by_mission_id.get(mission.id)
        previous_rounds = previous.completed_rounds if previous else 0
        activity = map_attempt_to_activity(board, mission, attempt, now=now, coordinate=location)

        try:
            history = await self.client.list_my_attempts(mission_id, self.token)
        except MissionApiError as exc:
            logger.info(f"스탬프 이력 재조회 실패, 로컬 추정치 사용 (미션 {mission.id}): {exc}")
            history = None

        def _update(current: ParticipationSnapshot) -> ParticipationSnapshot:
            if history is not None:
                folded = reconcile(current, [AttemptRecord(board, mission, history)], now)
            else:
                estimated = estimate_repeat_visit_progress(
                    board, mission, current.repeat_visit_progress_by_mission_id.get(mission.id), attempt, now
                )
                folded = current.model_copy(
                    update={
                        "repeat_visit_progress_by_mission_id": {
                            **current.repeat_visit_progress_by_mission_id,
                            mission.id: estimated,
                        }
                    }
                )
            return apply_local_attempt(folded, activity) if activity is not None else folded

        next_snapshot = await self.store.update(self.session_id, _update)
        progress: RepeatVisitProgress = next_snapshot.repeat_visit_progress_by_mission_id[mission.id]

        if progress.completed_rounds > previous_rounds:
            reward_coins = activity.reward_coins if activity is not None else mission.reward_coins
            return MissionOutcome(
                success=True,
                category=OutcomeCategory.COMPLETED,
                title="스탬프 카드 완성",
                message=f"{reward_coins} 코인을 획득했어요." if reward_coins > 0 else "스탬프 카드를 완성했어요.",
                activity=activity,
                progress=progress,
                snapshot=next_snapshot,
            )

        return MissionOutcome(
            success=True,
            category=OutcomeCategory.STAMPED,
            title="스탬프 적립 완료",
            message=f"{progress.current_stamp_count}/{stamp_goal_count(mission)}개를 적립했어요.",
            activity=activity,
            progress=progress,
            snapshot=next_snapshot,
        )

    # 체류 미션 --------------------------------------------------------------

    async def start_stay_mission(self, board: Board, mission: Mission, coordinate: Coordinate | None) -> MissionOutcome:
        snapshot = await self.store.get(self.session_id)
        failure_title = "체류 시작 실패"
        try:
            self._require_type(mission, StayMission)
            location = self._require_near_board(coordinate, board)
            mission_id = self._require_mission_id(mission.id)
            if snapshot.has_activity(board.id, mission.id, "started"):
                raise MissionRefusal("이미 진행 중", "체류 미션이 이미 시작되어 있어요. 종료로 완료해주세요.")
            self._require_not_completed(snapshot, board, mission, "이 활동은 이미 보상을 받았습니다.")
        except MissionRefusal as refusal:
            return self._failure(snapshot, refusal.category, refusal.title, refusal.message)

        try:
            attempt = await self.client.checkin_stay_mission(mission_id, self.token)
        except MissionApiError as exc:
            return self._failure(snapshot, OutcomeCategory.TRANSPORT, failure_title, exc.message)

        if attempt.status not in (AttemptStatus.PENDING, AttemptStatus.SUCCESS):
            return self._failure(
                snapshot, OutcomeCategory.REJECTED, failure_title, attempt_failure_message(attempt, "체류 체크인에 실패했습니다.")
            )

        activity = map_attempt_to_activity(board, mission, attempt, now=self.clock(), coordinate=location)
        if activity is None:
            return self._failure(snapshot, OutcomeCategory.REJECTED, failure_title, "체류 체크인 응답을 처리하지 못했습니다.")

        next_snapshot = await self._fold_activity(activity)
        if activity.status == "completed":
            return MissionOutcome(
                success=True,
                category=OutcomeCategory.COMPLETED,
                title="미션 완료",
                message=f"{activity.reward_coins} 코인을 획득했어요.",
                activity=activity,
                snapshot=next_snapshot,
            )
        return MissionOutcome(
            success=True,
            category=OutcomeCategory.STARTED,
            title="체류 시작",
            message="종료 버튼을 눌러 GPS 검증을 완료하면 코인이 지급됩니다.",
            activity=activity,
            snapshot=next_snapshot,
        )

    async def _resolve_stay_target(
        self, snapshot: ParticipationSnapshot, activity_id: str
    ) -> tuple[ParticipatedActivity, Board, StayMission]:
        target = snapshot.find_activity(activity_id)
        if target is None:
            raise MissionRefusal("오류", "진행 중인 체류 미션을 찾지 못했습니다.")
        if target.status == "completed":
            raise MissionRefusal("이미 완료됨", "이미 보상을 받은 활동입니다.")

        try:
            board = await self.catalog.get_board(target.board_id)
        except MissionApiError as exc:
            raise MissionRefusal("체류 종료 실패", exc.message, OutcomeCategory.TRANSPORT) from exc
        if board is None:
            raise MissionRefusal("오류", "활동에 연결된 게시판 정보를 찾지 못했습니다.")

        mission = board.find_mission(target.mission_id)
        if not isinstance(mission, StayMission):
            raise MissionRefusal("오류", "체류 미션 정보를 찾지 못했습니다.")
        return target, board, mission

    async def complete_stay_mission(self, activity_id: str, coordinate: Coordinate | None) -> MissionOutcome:
        snapshot = await self.store.get(self.session_id)
        failure_title = "체류 종료 실패"
        try:
            target, board, mission = await self._resolve_stay_target(snapshot, activity_id)
            location = self._require_near_board(coordinate, board)
            mission_id = self._require_mission_id(target.mission_id)
        except MissionRefusal as refusal:
            return self._failure(snapshot, refusal.category, refusal.title, refusal.message)

        try:
            history = sort_attempts_by_latest(await self.client.list_my_attempts(mission_id, self.token))
        except MissionApiError as exc:
            return self._failure(snapshot, OutcomeCategory.TRANSPORT, failure_title, exc.message)

        now = self.clock()
        succeeded = next((a for a in history if a.status is AttemptStatus.SUCCESS), None)
        if succeeded is not None:
            completed = map_attempt_to_activity(board, mission, succeeded, now=now, coordinate=location)
            next_snapshot = await self._fold_activity(completed) if completed is not None else snapshot
            return MissionOutcome(
                success=False,
                category=OutcomeCategory.RECOVERED,
                title="이미 완료됨",
                message="이미 체류 미션 보상을 받은 상태입니다.",
                activity=completed,
                snapshot=next_snapshot,
            )

        pending = next((a for a in history if a.status is AttemptStatus.PENDING and a.checkin_at is not None), None)
        if pending is None:
            logger.info(f"원격에 진행 중 체류 기록이 없어 로컬 활동 정리: {target.id}")
            next_snapshot = await self.store.update(self.session_id, lambda s: remove_activity(s, target.id))
            return self._failure(
                next_snapshot,
                OutcomeCategory.RECOVERED,
                "체류 종료 불가",
                "진행 중인 체류 미션이 없습니다. 다시 시작해주세요.",
            )

        in_progress = map_attempt_to_activity(board, mission, pending, now=now, coordinate=target.start_coordinate)
        if in_progress is not None and in_progress != target:
            snapshot = await self._fold_activity(in_progress)

        required_minutes = max(target.required_minutes or mission.min_duration_minutes or 0, 0)
        if required_minutes > 0:
            elapsed = max(now - pending.checkin_at, timedelta(0))
            remaining = timedelta(minutes=required_minutes) - elapsed
            if remaining > timedelta(0):
                elapsed_minutes = int(elapsed.total_seconds() // 60)
                return self._failure(
                    snapshot,
                    OutcomeCategory.PRECONDITION,
                    "체류 시간 부족",
                    f"현재 {elapsed_minutes}분 체류했어요. 최소 {required_minutes}분이 필요합니다.\n"
                    f"약 {format_remaining_duration(remaining)} 후에 다시 시도해주세요.",
                )

        try:
            attempt = await self.client.checkout_stay_mission(mission_id, self.token)
        except MissionApiError as exc:
            return self._failure(snapshot, OutcomeCategory.TRANSPORT, failure_title, exc.message)

        if attempt.status is not AttemptStatus.SUCCESS:
            return self._failure(
                snapshot, OutcomeCategory.REJECTED, failure_title, attempt_failure_message(attempt, "체류 체크아웃에 실패했습니다.")
            )

        completed = map_attempt_to_activity(board, mission, attempt, now=now, coordinate=location)
        if completed is None:
            return self._failure(snapshot, OutcomeCategory.REJECTED, failure_title, "체류 체크아웃 응답을 처리하지 못했습니다.")

        next_snapshot = await self._fold_activity(completed)
        return MissionOutcome(
            success=True,
            category=OutcomeCategory.COMPLETED,
            title="미션 완료",
            message=f"{completed.reward_coins} 코인을 획득했어요.",
            activity=completed,
            snapshot=next_snapshot,
        )
