"""SQLAlchemy implementation of the coaching record store."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nutricoach.coaching.categories import NotificationCategory
from nutricoach.db.models import (
    AiRecommendation,
    AiUsageLog,
    ExerciseLog,
    MealLog,
    Member,
    MemberType,
    ScanLog,
    StockItem,
    SystemSetting,
    WaterLog,
    WeightLog,
)

SYSTEM_SETTINGS_ID = "system"

# Usage kinds backed by the explicit AiUsageLog ledger
LEDGER_KINDS = frozenset({"ai_analysis", "menu_select"})


class SqlCoachingStore:
    """Record store over a SQLAlchemy session.

    Writes commit immediately so that each member's update is durable on its
    own, independent of the rest of a batch pass.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_member(self, member_id: str) -> Member | None:
        return self.session.get(Member, member_id)

    def find_member_by_external_id(self, line_user_id: str) -> Member | None:
        return self.session.scalars(select(Member).where(Member.line_user_id == line_user_id)).one_or_none()

    def update_member(self, member_id: str, patch: dict[str, Any]) -> Member | None:
        member = self.session.get(Member, member_id)
        if member is None:
            return None
        for field, value in patch.items():
            if not hasattr(Member, field):
                raise AttributeError(f"Member has no field {field!r}")
            setattr(member, field, value)
        self.session.commit()
        if "member_type_id" in patch:
            self.session.expire(member, ["member_type"])
        return member

    def count_records_since(self, member_id: str, kind: str, since: datetime) -> int:
        """Count a member's records of one usage kind created at or after ``since``.

        Kinds without a counting rule count as zero.
        """
        if kind == "photo":
            stmt = select(func.count()).select_from(MealLog).where(
                MealLog.member_id == member_id, MealLog.source == "photo", MealLog.date >= since
            )
        elif kind == "ai_text_analysis":
            stmt = select(func.count()).select_from(MealLog).where(
                MealLog.member_id == member_id, MealLog.source == "text", MealLog.date >= since
            )
        elif kind == "exercise_analysis":
            stmt = select(func.count()).select_from(ExerciseLog).where(
                ExerciseLog.member_id == member_id, ExerciseLog.source == "ai", ExerciseLog.date >= since
            )
        elif kind == "scan":
            stmt = select(func.count()).select_from(ScanLog).where(
                ScanLog.member_id == member_id, ScanLog.created_at >= since
            )
        elif kind == "ai_recommend":
            row = self.find_recommendation(member_id)
            if row is None or row.date < since:
                return 0
            return row.request_count
        elif kind in LEDGER_KINDS:
            stmt = select(func.count()).select_from(AiUsageLog).where(
                AiUsageLog.member_id == member_id, AiUsageLog.usage_type == kind, AiUsageLog.created_at >= since
            )
        else:
            logger.debug("No counting rule for usage kind, treating as zero", kind=kind)
            return 0
        return int(self.session.scalar(stmt) or 0)

    def find_member_type(self, member_type_id: str) -> MemberType | None:
        return self.session.get(MemberType, member_type_id)

    def find_system_settings(self) -> SystemSetting:
        """Get the singleton settings row, creating it with defaults when absent."""
        row = self.session.get(SystemSetting, SYSTEM_SETTINGS_ID)
        if row is None:
            row = SystemSetting(id=SYSTEM_SETTINGS_ID)
            self.session.add(row)
            try:
                self.session.commit()
            except IntegrityError:
                # Another process created it first
                self.session.rollback()
                row = self.session.get(SystemSetting, SYSTEM_SETTINGS_ID)
            logger.info("Created default system settings")
        return row

    def list_candidate_members(self, category: NotificationCategory) -> Sequence[Member]:
        """Coarse pre-filter for a batch pass: enabled, active, with a member type."""
        stmt = (
            select(Member)
            .where(
                Member.is_active.is_(True),
                Member.activity_status == "active",
                Member.member_type_id.is_not(None),
            )
            .order_by(Member.created_at)
        )
        return self.session.scalars(stmt).unique().all()

    def list_members_for_trial_expiry(self, general_member_type_id: str) -> Sequence[Member]:
        stmt = select(Member).where(
            Member.ai_coach_expire_date.is_not(None),
            Member.member_type_id.is_not(None),
            Member.member_type_id != general_member_type_id,
        )
        return self.session.scalars(stmt).unique().all()

    def list_members_for_status_sweep(self) -> Sequence[Member]:
        stmt = select(Member).where(
            Member.is_active.is_(True),
            Member.is_onboarded.is_(True),
            Member.activity_status == "active",
        )
        return self.session.scalars(stmt).unique().all()

    def meals_between(self, member_id: str, start: datetime, end: datetime) -> Sequence[MealLog]:
        stmt = (
            select(MealLog)
            .where(MealLog.member_id == member_id, MealLog.date >= start, MealLog.date < end)
            .order_by(MealLog.date.desc())
        )
        return self.session.scalars(stmt).all()

    def last_meal_at(self, member_id: str) -> datetime | None:
        return self.session.scalar(select(func.max(MealLog.date)).where(MealLog.member_id == member_id))

    def water_total_since(self, member_id: str, since: datetime) -> int:
        total = self.session.scalar(
            select(func.sum(WaterLog.amount)).where(WaterLog.member_id == member_id, WaterLog.date >= since)
        )
        return int(total or 0)

    def latest_exercise_since(self, member_id: str, since: datetime) -> ExerciseLog | None:
        stmt = (
            select(ExerciseLog)
            .where(ExerciseLog.member_id == member_id, ExerciseLog.date >= since)
            .order_by(ExerciseLog.date.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def recent_weights(self, member_id: str, since: datetime, limit: int = 2) -> Sequence[WeightLog]:
        stmt = (
            select(WeightLog)
            .where(WeightLog.member_id == member_id, WeightLog.date >= since)
            .order_by(WeightLog.date.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def stock_items(self, member_id: str, limit: int = 10) -> Sequence[StockItem]:
        stmt = (
            select(StockItem)
            .where(StockItem.member_id == member_id)
            .order_by(StockItem.created_at.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def find_recommendation(self, member_id: str) -> AiRecommendation | None:
        return self.session.scalars(
            select(AiRecommendation).where(AiRecommendation.member_id == member_id)
        ).one_or_none()

    def upsert_recommendation(self, member_id: str, row: dict[str, Any]) -> AiRecommendation:
        """Insert or overwrite the member's cache row. Last writer wins."""
        existing = self.find_recommendation(member_id)
        if existing is None:
            existing = AiRecommendation(member_id=member_id, **row)
            self.session.add(existing)
            try:
                self.session.commit()
                return existing
            except IntegrityError:
                # A concurrent request inserted the row first; overwrite it
                self.session.rollback()
                existing = self.find_recommendation(member_id)
                if existing is None:
                    raise

        for field, value in row.items():
            setattr(existing, field, value)
        self.session.commit()
        return existing

    def delete_recommendation(self, member_id: str) -> int:
        result = self.session.execute(delete(AiRecommendation).where(AiRecommendation.member_id == member_id))
        self.session.commit()
        return result.rowcount or 0

    def add_record(self, record: Any) -> Any:
        self.session.add(record)
        self.session.commit()
        return record
