from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime column that always hands back timezone-aware UTC values.

    SQLite drops tzinfo on round-trip; PostgreSQL returns the session zone.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class MemberType(Base):
    """Plan/tier template shared by many members.

    Quotas are per day; 0 means unlimited. ``course_duration`` is in days,
    0 means the AI coach never expires for members of this type. Schedule
    times are "HH:MM" strings in the product timezone; a missing time means
    the category is not restricted by time of day.
    """

    __tablename__ = "member_types"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String, nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    course_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    daily_photo_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    daily_ai_analysis_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    daily_ai_text_analysis_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    daily_ai_recommend_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    daily_exercise_analysis_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    daily_menu_select_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    daily_scan_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    morning_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    lunch_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    dinner_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    evening_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    inactive_reminder_days: Mapped[int] = mapped_column(Integer, nullable=False, default=2)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)


class Member(Base):
    """A LINE user's profile plus coaching state.

    ``activity_status`` starts as "inactive" until onboarding completes,
    flips to "inactive" after a stretch without meal logs, and back to
    "active" on the next qualifying action.
    """

    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    line_user_id: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_onboarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    activity_status: Mapped[str] = mapped_column(String, nullable=False, default="inactive")
    inactive_since: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    welcome_back_shown: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    last_active_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    member_type_id: Mapped[str | None] = mapped_column(ForeignKey("member_types.id"), nullable=True, index=True)
    ai_coach_expire_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    notify_morning_coach: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_lunch_suggestion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_dinner_suggestion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_evening_summary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_weekly_insights: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_water_reminder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_progress_photo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_post_exercise: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notifications_paused_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # category -> ISO timestamp of the last successful push
    last_notified: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    goal_type: Mapped[str | None] = mapped_column(String, nullable=True)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    goal_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    daily_calories: Mapped[int | None] = mapped_column(Integer, nullable=True)
    daily_protein: Mapped[int | None] = mapped_column(Integer, nullable=True)
    daily_carbs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    daily_fat: Mapped[int | None] = mapped_column(Integer, nullable=True)
    daily_water: Mapped[int | None] = mapped_column(Integer, nullable=True)

    member_type: Mapped[MemberType | None] = relationship(MemberType, lazy="joined")

    __table_args__ = (
        Index("idx_members_status", "is_active", "activity_status"),
    )


class SystemSetting(Base):
    """Process-wide coaching settings. Single row with id "system"."""

    __tablename__ = "system_settings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default="system")
    ai_coach_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    trial_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    trial_member_type_id: Mapped[str | None] = mapped_column(ForeignKey("member_types.id"), nullable=True)
    general_member_type_id: Mapped[str | None] = mapped_column(ForeignKey("member_types.id"), nullable=True)
    inactive_days_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    grace_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=2)


class AiRecommendation(Base):
    """Cached daily recommendation text. At most one row per member."""

    __tablename__ = "ai_recommendations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False, unique=True, index=True)
    date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class MealLog(Base):
    """Logged meal. ``source`` tells how it was recorded (manual|photo|text|barcode)."""

    __tablename__ = "meal_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    calories: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    protein: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    carbs: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    fat: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now, index=True)


class ExerciseLog(Base):
    __tablename__ = "exercise_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    calories: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now, index=True)


class WaterLog(Base):
    __tablename__ = "water_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now, index=True)


class WeightLog(Base):
    __tablename__ = "weight_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    note: Mapped[str | None] = mapped_column(String, nullable=True)
    date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now, index=True)


class ScanLog(Base):
    """Barcode scan history."""

    __tablename__ = "scan_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    barcode: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now, index=True)


class StockItem(Base):
    """Food the member has on hand from confirmed orders."""

    __tablename__ = "stock_items"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    food_name: Mapped[str] = mapped_column(String, nullable=False)
    calories: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    protein: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now, index=True)


class AiUsageLog(Base):
    """Ledger for AI actions that leave no domain record of their own."""

    __tablename__ = "ai_usage_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    usage_type: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now, index=True)

    __table_args__ = (
        Index("idx_ai_usage_member_type_created", "member_id", "usage_type", "created_at"),
    )
