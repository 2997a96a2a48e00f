"""Member type administration.

At most one member type is the default. Saving a type with
``is_default=True`` clears the flag on every other type in the same
transaction.
"""

from __future__ import annotations

from loguru import logger
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from nutricoach.coaching.errors import MemberTypeNotFoundError
from nutricoach.db.models import MemberType
from nutricoach.utils.clock import parse_hhmm


class MemberTypeInput(BaseModel):
    name: str = Field(min_length=1)
    order: int = 0
    is_active: bool = True
    is_default: bool = False
    course_duration: int = Field(default=0, ge=0, description="Days of AI coaching, 0 = unlimited")

    daily_photo_limit: int = Field(default=3, ge=0)
    daily_ai_analysis_limit: int = Field(default=3, ge=0)
    daily_ai_text_analysis_limit: int = Field(default=3, ge=0)
    daily_ai_recommend_limit: int = Field(default=3, ge=0)
    daily_exercise_analysis_limit: int = Field(default=3, ge=0)
    daily_menu_select_limit: int = Field(default=3, ge=0)
    daily_scan_limit: int = Field(default=3, ge=0)

    morning_time: str | None = None
    lunch_time: str | None = None
    dinner_time: str | None = None
    evening_time: str | None = None
    inactive_reminder_days: int = Field(default=2, ge=1)

    @field_validator("morning_time", "lunch_time", "dinner_time", "evening_time")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        """Normalize to zero-padded HH:MM; blank means not scheduled."""
        if value is None or not value.strip():
            return None
        minutes = parse_hhmm(value)
        if minutes is None:
            raise ValueError(f"Invalid time {value!r}, expected HH:MM")
        return f"{minutes // 60:02d}:{minutes % 60:02d}"


def save_member_type(session: Session, data: MemberTypeInput, member_type_id: str | None = None) -> MemberType:
    """Create a member type, or update one when ``member_type_id`` is given.

    Raises:
        MemberTypeNotFoundError: If updating an id that does not exist
    """
    if member_type_id is None:
        member_type = MemberType()
        session.add(member_type)
    else:
        member_type = session.get(MemberType, member_type_id)
        if member_type is None:
            raise MemberTypeNotFoundError(member_type_id)

    for field, value in data.model_dump().items():
        setattr(member_type, field, value)
    session.flush()

    if data.is_default:
        session.execute(
            update(MemberType).where(MemberType.id != member_type.id, MemberType.is_default.is_(True)).values(is_default=False)
        )

    session.commit()
    logger.info(
        "Saved member type",
        member_type_id=member_type.id,
        name=member_type.name,
        is_default=member_type.is_default,
        created=member_type_id is None,
    )
    return member_type


def get_default_member_type(session: Session) -> MemberType | None:
    stmt = (
        select(MemberType)
        .where(MemberType.is_default.is_(True), MemberType.is_active.is_(True))
        .order_by(MemberType.order)
        .limit(1)
    )
    return session.scalars(stmt).first()
