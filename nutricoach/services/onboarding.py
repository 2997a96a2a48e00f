"""Onboarding completion: goals, targets and the AI-coach trial."""

from __future__ import annotations

from datetime import datetime

from loguru import logger
from pydantic import BaseModel, Field

from nutricoach.coaching.entitlement import grant_trial
from nutricoach.coaching.errors import MemberNotFoundError
from nutricoach.coaching.interfaces import CoachingStore
from nutricoach.db.models import Member, SystemSetting
from nutricoach.utils.clock import utcnow


class OnboardingInput(BaseModel):
    name: str | None = None
    goal_type: str = Field(default="maintain", pattern="^(lose|gain|maintain)$")
    weight: float | None = Field(default=None, gt=0)
    goal_weight: float | None = Field(default=None, gt=0)
    daily_calories: int | None = Field(default=None, gt=0)
    daily_protein: int | None = Field(default=None, ge=0)
    daily_carbs: int | None = Field(default=None, ge=0)
    daily_fat: int | None = Field(default=None, ge=0)
    daily_water: int | None = Field(default=None, gt=0)


def complete_onboarding(
    store: CoachingStore,
    member_id: str,
    data: OnboardingInput,
    system_setting: SystemSetting,
    now: datetime | None = None,
) -> Member:
    """Mark a member onboarded, store their goals and start the trial if configured.

    Raises:
        MemberNotFoundError: If the member does not exist
    """
    now = now or utcnow()
    member = store.find_member(member_id)
    if member is None:
        raise MemberNotFoundError(member_id)

    patch = data.model_dump(exclude_none=True)
    patch.update({"is_onboarded": True, "activity_status": "active", "inactive_since": None, "last_active_at": now})

    if not member.is_onboarded and grant_trial(member, system_setting, now):
        patch["member_type_id"] = member.member_type_id
        patch["ai_coach_expire_date"] = member.ai_coach_expire_date

    updated = store.update_member(member_id, patch)
    logger.info("Member onboarded", member_id=member_id, member_type_id=updated.member_type_id)
    return updated
