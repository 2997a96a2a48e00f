"""Member activity status lifecycle.

Onboarded members are ``active`` while they keep using the app and flip to
``inactive`` after ``SystemSetting.inactive_days_threshold`` days without a
qualifying action. Members who have not finished onboarding stay
``inactive``. Returning members flip back to ``active`` and see the
welcome-back notice once per inactive spell.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from nutricoach.coaching.eligibility import DayFacts, days_since_last_action
from nutricoach.coaching.errors import MemberNotFoundError
from nutricoach.coaching.interfaces import CoachingStore
from nutricoach.db.models import SystemSetting
from nutricoach.utils.clock import utcnow


@dataclass(frozen=True)
class ActivityTouch:
    member_id: str
    reactivated: bool
    show_welcome_back: bool


def touch_member_activity(store: CoachingStore, member_id: str, now: datetime | None = None) -> ActivityTouch:
    """Record that a member used the app.

    Raises:
        MemberNotFoundError: If the member does not exist
    """
    now = now or utcnow()
    member = store.find_member(member_id)
    if member is None:
        raise MemberNotFoundError(member_id)

    was_inactive = member.is_onboarded and member.activity_status == "inactive"
    show_welcome_back = was_inactive and not member.welcome_back_shown

    patch: dict = {"last_active_at": now}
    if was_inactive:
        patch["activity_status"] = "active"
        patch["inactive_since"] = None
        if show_welcome_back:
            patch["welcome_back_shown"] = True
    elif member.is_onboarded and member.welcome_back_shown:
        # Re-arm the notice for the next inactive spell
        patch["welcome_back_shown"] = False

    store.update_member(member_id, patch)
    if was_inactive:
        logger.info("Member reactivated", member_id=member_id, show_welcome_back=show_welcome_back)
    return ActivityTouch(member_id=member_id, reactivated=was_inactive, show_welcome_back=show_welcome_back)


@dataclass
class StatusSweepResult:
    checked: int = 0
    deactivated: list[str] = field(default_factory=list)
    failed: int = 0

    def as_dict(self) -> dict:
        return {"checked": self.checked, "deactivated": self.deactivated, "failed": self.failed}


def run_activity_status_sweep(
    store: CoachingStore,
    system_setting: SystemSetting,
    now: datetime | None = None,
) -> StatusSweepResult:
    """Flip active members to inactive once they pass the inactivity threshold."""
    now = now or utcnow()
    threshold = system_setting.inactive_days_threshold
    result = StatusSweepResult()

    for member in store.list_members_for_status_sweep():
        result.checked += 1
        try:
            idle_days = days_since_last_action(member, now, DayFacts(last_meal_at=store.last_meal_at(member.id)))
            if idle_days is None or idle_days < threshold:
                continue
            store.update_member(member.id, {"activity_status": "inactive", "inactive_since": now})
            result.deactivated.append(member.id)
        except Exception as e:
            result.failed += 1
            logger.warning(
                "Failed to update member activity status",
                member_id=member.id,
                error=str(e),
                error_type=type(e).__name__,
            )

    logger.info(
        "Activity status sweep finished",
        checked=result.checked,
        deactivated=len(result.deactivated),
        failed=result.failed,
        threshold_days=threshold,
    )
    return result
