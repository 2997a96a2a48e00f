"""AI-coach entitlement resolution and the trial lifecycle.

A member's entitlement depends only on their member type and expiry date:

- no member type                      -> not_assigned
- member type with course_duration 0  -> unlimited
- no expiry date, or expiry before the start of today (local zone) -> expired
- otherwise                           -> active, with days remaining

Comparing against the start of the local day rather than "now" keeps a
member entitled for the whole calendar day their expiry falls on.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

from loguru import logger

from nutricoach.coaching.interfaces import CoachingStore
from nutricoach.db.models import Member, MemberType, SystemSetting
from nutricoach.utils.clock import day_threshold, ensure_utc


class EntitlementStatus(StrEnum):
    NOT_ASSIGNED = "not_assigned"
    UNLIMITED = "unlimited"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Entitlement:
    status: EntitlementStatus
    days_remaining: int | None = None

    @property
    def is_entitled(self) -> bool:
        return self.status in (EntitlementStatus.UNLIMITED, EntitlementStatus.ACTIVE)

    @property
    def is_unlimited(self) -> bool:
        return self.status == EntitlementStatus.UNLIMITED


def resolve_entitlement(
    member_type: MemberType | None,
    expire_date: datetime | None,
    now: datetime,
    offset_minutes: int,
) -> Entitlement:
    """Classify a member's AI-coach entitlement.

    Args:
        member_type: The member's type, or None if unassigned
        expire_date: AI-coach expiry instant, or None
        now: Current instant
        offset_minutes: Product timezone offset from UTC in minutes

    Returns:
        Entitlement with status and, when active, whole days remaining
    """
    if member_type is None:
        return Entitlement(EntitlementStatus.NOT_ASSIGNED)

    if member_type.course_duration == 0:
        return Entitlement(EntitlementStatus.UNLIMITED)

    if expire_date is None:
        return Entitlement(EntitlementStatus.EXPIRED)

    expire_date = ensure_utc(expire_date)
    now = ensure_utc(now)
    if expire_date < day_threshold(offset_minutes, "start-of-today", now):
        return Entitlement(EntitlementStatus.EXPIRED)

    remaining = (expire_date - now) / timedelta(days=1)
    # 0 once the expiry instant has passed but the local day has not
    days_remaining = max(0, math.ceil(remaining))
    return Entitlement(EntitlementStatus.ACTIVE, days_remaining)


def resolve_member_entitlement(member: Member, now: datetime, offset_minutes: int) -> Entitlement:
    return resolve_entitlement(member.member_type, member.ai_coach_expire_date, now, offset_minutes)


def grant_trial(member: Member, system_setting: SystemSetting, now: datetime) -> bool:
    """Put a member on the configured trial plan.

    Does nothing unless trials are configured (positive trial length and a
    trial member type).

    Returns:
        True if the trial was applied
    """
    if not system_setting.trial_days or system_setting.trial_days <= 0:
        return False
    if not system_setting.trial_member_type_id:
        return False

    member.member_type_id = system_setting.trial_member_type_id
    member.ai_coach_expire_date = ensure_utc(now) + timedelta(days=system_setting.trial_days)
    logger.info(
        "Granted AI coach trial",
        member_id=member.id,
        trial_days=system_setting.trial_days,
        expires_at=member.ai_coach_expire_date.isoformat(),
    )
    return True


@dataclass
class TrialExpiryResult:
    success: bool
    updated: list[dict] = field(default_factory=list)
    skipped: bool = False
    reason: str | None = None

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "updated": self.updated,
            "skipped": self.skipped,
            "reason": self.reason,
        }


def run_trial_expiry_sweep(
    store: CoachingStore,
    system_setting: SystemSetting,
    now: datetime,
    offset_minutes: int,
) -> TrialExpiryResult:
    """Move members whose trial/subscription lapsed onto the general member type.

    Re-running is a no-op for members already on the general type since
    they are excluded by the candidate query.
    """
    general_id = system_setting.general_member_type_id
    if not general_id:
        logger.info("Trial expiry sweep skipped: no general member type configured")
        return TrialExpiryResult(success=True, skipped=True, reason="general_member_type_not_configured")

    result = TrialExpiryResult(success=True)
    for member in store.list_members_for_trial_expiry(general_id):
        if member.member_type_id == general_id:
            continue
        entitlement = resolve_member_entitlement(member, now, offset_minutes)
        if entitlement.status != EntitlementStatus.EXPIRED:
            continue
        try:
            expired_at = member.ai_coach_expire_date
            store.update_member(member.id, {"member_type_id": general_id, "ai_coach_expire_date": None})
            result.updated.append(
                {
                    "id": member.id,
                    "name": member.display_name,
                    "expired_at": expired_at.isoformat() if expired_at else None,
                }
            )
        except Exception as e:
            logger.warning(
                "Failed to move expired member to general type",
                member_id=member.id,
                error=str(e),
                error_type=type(e).__name__,
            )

    logger.info("Trial expiry sweep finished", updated=len(result.updated), general_member_type_id=general_id)
    return result
