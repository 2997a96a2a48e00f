"""Daily AI-feature quotas per member type.

Each quota kind maps to a ``daily_*_limit`` column on the member type and
to the usage kind counted by the record store. A ceiling of 0 means
unlimited. Usage is counted from the start of the local day.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from loguru import logger

from nutricoach.coaching.interfaces import CoachingStore
from nutricoach.db.models import AiUsageLog
from nutricoach.utils.clock import day_threshold, utcnow

DEFAULT_LIMIT = 3


class LimitKind(StrEnum):
    PHOTO = "daily_photo_limit"
    AI_ANALYSIS = "daily_ai_analysis_limit"
    AI_TEXT_ANALYSIS = "daily_ai_text_analysis_limit"
    AI_RECOMMEND = "daily_ai_recommend_limit"
    EXERCISE_ANALYSIS = "daily_exercise_analysis_limit"
    MENU_SELECT = "daily_menu_select_limit"
    SCAN = "daily_scan_limit"


USAGE_TYPES: dict[LimitKind, str] = {
    LimitKind.PHOTO: "photo",
    LimitKind.AI_ANALYSIS: "ai_analysis",
    LimitKind.AI_TEXT_ANALYSIS: "ai_text_analysis",
    LimitKind.AI_RECOMMEND: "ai_recommend",
    LimitKind.EXERCISE_ANALYSIS: "exercise_analysis",
    LimitKind.MENU_SELECT: "menu_select",
    LimitKind.SCAN: "scan",
}


@dataclass(frozen=True)
class UsageCheckResult:
    allowed: bool
    limit: int
    used: int
    remaining: float
    message: str | None = None

    @property
    def is_unlimited(self) -> bool:
        return math.isinf(self.remaining)

    def as_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "used": self.used,
            # JSON has no infinity
            "remaining": None if self.is_unlimited else int(self.remaining),
            "unlimited": self.is_unlimited,
            "message": self.message,
        }


def check_usage_limit(
    store: CoachingStore,
    member_id: str,
    kind: LimitKind | str,
    offset_minutes: int,
    now: datetime | None = None,
    default_limit: int = DEFAULT_LIMIT,
) -> UsageCheckResult:
    """Check whether a member may use a quota-limited feature again today.

    Args:
        store: Record store
        member_id: Member id
        kind: Quota kind
        offset_minutes: Product timezone offset in minutes
        now: Evaluation instant
        default_limit: Ceiling when the member has no member type

    Returns:
        UsageCheckResult. Fails open (allowed) if the lookup errors.
    """
    kind = LimitKind(kind)
    try:
        member = store.find_member(member_id)
        if member is None:
            return UsageCheckResult(allowed=False, limit=0, used=0, remaining=0, message="ไม่พบข้อมูลสมาชิก")

        limit = getattr(member.member_type, kind.value, None) if member.member_type else None
        if limit is None:
            limit = default_limit

        if limit == 0:
            return UsageCheckResult(allowed=True, limit=0, used=0, remaining=math.inf)

        since = day_threshold(offset_minutes, "start-of-today", now)
        used = store.count_records_since(member_id, USAGE_TYPES[kind], since)
        allowed = used < limit
        return UsageCheckResult(
            allowed=allowed,
            limit=limit,
            used=used,
            remaining=max(0, limit - used),
            message=None if allowed else f"ถึงขีดจำกัดการใช้งานวันนี้แล้ว ({limit} ครั้ง/วัน)",
        )
    except Exception as e:
        logger.warning(
            "Usage limit check failed, allowing request",
            member_id=member_id,
            kind=kind.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return UsageCheckResult(allowed=True, limit=0, used=0, remaining=math.inf)


def log_ai_usage(store: CoachingStore, member_id: str, kind: LimitKind | str, now: datetime | None = None) -> bool:
    """Append a usage ledger entry after a successful AI call.

    Returns:
        True if the entry was written
    """
    kind = LimitKind(kind)
    try:
        if store.find_member(member_id) is None:
            return False
        store.add_record(AiUsageLog(member_id=member_id, usage_type=USAGE_TYPES[kind], created_at=now or utcnow()))
        return True
    except Exception as e:
        logger.warning("Failed to log AI usage", member_id=member_id, kind=kind.value, error=str(e))
        return False


def get_all_usage_limits(
    store: CoachingStore,
    member_id: str,
    offset_minutes: int,
    now: datetime | None = None,
    default_limit: int = DEFAULT_LIMIT,
) -> dict[str, UsageCheckResult] | None:
    """Check every quota kind for a member. None when the member has no member type."""
    member = store.find_member(member_id)
    if member is None or member.member_type is None:
        return None
    return {
        kind.value: check_usage_limit(store, member_id, kind, offset_minutes, now=now, default_limit=default_limit)
        for kind in LimitKind
    }
