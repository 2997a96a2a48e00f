"""Per-member, per-category "should we message them now" decision.

Checks run in a fixed order and the first failing one is reported as the
skip reason:

1. AI coach master switch, entitlement and member-type enable flag
2. Pause window
3. Schedule time window (morning/lunch/dinner/evening)
4. Member preference flag
5. Milestone anniversary (milestone only)
6. Inactivity threshold (inactive only)
7. Current-state checks when day facts are supplied (lunch/dinner/water/exercise),
   weekly cadence (weekly/photo)
8. Already messaged for this category in the current window/day

Missing optional data never raises: it makes the related check not apply.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from nutricoach.coaching.categories import (
    DAILY_CATEGORIES,
    MILESTONE_DAYS,
    PREFERENCE_FIELDS,
    SCHEDULE_TIME_FIELDS,
    SCHEDULED_CATEGORIES,
    NotificationCategory,
)
from nutricoach.coaching.entitlement import EntitlementStatus, resolve_member_entitlement
from nutricoach.db.models import Member, SystemSetting
from nutricoach.utils.clock import (
    DEFAULT_WINDOW_MINUTES,
    calendar_days_between,
    ensure_utc,
    format_hhmm,
    local_date,
    matches_window,
    now_in_zone,
)

DEFAULT_INACTIVE_REMINDER_DAYS = 2
DEFAULT_WATER_GLASSES = 8
WATER_DAY_START_HOUR = 7
WATER_ACTIVE_HOURS = 14


class SkipReason(StrEnum):
    AI_COACH_DISABLED = "ai_coach_disabled"
    NO_MEMBER_TYPE = "no_member_type"
    ENTITLEMENT_EXPIRED = "entitlement_expired"
    MEMBER_TYPE_DISABLED = "member_type_disabled"
    NOTIFICATIONS_PAUSED = "notifications_paused"
    OUTSIDE_SCHEDULE_WINDOW = "outside_schedule_window"
    PREFERENCE_DISABLED = "preference_disabled"
    NOT_MILESTONE_DAY = "not_milestone_day"
    ALREADY_INACTIVE = "already_inactive"
    RECENTLY_ACTIVE = "recently_active"
    MEAL_ALREADY_LOGGED = "meal_already_logged"
    WATER_ON_TRACK = "water_on_track"
    NO_EXERCISE_TODAY = "no_exercise_today"
    NOT_WEEKLY_MILESTONE = "not_weekly_milestone"
    ALREADY_SENT_IN_WINDOW = "already_sent_in_window"
    ALREADY_SENT_TODAY = "already_sent_today"


ELIGIBLE = "eligible"


@dataclass(frozen=True)
class EligibilityDecision:
    eligible: bool
    reason: str

    @classmethod
    def send(cls) -> EligibilityDecision:
        return cls(True, ELIGIBLE)

    @classmethod
    def skip(cls, reason: SkipReason) -> EligibilityDecision:
        return cls(False, reason.value)


@dataclass(frozen=True)
class DayFacts:
    """Current-state facts about the member's day, all optional."""

    last_meal_at: datetime | None = None
    meal_logged_in_range: bool | None = None
    water_current: int | None = None
    water_target: int | None = None
    exercise_logged_today: bool | None = None


@dataclass(frozen=True)
class EligibilityConfig:
    offset_minutes: int
    window_minutes: int = DEFAULT_WINDOW_MINUTES


def days_since_last_action(member: Member, now: datetime, facts: DayFacts | None = None) -> int | None:
    """Whole days since the member's last qualifying action.

    Uses the last meal log, then ``last_active_at``, then ``created_at``.
    """
    last = facts.last_meal_at if facts is not None and facts.last_meal_at is not None else None
    if last is None:
        last = member.last_active_at or member.created_at
    if last is None:
        return None
    return int((ensure_utc(now) - ensure_utc(last)) / timedelta(days=1))


def expected_water_by_now(local_hour: int, target: int) -> int:
    """Glasses the member should have had by this hour, spread over 07:00-21:00."""
    active_hours = max(0, min(WATER_ACTIVE_HOURS, local_hour - WATER_DAY_START_HOUR))
    return int(active_hours / WATER_ACTIVE_HOURS * target)


def _already_notified(
    member: Member,
    category: NotificationCategory,
    now: datetime,
    config: EligibilityConfig,
) -> SkipReason | None:
    raw = (member.last_notified or {}).get(category.value)
    if not raw:
        return None
    try:
        last_sent = ensure_utc(datetime.fromisoformat(raw))
    except (TypeError, ValueError):
        return None

    if category in SCHEDULED_CATEGORIES:
        # Twice the window covers every tick that could match the same schedule time
        if ensure_utc(now) - last_sent <= timedelta(minutes=2 * config.window_minutes):
            return SkipReason.ALREADY_SENT_IN_WINDOW
    elif category in DAILY_CATEGORIES:
        if local_date(config.offset_minutes, last_sent) == local_date(config.offset_minutes, now):
            return SkipReason.ALREADY_SENT_TODAY
    return None


def evaluate_eligibility(
    member: Member,
    category: NotificationCategory,
    now: datetime,
    config: EligibilityConfig,
    system_setting: SystemSetting | None = None,
    facts: DayFacts | None = None,
) -> EligibilityDecision:
    """Decide whether ``member`` should get a ``category`` message at ``now``.

    Args:
        member: Member with its member type loaded
        category: Notification category
        now: Current instant
        config: Timezone offset and schedule window
        system_setting: Process-wide settings; None means defaults
        facts: Optional current-state facts for the member's day

    Returns:
        EligibilityDecision with eligible flag and machine-readable reason
    """
    if system_setting is not None and not system_setting.ai_coach_enabled:
        return EligibilityDecision.skip(SkipReason.AI_COACH_DISABLED)

    entitlement = resolve_member_entitlement(member, now, config.offset_minutes)
    if entitlement.status == EntitlementStatus.NOT_ASSIGNED:
        return EligibilityDecision.skip(SkipReason.NO_MEMBER_TYPE)
    if entitlement.status == EntitlementStatus.EXPIRED:
        return EligibilityDecision.skip(SkipReason.ENTITLEMENT_EXPIRED)

    member_type = member.member_type
    if member_type is not None and not member_type.is_active:
        return EligibilityDecision.skip(SkipReason.MEMBER_TYPE_DISABLED)

    paused_until = member.notifications_paused_until
    if paused_until is not None and ensure_utc(paused_until) > ensure_utc(now):
        return EligibilityDecision.skip(SkipReason.NOTIFICATIONS_PAUSED)

    local_now = now_in_zone(config.offset_minutes, now)

    if category in SCHEDULED_CATEGORIES and member_type is not None:
        scheduled = getattr(member_type, SCHEDULE_TIME_FIELDS[category], None)
        # No configured time: not restricted by time of day
        if scheduled and not matches_window(scheduled, format_hhmm(local_now), config.window_minutes):
            return EligibilityDecision.skip(SkipReason.OUTSIDE_SCHEDULE_WINDOW)

    preference_field = PREFERENCE_FIELDS.get(category)
    if preference_field is not None and not getattr(member, preference_field, True):
        return EligibilityDecision.skip(SkipReason.PREFERENCE_DISABLED)

    if category == NotificationCategory.MILESTONE:
        days = calendar_days_between(config.offset_minutes, member.created_at, now)
        if days not in MILESTONE_DAYS:
            return EligibilityDecision.skip(SkipReason.NOT_MILESTONE_DAY)

    if category == NotificationCategory.INACTIVE:
        if member.activity_status == "inactive":
            return EligibilityDecision.skip(SkipReason.ALREADY_INACTIVE)
        threshold = (member_type.inactive_reminder_days if member_type else None) or DEFAULT_INACTIVE_REMINDER_DAYS
        idle_days = days_since_last_action(member, now, facts)
        if idle_days is None or idle_days < threshold:
            return EligibilityDecision.skip(SkipReason.RECENTLY_ACTIVE)

    if category in (NotificationCategory.WEEKLY, NotificationCategory.PHOTO):
        days = calendar_days_between(config.offset_minutes, member.created_at, now)
        if days < 7 or days % 7 != 0:
            return EligibilityDecision.skip(SkipReason.NOT_WEEKLY_MILESTONE)

    if facts is not None:
        if (
            category in (NotificationCategory.LUNCH, NotificationCategory.DINNER)
            and facts.meal_logged_in_range
        ):
            return EligibilityDecision.skip(SkipReason.MEAL_ALREADY_LOGGED)

        if category == NotificationCategory.WATER and facts.water_current is not None:
            target = facts.water_target or member.daily_water or DEFAULT_WATER_GLASSES
            if facts.water_current >= expected_water_by_now(local_now.hour, target):
                return EligibilityDecision.skip(SkipReason.WATER_ON_TRACK)

        if category == NotificationCategory.EXERCISE and facts.exercise_logged_today is False:
            return EligibilityDecision.skip(SkipReason.NO_EXERCISE_TODAY)

    duplicate = _already_notified(member, category, now, config)
    if duplicate is not None:
        return EligibilityDecision.skip(duplicate)

    return EligibilityDecision.send()
