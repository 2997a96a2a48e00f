"""Tests for the per-member notification eligibility decision."""

from datetime import UTC, datetime, timedelta

import pytest

from nutricoach.coaching.categories import NotificationCategory
from nutricoach.coaching.eligibility import (
    ELIGIBLE,
    DayFacts,
    EligibilityConfig,
    SkipReason,
    evaluate_eligibility,
    expected_water_by_now,
)
from nutricoach.db.models import SystemSetting

NOW = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)  # 09:00 local
CONFIG = EligibilityConfig(offset_minutes=7 * 60, window_minutes=30)


def _decide(member, category, facts=None, system_setting=None, now=NOW):
    return evaluate_eligibility(member, category, now, CONFIG, system_setting=system_setting, facts=facts)


class TestGates:
    def test_ai_coach_disabled(self, make_member):
        decision = _decide(make_member(), NotificationCategory.MORNING, system_setting=SystemSetting(ai_coach_enabled=False))
        assert not decision.eligible
        assert decision.reason == SkipReason.AI_COACH_DISABLED

    def test_no_member_type(self, make_member):
        decision = _decide(make_member(member_type=None), NotificationCategory.MORNING)
        assert decision.reason == SkipReason.NO_MEMBER_TYPE

    def test_expired_entitlement(self, make_member, make_member_type):
        plan = make_member_type(course_duration=30)
        member = make_member(member_type=plan, ai_coach_expire_date=NOW - timedelta(days=3))
        assert _decide(member, NotificationCategory.MORNING).reason == SkipReason.ENTITLEMENT_EXPIRED

    def test_member_type_disabled(self, make_member, make_member_type):
        member = make_member(member_type=make_member_type(is_active=False))
        assert _decide(member, NotificationCategory.MORNING).reason == SkipReason.MEMBER_TYPE_DISABLED

    @pytest.mark.parametrize("category", list(NotificationCategory))
    def test_pause_short_circuits_every_category(self, make_member, make_member_type, category):
        plan = make_member_type(morning_time="09:00", lunch_time="09:00", dinner_time="09:00", evening_time="09:00")
        member = make_member(
            member_type=plan,
            notifications_paused_until=NOW + timedelta(days=1),
            created_at=NOW - timedelta(days=7),
        )
        decision = _decide(member, category)
        assert not decision.eligible
        assert decision.reason == SkipReason.NOTIFICATIONS_PAUSED

    def test_expired_pause_is_ignored(self, make_member):
        member = make_member(notifications_paused_until=NOW - timedelta(minutes=1))
        assert _decide(member, NotificationCategory.MORNING).eligible


class TestScheduleWindow:
    def test_inside_window(self, make_member, make_member_type):
        member = make_member(member_type=make_member_type(morning_time="08:45"))
        decision = _decide(member, NotificationCategory.MORNING)
        assert decision.eligible
        assert decision.reason == ELIGIBLE

    def test_outside_window(self, make_member, make_member_type):
        member = make_member(member_type=make_member_type(morning_time="07:00"))
        assert _decide(member, NotificationCategory.MORNING).reason == SkipReason.OUTSIDE_SCHEDULE_WINDOW

    def test_no_configured_time_is_not_time_restricted(self, make_member):
        assert _decide(make_member(), NotificationCategory.EVENING).eligible

    def test_preference_checked_after_window(self, make_member, make_member_type):
        member = make_member(member_type=make_member_type(morning_time="09:00"), notify_morning_coach=False)
        assert _decide(member, NotificationCategory.MORNING).reason == SkipReason.PREFERENCE_DISABLED


class TestMilestone:
    @pytest.mark.parametrize("days", [7, 14, 30])
    def test_anniversary_is_eligible(self, make_member, days):
        member = make_member(created_at=NOW - timedelta(days=days))
        assert _decide(member, NotificationCategory.MILESTONE).eligible

    def test_day_eight_is_not(self, make_member):
        member = make_member(created_at=NOW - timedelta(days=8))
        assert _decide(member, NotificationCategory.MILESTONE).reason == SkipReason.NOT_MILESTONE_DAY

    def test_has_no_preference_flag(self, make_member):
        member = make_member(created_at=NOW - timedelta(days=14), notify_weekly_insights=False)
        assert _decide(member, NotificationCategory.MILESTONE).eligible


class TestInactive:
    def test_already_inactive(self, make_member):
        member = make_member(activity_status="inactive")
        assert _decide(member, NotificationCategory.INACTIVE).reason == SkipReason.ALREADY_INACTIVE

    def test_recent_meal_is_recently_active(self, make_member):
        member = make_member()
        facts = DayFacts(last_meal_at=NOW - timedelta(hours=20))
        assert _decide(member, NotificationCategory.INACTIVE, facts).reason == SkipReason.RECENTLY_ACTIVE

    def test_idle_past_threshold(self, make_member):
        member = make_member(last_active_at=NOW - timedelta(days=5))
        facts = DayFacts(last_meal_at=NOW - timedelta(days=3))
        assert _decide(member, NotificationCategory.INACTIVE, facts).eligible

    def test_threshold_from_member_type(self, make_member, make_member_type):
        member = make_member(member_type=make_member_type(inactive_reminder_days=5))
        facts = DayFacts(last_meal_at=NOW - timedelta(days=3))
        assert _decide(member, NotificationCategory.INACTIVE, facts).reason == SkipReason.RECENTLY_ACTIVE


class TestCurrentState:
    def test_lunch_skipped_when_meal_logged(self, make_member):
        facts = DayFacts(meal_logged_in_range=True)
        assert _decide(make_member(), NotificationCategory.LUNCH, facts).reason == SkipReason.MEAL_ALREADY_LOGGED

    def test_lunch_without_facts_is_eligible(self, make_member):
        assert _decide(make_member(), NotificationCategory.LUNCH).eligible

    def test_water_on_track(self, make_member):
        # 09:00 local with an 8-glass target expects 1 glass
        assert expected_water_by_now(9, 8) == 1
        member = make_member(daily_water=8)
        assert _decide(member, NotificationCategory.WATER, DayFacts(water_current=1, water_target=8)).reason == (
            SkipReason.WATER_ON_TRACK
        )
        assert _decide(member, NotificationCategory.WATER, DayFacts(water_current=0, water_target=8)).eligible

    def test_weekly_only_on_seven_day_multiples(self, make_member):
        assert _decide(make_member(created_at=NOW - timedelta(days=14)), NotificationCategory.WEEKLY).eligible
        assert _decide(make_member(created_at=NOW - timedelta(days=10)), NotificationCategory.WEEKLY).reason == (
            SkipReason.NOT_WEEKLY_MILESTONE
        )

    def test_exercise_requires_exercise_today(self, make_member):
        member = make_member()
        assert _decide(member, NotificationCategory.EXERCISE, DayFacts(exercise_logged_today=False)).reason == (
            SkipReason.NO_EXERCISE_TODAY
        )
        assert _decide(member, NotificationCategory.EXERCISE, DayFacts(exercise_logged_today=True)).eligible


class TestDuplicateSends:
    def test_scheduled_category_sent_in_window(self, make_member):
        member = make_member(last_notified={"morning": (NOW - timedelta(minutes=20)).isoformat()})
        assert _decide(member, NotificationCategory.MORNING).reason == SkipReason.ALREADY_SENT_IN_WINDOW

    def test_scheduled_category_sent_yesterday(self, make_member):
        member = make_member(last_notified={"morning": (NOW - timedelta(days=1)).isoformat()})
        assert _decide(member, NotificationCategory.MORNING).eligible

    def test_daily_category_sent_today(self, make_member):
        member = make_member(
            created_at=NOW - timedelta(days=7),
            last_notified={"milestone": (NOW - timedelta(hours=1)).isoformat()},
        )
        assert _decide(member, NotificationCategory.MILESTONE).reason == SkipReason.ALREADY_SENT_TODAY

    def test_water_is_not_deduplicated(self, make_member):
        member = make_member(last_notified={"water": (NOW - timedelta(minutes=5)).isoformat()})
        assert _decide(member, NotificationCategory.WATER).eligible

    def test_garbage_timestamp_is_ignored(self, make_member):
        member = make_member(last_notified={"morning": "not-a-date"})
        assert _decide(member, NotificationCategory.MORNING).eligible
