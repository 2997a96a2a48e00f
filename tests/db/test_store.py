"""Tests for the SQLAlchemy record store."""

from datetime import UTC, datetime, timedelta

import pytest

from nutricoach.coaching.categories import NotificationCategory
from nutricoach.db.models import SystemSetting, WaterLog

NOW = datetime(2026, 3, 10, 5, 0, tzinfo=UTC)


def test_system_settings_created_once(store, db_session):
    first = store.find_system_settings()
    second = store.find_system_settings()

    assert first.id == second.id == "system"
    assert first.ai_coach_enabled
    assert db_session.query(SystemSetting).count() == 1


def test_upsert_recommendation_overwrites_single_row(store, make_member):
    member = make_member()

    store.upsert_recommendation(member.id, {"message": "first", "date": NOW, "request_count": 1})
    store.upsert_recommendation(member.id, {"message": "second", "date": NOW, "request_count": 2})

    row = store.find_recommendation(member.id)
    assert row.message == "second"
    assert row.request_count == 2
    assert row.date == NOW
    assert row.date.tzinfo is not None


def test_delete_recommendation_reports_count(store, make_member):
    member = make_member()
    store.upsert_recommendation(member.id, {"message": "x", "date": NOW, "request_count": 1})

    assert store.delete_recommendation(member.id) == 1
    assert store.delete_recommendation(member.id) == 0


def test_update_member_rejects_unknown_field(store, make_member):
    member = make_member()
    with pytest.raises(AttributeError):
        store.update_member(member.id, {"favourite_colour": "green"})
    assert store.update_member("missing", {"display_name": "x"}) is None


def test_update_member_type_refreshes_relationship(store, make_member, make_member_type):
    member = make_member()
    general = make_member_type(name="General")

    updated = store.update_member(member.id, {"member_type_id": general.id})

    assert updated.member_type.name == "General"


def test_candidate_prefilter(store, make_member):
    eligible = make_member()
    make_member(is_active=False)
    make_member(activity_status="inactive")
    make_member(member_type=None)

    candidates = store.list_candidate_members(NotificationCategory.MORNING)

    assert [m.id for m in candidates] == [eligible.id]


def test_unknown_usage_kind_counts_zero(store, make_member):
    member = make_member()
    assert store.count_records_since(member.id, "telepathy", NOW - timedelta(days=1)) == 0


def test_water_total_and_last_meal(store, make_member):
    member = make_member()
    store.add_record(WaterLog(member_id=member.id, amount=500, date=NOW - timedelta(hours=1)))
    store.add_record(WaterLog(member_id=member.id, amount=250, date=NOW))
    store.add_record(WaterLog(member_id=member.id, amount=999, date=NOW - timedelta(days=2)))

    assert store.water_total_since(member.id, NOW - timedelta(hours=3)) == 750
    assert store.last_meal_at(member.id) is None
