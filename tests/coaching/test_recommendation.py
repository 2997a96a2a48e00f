"""Tests for the daily recommendation cache."""

import random
from datetime import UTC, datetime, timedelta

import pytest

from nutricoach.coaching.recommendation import (
    FALLBACK_RECOMMENDATIONS,
    RecommendationCache,
    RecommendationContext,
    _background_tasks,
    build_recommendation_prompt,
    invalidate_in_background,
)
from nutricoach.db.models import MealLog, StockItem

BANGKOK = 7 * 60
NOW = datetime(2026, 3, 10, 5, 0, tzinfo=UTC)  # 12:00 local


@pytest.fixture
def cache(store, generator) -> RecommendationCache:
    return RecommendationCache(store, generator, offset_minutes=BANGKOK, daily_limit=3, rng=random.Random(1))


class TestGet:
    @pytest.mark.asyncio
    async def test_second_call_same_day_is_cached(self, cache, make_member):
        member = make_member()

        first = await cache.get(member.id, now=NOW)
        second = await cache.get(member.id, now=NOW + timedelta(hours=2))

        assert not first.cached
        assert second.cached
        assert second.message == first.message

    @pytest.mark.asyncio
    async def test_invalidate_forces_regeneration(self, cache, make_member, generator):
        member = make_member()
        first = await cache.get(member.id, now=NOW)

        assert cache.invalidate(member.id)
        after = await cache.get(member.id, now=NOW + timedelta(minutes=5))

        assert not after.cached
        assert after.message != first.message
        assert len(generator.calls) == 2

    @pytest.mark.asyncio
    async def test_row_from_yesterday_is_regenerated(self, cache, store, make_member):
        member = make_member()
        await cache.get(member.id, now=NOW - timedelta(days=1))

        result = await cache.get(member.id, now=NOW)

        assert not result.cached
        assert store.find_recommendation(member.id).request_count == 1

    @pytest.mark.asyncio
    async def test_force_refresh_counts_and_caps(self, cache, store, make_member, generator):
        member = make_member()
        await cache.get(member.id, now=NOW)
        await cache.get(member.id, force_refresh=True, now=NOW)
        third = await cache.get(member.id, force_refresh=True, now=NOW)
        assert store.find_recommendation(member.id).request_count == 3

        limited = await cache.get(member.id, force_refresh=True, now=NOW)

        assert limited.rate_limited
        assert limited.cached
        assert limited.message == third.message
        assert len(generator.calls) == 3

    @pytest.mark.asyncio
    async def test_generation_failure_returns_fallback(self, cache, store, make_member, generator):
        member = make_member()
        generator.error = TimeoutError()

        result = await cache.get(member.id, now=NOW)

        assert result.message in FALLBACK_RECOMMENDATIONS
        assert not result.cached
        assert store.find_recommendation(member.id) is None

    @pytest.mark.asyncio
    async def test_store_failure_never_raises(self, make_member, generator):
        class BrokenStore:
            def find_member(self, member_id):
                raise RuntimeError("db down")

        cache = RecommendationCache(BrokenStore(), generator, offset_minutes=BANGKOK)
        result = await cache.get("m1", now=NOW)
        assert result.message in FALLBACK_RECOMMENDATIONS

    @pytest.mark.asyncio
    async def test_unknown_member_gets_fallback(self, cache):
        result = await cache.get("missing", now=NOW)
        assert result.message in FALLBACK_RECOMMENDATIONS

    @pytest.mark.asyncio
    async def test_context_passed_to_generator(self, cache, store, make_member, generator):
        member = make_member(daily_calories=1800, goal_type="lose")
        store.add_record(MealLog(member_id=member.id, name="Jok", calories=350, protein=15, date=NOW - timedelta(hours=4)))
        store.add_record(StockItem(member_id=member.id, food_name="Salmon bowl", calories=480, protein=35))

        await cache.get(member.id, now=NOW)

        category, context = generator.calls[0]
        assert category == "recommendation"
        assert isinstance(context, RecommendationContext)
        assert context.remaining_calories == 1450
        assert context.meals_eaten == ["Jok"]
        assert context.stock_items == ["Salmon bowl"]
        assert context.current_hour == 12
        assert "Salmon bowl" in build_recommendation_prompt(context)


class TestInvalidateInBackground:
    def test_runs_inline_without_event_loop(self, store, make_member):
        member = make_member()
        store.upsert_recommendation(member.id, {"message": "Eat well", "date": NOW, "request_count": 1})

        assert invalidate_in_background(store, member.id) is None
        assert store.find_recommendation(member.id) is None

    @pytest.mark.asyncio
    async def test_schedules_task_inside_event_loop(self, store, make_member):
        member = make_member()
        store.upsert_recommendation(member.id, {"message": "Eat well", "date": NOW, "request_count": 1})

        task = invalidate_in_background(store, member.id)
        assert task in _background_tasks
        await task
        assert task not in _background_tasks

        assert store.find_recommendation(member.id) is None
