"""Daily meal recommendation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from nutricoach.api.dependencies import get_generator, get_store
from nutricoach.coaching.interfaces import CoachingStore, TextGenerator
from nutricoach.coaching.recommendation import RecommendationCache
from nutricoach.config.settings import settings

router = APIRouter(prefix="/recommendation", tags=["recommendation"])


def _cache(store: CoachingStore, generator: TextGenerator | None) -> RecommendationCache:
    return RecommendationCache(
        store,
        generator,
        offset_minutes=settings.timezone_offset_minutes,
        daily_limit=settings.recommendation_daily_limit,
        timeout_seconds=settings.generate_timeout_seconds,
    )


@router.get("")
async def get_recommendation(
    line_user_id: str = Query(..., min_length=1),
    refresh: bool = False,
    store: CoachingStore = Depends(get_store),
    generator: TextGenerator | None = Depends(get_generator),
):
    cache = _cache(store, generator)
    member = store.find_member_by_external_id(line_user_id)
    if member is None:
        return cache.fallback().as_dict()
    result = await cache.get(member.id, force_refresh=refresh)
    return result.as_dict()


@router.delete("")
def delete_recommendation(
    line_user_id: str = Query(..., min_length=1),
    store: CoachingStore = Depends(get_store),
):
    member = store.find_member_by_external_id(line_user_id)
    if member is not None:
        _cache(store, None).invalidate(member.id)
    return {"success": True}
