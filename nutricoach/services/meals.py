"""Meal logging with its side effects on activity and the recommendation cache."""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from nutricoach.coaching.errors import MemberNotFoundError
from nutricoach.coaching.interfaces import CoachingStore
from nutricoach.coaching.recommendation import invalidate_in_background
from nutricoach.db.models import MealLog
from nutricoach.services.activity import touch_member_activity
from nutricoach.utils.clock import utcnow

MEAL_SOURCES = ("manual", "photo", "text", "barcode")


def log_meal(
    store: CoachingStore,
    member_id: str,
    name: str,
    calories: float = 0.0,
    protein: float = 0.0,
    carbs: float = 0.0,
    fat: float = 0.0,
    source: str = "manual",
    eaten_at: datetime | None = None,
    now: datetime | None = None,
) -> MealLog:
    """Persist a meal for a member.

    Logging a meal counts as activity and always starts invalidation of the
    member's cached recommendation. The invalidation runs as a background
    task when called from an event loop, inline otherwise. Callers holding a
    request-scoped session should call from a thread with no running loop
    so the session is not used after the request closes it.

    Raises:
        MemberNotFoundError: If the member does not exist
        ValueError: If ``source`` is not a known meal source
    """
    if source not in MEAL_SOURCES:
        raise ValueError(f"Unknown meal source {source!r}, expected one of {MEAL_SOURCES}")
    now = now or utcnow()
    if store.find_member(member_id) is None:
        raise MemberNotFoundError(member_id)

    meal = MealLog(
        member_id=member_id,
        name=name,
        source=source,
        calories=calories,
        protein=protein,
        carbs=carbs,
        fat=fat,
        date=eaten_at or now,
    )
    try:
        store.add_record(meal)
        touch_member_activity(store, member_id, now)
    finally:
        invalidate_in_background(store, member_id)

    logger.info("Meal logged", member_id=member_id, source=source, calories=round(calories))
    return meal
