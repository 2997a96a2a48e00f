"""Snapshot of a member's day used for message generation and eligibility facts."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from nutricoach.coaching.categories import MEAL_HOUR_RANGES, NotificationCategory
from nutricoach.coaching.eligibility import DEFAULT_WATER_GLASSES, DayFacts
from nutricoach.coaching.entitlement import resolve_member_entitlement
from nutricoach.coaching.interfaces import CoachingStore
from nutricoach.db.models import MealLog, Member
from nutricoach.utils.clock import day_threshold, local_date, local_range, now_in_zone

DEFAULT_NAME = "คุณลูกค้า"
DEFAULT_TARGETS = {"calories": 2000, "protein": 100, "carbs": 250, "fat": 65}
STREAK_LOOKBACK_DAYS = 30
WEIGHT_LOOKBACK_DAYS = 7


class Macros(BaseModel):
    calories: int = 0
    protein: int = 0
    carbs: int = 0
    fat: int = 0
    meal_count: int = 0


class Goal(BaseModel):
    type: str = "maintain"
    current_weight: float | None = None
    target_weight: float | None = None


class AiCoachState(BaseModel):
    is_active: bool
    is_unlimited: bool
    days_remaining: int | None = None
    expire_date: datetime | None = None


class StockEntry(BaseModel):
    name: str
    calories: int = 0
    protein: int = 0


class ExerciseEntry(BaseModel):
    name: str
    calories: int = 0


class Water(BaseModel):
    current: int = 0
    target: int = DEFAULT_WATER_GLASSES


class MemberContext(BaseModel):
    name: str
    goal: Goal
    ai_coach: AiCoachState
    today: Macros
    today_meals: list[str] = Field(default_factory=list)
    yesterday: Macros
    targets: Macros
    water: Water
    stock: list[StockEntry] = Field(default_factory=list)
    weight_change: float | None = None
    exercise_today: ExerciseEntry | None = None
    streak_days: int = 0
    last_active_at: datetime | None = None
    local_hour: int = 0

    @property
    def remaining_calories(self) -> int:
        return self.targets.calories - self.today.calories

    @property
    def missing_protein(self) -> int:
        return self.targets.protein - self.today.protein


def sum_macros(meals: list[MealLog]) -> Macros:
    return Macros(
        calories=round(sum(m.calories for m in meals)),
        protein=round(sum(m.protein for m in meals)),
        carbs=round(sum(m.carbs for m in meals)),
        fat=round(sum(m.fat for m in meals)),
        meal_count=len(meals),
    )


def member_targets(member: Member) -> Macros:
    return Macros(
        calories=member.daily_calories or DEFAULT_TARGETS["calories"],
        protein=member.daily_protein or DEFAULT_TARGETS["protein"],
        carbs=member.daily_carbs or DEFAULT_TARGETS["carbs"],
        fat=member.daily_fat or DEFAULT_TARGETS["fat"],
    )


def calculate_streak(store: CoachingStore, member_id: str, now: datetime, offset_minutes: int) -> int:
    """Consecutive local days, ending today, with at least one meal logged."""
    start = day_threshold(offset_minutes, "start-of-today", now) - timedelta(days=STREAK_LOOKBACK_DAYS - 1)
    end = day_threshold(offset_minutes, "start-of-tomorrow", now)
    logged_days = {local_date(offset_minutes, meal.date) for meal in store.meals_between(member_id, start, end)}

    streak = 0
    day = local_date(offset_minutes, now)
    while day in logged_days and streak < STREAK_LOOKBACK_DAYS:
        streak += 1
        day -= timedelta(days=1)
    return streak


def gather_member_context(
    store: CoachingStore,
    member: Member,
    now: datetime,
    offset_minutes: int,
) -> MemberContext:
    """Assemble the member's day: meals, targets, water, stock, weight, exercise, streak."""
    start_of_today = day_threshold(offset_minutes, "start-of-today", now)
    start_of_tomorrow = day_threshold(offset_minutes, "start-of-tomorrow", now)
    start_of_yesterday = start_of_today - timedelta(days=1)

    today_meals = list(store.meals_between(member.id, start_of_today, start_of_tomorrow))
    yesterday_meals = list(store.meals_between(member.id, start_of_yesterday, start_of_today))

    weights = list(store.recent_weights(member.id, now - timedelta(days=WEIGHT_LOOKBACK_DAYS), limit=2))
    weight_change = round(weights[0].weight - weights[1].weight, 1) if len(weights) >= 2 else None

    exercise = store.latest_exercise_since(member.id, start_of_today)
    entitlement = resolve_member_entitlement(member, now, offset_minutes)

    return MemberContext(
        name=member.display_name or member.name or DEFAULT_NAME,
        goal=Goal(
            type=member.goal_type or "maintain",
            current_weight=member.weight,
            target_weight=member.goal_weight,
        ),
        ai_coach=AiCoachState(
            is_active=entitlement.is_entitled,
            is_unlimited=entitlement.is_unlimited,
            days_remaining=entitlement.days_remaining,
            expire_date=member.ai_coach_expire_date,
        ),
        today=sum_macros(today_meals),
        today_meals=[m.name for m in today_meals],
        yesterday=sum_macros(yesterday_meals),
        targets=member_targets(member),
        water=Water(
            current=store.water_total_since(member.id, start_of_today),
            target=member.daily_water or DEFAULT_WATER_GLASSES,
        ),
        stock=[
            StockEntry(name=item.food_name, calories=round(item.calories), protein=round(item.protein))
            for item in store.stock_items(member.id, limit=10)
        ],
        weight_change=weight_change,
        exercise_today=ExerciseEntry(name=exercise.name, calories=round(exercise.calories)) if exercise else None,
        streak_days=calculate_streak(store, member.id, now, offset_minutes),
        last_active_at=member.last_active_at,
        local_hour=now_in_zone(offset_minutes, now).hour,
    )


def gather_day_facts(
    store: CoachingStore,
    member: Member,
    category: NotificationCategory,
    now: datetime,
    offset_minutes: int,
) -> DayFacts:
    """Collect only the facts the category's eligibility check needs."""
    if category == NotificationCategory.INACTIVE:
        return DayFacts(last_meal_at=store.last_meal_at(member.id))

    if category in MEAL_HOUR_RANGES:
        start_hour, end_hour = MEAL_HOUR_RANGES[category]
        start, end = local_range(offset_minutes, start_hour, end_hour, now)
        return DayFacts(meal_logged_in_range=len(store.meals_between(member.id, start, end)) > 0)

    if category == NotificationCategory.WATER:
        start_of_today = day_threshold(offset_minutes, "start-of-today", now)
        return DayFacts(
            water_current=store.water_total_since(member.id, start_of_today),
            water_target=member.daily_water or DEFAULT_WATER_GLASSES,
        )

    if category == NotificationCategory.EXERCISE:
        start_of_today = day_threshold(offset_minutes, "start-of-today", now)
        return DayFacts(exercise_logged_today=store.latest_exercise_since(member.id, start_of_today) is not None)

    return DayFacts()
