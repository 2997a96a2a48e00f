"""Per-member daily AI meal recommendation with a cache row and a daily cap.

The cache row is keyed by member. A row dated on the current local day is
served as-is unless a refresh is forced; forced refreshes are capped per day.
Logging a meal deletes the row so the next read regenerates.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from pydantic import BaseModel, Field

from nutricoach.coaching.context import DEFAULT_TARGETS, sum_macros
from nutricoach.coaching.interfaces import CoachingStore, TextGenerator
from nutricoach.utils.clock import day_threshold, ensure_utc, now_in_zone, utcnow

RECOMMENDATION_CATEGORY = "recommendation"
DEFAULT_DAILY_LIMIT = 10
STOCK_ITEMS_IN_PROMPT = 5

FALLBACK_RECOMMENDATIONS = [
    "ทานอาหารให้ครบ 3 มื้อ และดื่มน้ำให้เพียงพอนะคะ 💪",
    "พยายามเพิ่มผักและโปรตีนในทุกมื้ออาหาร 🥗",
    "อย่าลืมพักผ่อนให้เพียงพอควบคู่กับการทานอาหาร 😊",
    "การทานอาหารตรงเวลาช่วยให้ร่างกายเผาผลาญได้ดีขึ้น ⏰",
    "ลองเพิ่มโปรตีนในมื้อเช้าเพื่อให้อิ่มนานขึ้น 🍳",
]

RECOMMENDATION_SYSTEM_PROMPT = """คุณคือนักโภชนาการส่วนตัว ให้คำแนะนำสำหรับมื้อถัดไป

- ตอบเป็นภาษาไทย 1-2 ประโยค ไม่เกิน 100 ตัวอักษร
- เป็นมิตร ให้กำลังใจ และทำตามได้จริง
- ถ้ามีอาหารใน Stock ให้แนะนำจาก Stock ก่อน
- ใช้ emoji 1-2 ตัว ไม่ใช้ศัพท์วิชาการ และไม่เน้นตัวเลขแคลอรี่"""

GOAL_LABELS = {"lose": "ลดน้ำหนัก", "gain": "เพิ่มน้ำหนัก", "maintain": "รักษาน้ำหนัก"}


class RecommendationContext(BaseModel):
    goal_type: str = "maintain"
    target_calories: int = DEFAULT_TARGETS["calories"]
    target_protein: int = DEFAULT_TARGETS["protein"]
    consumed_calories: int = 0
    consumed_protein: int = 0
    remaining_calories: int = 0
    meals_eaten: list[str] = Field(default_factory=list)
    stock_items: list[str] = Field(default_factory=list)
    current_hour: int = 0


def build_recommendation_prompt(context: RecommendationContext) -> str:
    meals = ", ".join(context.meals_eaten) or "ยังไม่ได้ทาน"
    stock = ", ".join(context.stock_items) or "ไม่มี"
    return "\n".join(
        [
            "ข้อมูลผู้ใช้:",
            f"- เป้าหมาย: {GOAL_LABELS.get(context.goal_type, GOAL_LABELS['maintain'])}",
            f"- เป้าหมายแคลอรี่: {context.target_calories} kcal/วัน",
            f"- ทานไปแล้ววันนี้: {context.consumed_calories} kcal, โปรตีน {context.consumed_protein}g",
            f"- เหลืออีก: {context.remaining_calories} kcal",
            f"- มื้อที่ทานไปแล้ว: {meals}",
            f"- อาหารใน Stock: {stock}",
            f"- เวลาปัจจุบัน: {context.current_hour}:00 น.",
            "",
            "ขอคำแนะนำสั้นๆ สำหรับมื้อถัดไป",
        ]
    )


@dataclass(frozen=True)
class RecommendationResult:
    message: str
    cached: bool = False
    rate_limited: bool = False

    def as_dict(self) -> dict:
        return {"message": self.message, "cached": self.cached, "rate_limited": self.rate_limited}


class RecommendationCache:
    """Serve, regenerate and invalidate a member's daily recommendation.

    ``get`` never raises: any failure yields one of the fixed fallback
    messages, uncached.
    """

    def __init__(
        self,
        store: CoachingStore,
        generator: TextGenerator | None,
        offset_minutes: int,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        timeout_seconds: float = 20.0,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.offset_minutes = offset_minutes
        self.daily_limit = daily_limit
        self.timeout_seconds = timeout_seconds
        self._rng = rng or random.Random()

    def fallback(self) -> RecommendationResult:
        return RecommendationResult(message=self._rng.choice(FALLBACK_RECOMMENDATIONS))

    def _is_today(self, moment: datetime, now: datetime) -> bool:
        start = day_threshold(self.offset_minutes, "start-of-today", now)
        end = day_threshold(self.offset_minutes, "start-of-tomorrow", now)
        return start <= ensure_utc(moment) < end

    def build_context(self, member_id: str, now: datetime) -> RecommendationContext:
        member = self.store.find_member(member_id)
        start = day_threshold(self.offset_minutes, "start-of-today", now)
        end = day_threshold(self.offset_minutes, "start-of-tomorrow", now)
        meals = list(self.store.meals_between(member_id, start, end))
        consumed = sum_macros(meals)
        target_calories = (member.daily_calories if member else None) or DEFAULT_TARGETS["calories"]
        target_protein = (member.daily_protein if member else None) or DEFAULT_TARGETS["protein"]
        stock = self.store.stock_items(member_id, limit=STOCK_ITEMS_IN_PROMPT)
        return RecommendationContext(
            goal_type=(member.goal_type if member else None) or "maintain",
            target_calories=target_calories,
            target_protein=target_protein,
            consumed_calories=consumed.calories,
            consumed_protein=consumed.protein,
            remaining_calories=target_calories - consumed.calories,
            meals_eaten=[m.name for m in meals],
            stock_items=[item.food_name for item in stock],
            current_hour=now_in_zone(self.offset_minutes, now).hour,
        )

    async def get(self, member_id: str, force_refresh: bool = False, now: datetime | None = None) -> RecommendationResult:
        """Return the member's recommendation for today.

        Args:
            member_id: Member id
            force_refresh: Regenerate even when today's row exists
            now: Evaluation instant

        Returns:
            RecommendationResult with message, cached and rate_limited flags
        """
        now = now or utcnow()
        try:
            if self.store.find_member(member_id) is None:
                logger.debug("Recommendation requested for unknown member", member_id=member_id)
                return self.fallback()

            row = self.store.find_recommendation(member_id)
            from_today = row is not None and self._is_today(row.date, now)

            if from_today and not force_refresh:
                return RecommendationResult(message=row.message, cached=True)

            if from_today and row.request_count >= self.daily_limit:
                logger.info("Recommendation daily limit reached", member_id=member_id, limit=self.daily_limit)
                return RecommendationResult(message=row.message, cached=True, rate_limited=True)

            if self.generator is None:
                return self.fallback()

            context = self.build_context(member_id, now)
            try:
                text = await asyncio.wait_for(
                    self.generator.generate(RECOMMENDATION_CATEGORY, context), timeout=self.timeout_seconds
                )
            except Exception as e:
                logger.warning(
                    "Recommendation generation failed, using fallback",
                    member_id=member_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return self.fallback()

            text = (text or "").strip() or self._rng.choice(FALLBACK_RECOMMENDATIONS)
            request_count = row.request_count + 1 if from_today else 1
            self.store.upsert_recommendation(
                member_id,
                {
                    "message": text,
                    "context": context.model_dump(),
                    "date": now,
                    "request_count": request_count,
                },
            )
            return RecommendationResult(message=text, cached=False)
        except Exception as e:
            logger.error(
                "Recommendation lookup failed, using fallback",
                member_id=member_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self.fallback()

    def invalidate(self, member_id: str) -> bool:
        """Delete the member's cache row. Returns True if a row was removed."""
        removed = self.store.delete_recommendation(member_id)
        logger.debug("Recommendation invalidated", member_id=member_id, removed=removed)
        return removed > 0


# Strong references to pending invalidations; the loop only keeps weak ones
_background_tasks: set[asyncio.Task] = set()


def invalidate_in_background(store: CoachingStore, member_id: str) -> asyncio.Task | None:
    """Start the invalidation without waiting for it.

    Runs as a task on the current event loop when one is running, otherwise
    runs inline. Failures are logged, not raised.
    """

    def _invalidate() -> None:
        try:
            store.delete_recommendation(member_id)
        except Exception as e:
            logger.warning("Background recommendation invalidation failed", member_id=member_id, error=str(e))

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        _invalidate()
        return None

    async def _run() -> None:
        _invalidate()

    task = loop.create_task(_run())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
