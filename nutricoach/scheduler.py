"""Periodic triggers for batch passes and sweeps.

Jobs run on APScheduler's thread pool. Each job opens its own database
session and, for async batch passes, its own event loop.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from nutricoach.coaching.batch import BatchConfig, run_batch
from nutricoach.coaching.categories import NotificationCategory
from nutricoach.coaching.entitlement import run_trial_expiry_sweep
from nutricoach.config.settings import Settings
from nutricoach.db.session import get_session
from nutricoach.db.store import SqlCoachingStore
from nutricoach.infra.llm.coach_text import PydanticAiCoachGenerator
from nutricoach.integrations.line.client import LineMessagingClient
from nutricoach.services.activity import run_activity_status_sweep
from nutricoach.utils.clock import utcnow

# Cron fields are in the product's local zone
CATEGORY_SCHEDULES: dict[NotificationCategory, dict] = {
    NotificationCategory.MORNING: {"minute": "0,30"},
    NotificationCategory.LUNCH: {"minute": "0,30"},
    NotificationCategory.DINNER: {"minute": "0,30"},
    NotificationCategory.EVENING: {"minute": "0,30"},
    NotificationCategory.WATER: {"hour": "9-19/2", "minute": "0"},
    NotificationCategory.WEEKLY: {"hour": "10", "minute": "0"},
    NotificationCategory.PHOTO: {"hour": "10", "minute": "15"},
    NotificationCategory.EXERCISE: {"hour": "20", "minute": "0"},
    NotificationCategory.MILESTONE: {"hour": "9", "minute": "0"},
    NotificationCategory.INACTIVE: {"hour": "11", "minute": "0"},
}


def _zone(settings: Settings) -> timezone:
    return timezone(timedelta(minutes=settings.timezone_offset_minutes))


def run_category_job(category: NotificationCategory, settings: Settings) -> dict | None:
    """Run one batch pass for a category from a scheduler thread."""
    sender = LineMessagingClient()
    generator = PydanticAiCoachGenerator() if settings.openai_api_key else None
    try:
        with get_session() as session:
            store = SqlCoachingStore(session)
            return asyncio.run(
                _run_and_close(category, store, sender, generator, BatchConfig.from_settings(settings))
            )
    except Exception as e:
        logger.error(f"[SCHEDULER] Batch pass failed: {category.value}: {e}", exc_info=True)
        return None


async def _run_and_close(category, store, sender, generator, config) -> dict:
    try:
        return await run_batch(category, store, sender, generator, config)
    finally:
        await sender.aclose()


def run_trial_expiry_job(settings: Settings) -> None:
    try:
        with get_session() as session:
            store = SqlCoachingStore(session)
            run_trial_expiry_sweep(store, store.find_system_settings(), utcnow(), settings.timezone_offset_minutes)
    except Exception as e:
        logger.error(f"[SCHEDULER] Trial expiry sweep failed: {e}", exc_info=True)


def run_activity_status_job(settings: Settings) -> None:
    try:
        with get_session() as session:
            store = SqlCoachingStore(session)
            run_activity_status_sweep(store, store.find_system_settings(), utcnow())
    except Exception as e:
        logger.error(f"[SCHEDULER] Activity status sweep failed: {e}", exc_info=True)


def build_scheduler(settings: Settings) -> BackgroundScheduler:
    """Create a scheduler with every coaching category and sweep registered (not started)."""
    zone = _zone(settings)
    scheduler = BackgroundScheduler(timezone=zone)

    for category, fields in CATEGORY_SCHEDULES.items():
        scheduler.add_job(
            run_category_job,
            trigger=CronTrigger(timezone=zone, **fields),
            args=[category, settings],
            id=f"coaching_{category.value}",
            name=f"Coaching batch: {category.value}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    # Inactive reminders go out before members are flagged inactive
    scheduler.add_job(
        run_activity_status_job,
        trigger=CronTrigger(hour="12", minute="0", timezone=zone),
        args=[settings],
        id="activity_status_sweep",
        name="Activity status sweep",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.add_job(
        run_trial_expiry_job,
        trigger=CronTrigger(hour="0", minute="5", timezone=zone),
        args=[settings],
        id="trial_expiry_sweep",
        name="Trial expiry sweep",
        replace_existing=True,
        max_instances=1,
    )
    return scheduler
