"""One scheduled pass over the member set for a single notification category.

Members are processed one at a time. Each member runs inside its own
failure boundary: an error or a failed send for one member is counted and
the pass moves on. An optional deadline or cancel event stops the pass from
starting new members; the member in flight finishes first.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from nutricoach.coaching.categories import NotificationCategory, parse_category
from nutricoach.coaching.context import gather_day_facts, gather_member_context
from nutricoach.coaching.eligibility import EligibilityConfig, evaluate_eligibility
from nutricoach.coaching.interfaces import CoachingStore, MessageSender, TextGenerator
from nutricoach.coaching.messages import build_coaching_card, generate_coaching_message
from nutricoach.config.settings import Settings
from nutricoach.db.models import Member, SystemSetting
from nutricoach.utils.clock import DEFAULT_WINDOW_MINUTES, utcnow


@dataclass(frozen=True)
class BatchConfig:
    """Timing and zone knobs for a batch pass."""

    offset_minutes: int
    window_minutes: int = DEFAULT_WINDOW_MINUTES
    send_delay_seconds: float = 0.1
    generate_timeout_seconds: float = 20.0
    send_timeout_seconds: float = 10.0
    deadline_seconds: float | None = None
    app_url: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> BatchConfig:
        return cls(
            offset_minutes=settings.timezone_offset_minutes,
            window_minutes=settings.notification_window_minutes,
            send_delay_seconds=settings.send_delay_seconds,
            generate_timeout_seconds=settings.generate_timeout_seconds,
            send_timeout_seconds=settings.send_timeout_seconds,
            deadline_seconds=settings.batch_deadline_seconds or None,
            app_url=settings.liff_url or None,
        )


@dataclass
class BatchStats:
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    cancelled: bool = False
    not_started: int = 0
    skip_reasons: Counter = field(default_factory=Counter)

    def as_dict(self) -> dict:
        return {
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "total": self.total,
            "cancelled": self.cancelled,
            "not_started": self.not_started,
            "skip_reasons": dict(self.skip_reasons),
        }


def _record_notified(store: CoachingStore, member: Member, category: NotificationCategory, now: datetime) -> None:
    # New dict so the JSON column is seen as changed
    last_notified = dict(member.last_notified or {})
    last_notified[category.value] = now.isoformat()
    try:
        store.update_member(member.id, {"last_notified": last_notified})
    except Exception as e:
        logger.warning(
            "Failed to record notification timestamp",
            member_id=member.id,
            category=category.value,
            error=str(e),
        )


async def _process_member(
    member: Member,
    category: NotificationCategory,
    store: CoachingStore,
    sender: MessageSender,
    generator: TextGenerator | None,
    config: BatchConfig,
    system_setting: SystemSetting,
    now: datetime,
    pace_seconds: float = 0.0,
) -> str:
    """Run one member through eligibility, generation and send.

    ``pace_seconds`` is slept right before the send, so skipped members cost
    no pacing delay.

    Returns:
        "sent", "failed", or the skip reason
    """
    facts = gather_day_facts(store, member, category, now, config.offset_minutes)
    decision = evaluate_eligibility(
        member,
        category,
        now,
        EligibilityConfig(offset_minutes=config.offset_minutes, window_minutes=config.window_minutes),
        system_setting=system_setting,
        facts=facts,
    )
    if not decision.eligible:
        return decision.reason

    context = gather_member_context(store, member, now, config.offset_minutes)
    text, used_ai = await generate_coaching_message(category, context, generator, config.generate_timeout_seconds)
    card = build_coaching_card(category, text, context, config.app_url)

    if pace_seconds > 0:
        await asyncio.sleep(pace_seconds)
    ok = await asyncio.wait_for(sender.send(member.line_user_id, card), timeout=config.send_timeout_seconds)
    if not ok:
        logger.warning("Send returned failure", member_id=member.id, category=category.value)
        return "failed"

    _record_notified(store, member, category, now)
    logger.debug("Coaching message sent", member_id=member.id, category=category.value, used_ai=used_ai)
    return "sent"


async def run_batch(
    category: str | NotificationCategory,
    store: CoachingStore,
    sender: MessageSender,
    generator: TextGenerator | None,
    config: BatchConfig,
    system_setting: SystemSetting | None = None,
    now: datetime | None = None,
    cancel_event: asyncio.Event | None = None,
) -> dict:
    """Run one batch pass for ``category``.

    Args:
        category: Notification category name
        store: Record store
        sender: Outbound push collaborator
        generator: AI text collaborator, or None to always use fallbacks
        config: Zone, window, delay and timeout settings
        system_setting: Persistent settings row; read from the store when None
        now: Evaluation instant, fixed for the whole pass
        cancel_event: When set, no new member is started

    Returns:
        ``{"success", "category", "stats"}``. In stats, ``sent + skipped +
        failed + not_started == total``; ``not_started`` is non-zero only when
        the pass was cancelled or hit its deadline.

    Raises:
        UnknownCategoryError: If the category is not recognised. Raised
            before any member is read.
    """
    category = parse_category(category)
    now = now or utcnow()
    if system_setting is None:
        system_setting = store.find_system_settings()

    stats = BatchStats()
    started = time.monotonic()

    if not system_setting.ai_coach_enabled:
        logger.info("AI coach disabled, batch pass skipped", category=category.value)
        return {"success": True, "category": category.value, "stats": stats.as_dict()}

    members = list(store.list_candidate_members(category))
    stats.total = len(members)
    logger.info("Batch pass started", category=category.value, candidates=stats.total)

    sent_any = False
    for index, member in enumerate(members):
        deadline_hit = config.deadline_seconds and time.monotonic() - started >= config.deadline_seconds
        if deadline_hit or (cancel_event is not None and cancel_event.is_set()):
            stats.cancelled = True
            stats.not_started = stats.total - index
            break

        member_started = time.monotonic()
        try:
            pace = config.send_delay_seconds if sent_any else 0.0
            outcome = await _process_member(
                member, category, store, sender, generator, config, system_setting, now, pace
            )
        except Exception as e:
            stats.failed += 1
            logger.warning(
                "Batch member failed",
                member_id=member.id,
                category=category.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue
        finally:
            logger.debug(
                "Batch member processed",
                member_id=member.id,
                elapsed_ms=round((time.monotonic() - member_started) * 1000, 1),
            )

        if outcome == "sent":
            stats.sent += 1
            sent_any = True
        elif outcome == "failed":
            stats.failed += 1
            sent_any = True
        else:
            stats.skipped += 1
            stats.skip_reasons[outcome] += 1
            logger.debug("Batch member skipped", member_id=member.id, category=category.value, reason=outcome)

    logger.info(
        "Batch pass finished",
        category=category.value,
        sent=stats.sent,
        skipped=stats.skipped,
        failed=stats.failed,
        total=stats.total,
        cancelled=stats.cancelled,
        not_started=stats.not_started,
        elapsed_s=round(time.monotonic() - started, 2),
    )
    return {"success": True, "category": category.value, "stats": stats.as_dict()}
