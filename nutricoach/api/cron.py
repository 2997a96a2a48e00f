"""Cron trigger endpoints for scheduled batch passes and sweeps."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from nutricoach.api.dependencies import get_generator, get_sender, get_store, verify_cron_secret
from nutricoach.coaching.batch import BatchConfig, run_batch
from nutricoach.coaching.entitlement import run_trial_expiry_sweep
from nutricoach.coaching.errors import UnknownCategoryError
from nutricoach.coaching.interfaces import CoachingStore, MessageSender, TextGenerator
from nutricoach.config.settings import settings
from nutricoach.services.activity import run_activity_status_sweep
from nutricoach.utils.clock import utcnow

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/coaching/{category}")
async def trigger_coaching(
    category: str,
    store: CoachingStore = Depends(get_store),
    sender: MessageSender = Depends(get_sender),
    generator: TextGenerator | None = Depends(get_generator),
):
    try:
        return await run_batch(category, store, sender, generator, BatchConfig.from_settings(settings))
    except UnknownCategoryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e


@router.post("/trial-expiry")
def trigger_trial_expiry(store: CoachingStore = Depends(get_store)):
    result = run_trial_expiry_sweep(store, store.find_system_settings(), utcnow(), settings.timezone_offset_minutes)
    return result.as_dict()


@router.post("/activity-status")
def trigger_activity_status(store: CoachingStore = Depends(get_store)):
    result = run_activity_status_sweep(store, store.find_system_settings(), utcnow())
    return {"success": True, **result.as_dict()}
