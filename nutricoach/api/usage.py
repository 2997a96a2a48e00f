"""Usage quota endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from nutricoach.api.dependencies import get_store
from nutricoach.coaching.interfaces import CoachingStore
from nutricoach.coaching.usage_limits import LimitKind, check_usage_limit, get_all_usage_limits, log_ai_usage
from nutricoach.config.settings import settings

router = APIRouter(prefix="/usage-limits", tags=["usage"])


def _member_id(store: CoachingStore, line_user_id: str) -> str:
    member = store.find_member_by_external_id(line_user_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return member.id


@router.get("")
def get_usage_limits(line_user_id: str = Query(..., min_length=1), store: CoachingStore = Depends(get_store)):
    limits = get_all_usage_limits(
        store,
        _member_id(store, line_user_id),
        settings.timezone_offset_minutes,
        default_limit=settings.default_usage_limit,
    )
    if limits is None:
        return {"limits": None}
    return {"limits": {kind: result.as_dict() for kind, result in limits.items()}}


@router.get("/{kind}")
def check_limit(kind: LimitKind, line_user_id: str = Query(..., min_length=1), store: CoachingStore = Depends(get_store)):
    result = check_usage_limit(
        store,
        _member_id(store, line_user_id),
        kind,
        settings.timezone_offset_minutes,
        default_limit=settings.default_usage_limit,
    )
    return result.as_dict()


@router.post("/{kind}")
def record_usage(kind: LimitKind, line_user_id: str = Query(..., min_length=1), store: CoachingStore = Depends(get_store)):
    return {"success": log_ai_usage(store, _member_id(store, line_user_id), kind)}
