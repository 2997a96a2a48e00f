"""Shared FastAPI dependencies: record store, collaborators and cron auth."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from loguru import logger
from sqlalchemy.orm import Session

from nutricoach.coaching.interfaces import CoachingStore, MessageSender, TextGenerator
from nutricoach.config.settings import settings
from nutricoach.db.session import get_db
from nutricoach.db.store import SqlCoachingStore
from nutricoach.infra.llm.coach_text import PydanticAiCoachGenerator
from nutricoach.integrations.line.client import LineMessagingClient


def get_store(db: Session = Depends(get_db)) -> CoachingStore:
    return SqlCoachingStore(db)


async def get_sender() -> AsyncIterator[MessageSender]:
    sender = LineMessagingClient()
    try:
        yield sender
    finally:
        await sender.aclose()


def get_generator() -> TextGenerator | None:
    """AI generator, or None when no API key is configured (fallback text only)."""
    if not settings.openai_api_key:
        return None
    return PydanticAiCoachGenerator()


def verify_cron_secret(request: Request) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured.

    Raises:
        HTTPException: 401 if the header is missing or wrong
    """
    if not settings.cron_secret:
        return
    if request.headers.get("Authorization") != f"Bearer {settings.cron_secret}":
        logger.warning("Rejected cron request with bad secret", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
