"""Collaborator interfaces consumed by the coaching engine.

The surrounding application provides the record store, the outbound
messaging channel and the AI text generator. The engine only depends on
these protocols; ``nutricoach.db.store``, ``nutricoach.integrations.line``
and ``nutricoach.infra.llm`` hold the production implementations.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel

from nutricoach.coaching.categories import NotificationCategory
from nutricoach.db.models import (
    AiRecommendation,
    ExerciseLog,
    MealLog,
    Member,
    MemberType,
    StockItem,
    SystemSetting,
    WeightLog,
)


class CoachingStore(Protocol):
    """Record store used by the engine."""

    def find_member(self, member_id: str) -> Member | None: ...

    def find_member_by_external_id(self, line_user_id: str) -> Member | None: ...

    def update_member(self, member_id: str, patch: dict[str, Any]) -> Member | None: ...

    def count_records_since(self, member_id: str, kind: str, since: datetime) -> int: ...

    def find_member_type(self, member_type_id: str) -> MemberType | None: ...

    def find_system_settings(self) -> SystemSetting: ...

    def list_candidate_members(self, category: NotificationCategory) -> Sequence[Member]: ...

    def list_members_for_trial_expiry(self, general_member_type_id: str) -> Sequence[Member]: ...

    def list_members_for_status_sweep(self) -> Sequence[Member]: ...

    def meals_between(self, member_id: str, start: datetime, end: datetime) -> Sequence[MealLog]: ...

    def last_meal_at(self, member_id: str) -> datetime | None: ...

    def water_total_since(self, member_id: str, since: datetime) -> int: ...

    def latest_exercise_since(self, member_id: str, since: datetime) -> ExerciseLog | None: ...

    def recent_weights(self, member_id: str, since: datetime, limit: int = 2) -> Sequence[WeightLog]: ...

    def stock_items(self, member_id: str, limit: int = 10) -> Sequence[StockItem]: ...

    def find_recommendation(self, member_id: str) -> AiRecommendation | None: ...

    def upsert_recommendation(self, member_id: str, row: dict[str, Any]) -> AiRecommendation: ...

    def delete_recommendation(self, member_id: str) -> int: ...

    def add_record(self, record: Any) -> Any: ...


class MessageSender(Protocol):
    """Outbound channel. Returns False on failure instead of raising."""

    async def send(self, external_user_id: str, message: dict[str, Any]) -> bool: ...


class TextGenerator(Protocol):
    """AI text generation from a category and a context snapshot.

    May raise; callers fall back on any error.
    """

    async def generate(self, category: str, context: BaseModel) -> str: ...
