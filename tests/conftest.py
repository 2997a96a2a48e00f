"""Root conftest for all tests.

Provides an isolated in-memory SQLite database per test, the SQL-backed
record store, factories for members and member types, and fake send and
generate collaborators.
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from pydantic import BaseModel
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nutricoach.coaching.batch import BatchConfig
from nutricoach.db.models import Base, Member, MemberType
from nutricoach.db.store import SqlCoachingStore

OFFSET_MINUTES = 7 * 60

# 09:00 local (UTC+7) on a Tuesday
NOW = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)


# Enable foreign key constraints for SQLite
@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints in SQLite connections."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def offset_minutes() -> int:
    return OFFSET_MINUTES


@pytest.fixture(scope="function")
def db_session():
    """In-memory SQLite session with all tables created. Discarded after the test."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db_session) -> SqlCoachingStore:
    return SqlCoachingStore(db_session)


@pytest.fixture
def system_setting(store):
    return store.find_system_settings()


@pytest.fixture
def make_member_type(db_session):
    """Factory for member types. Defaults to an unlimited plan with no schedule times."""

    def _make(**overrides: Any) -> MemberType:
        fields: dict[str, Any] = {"name": "Premium", "course_duration": 0}
        fields.update(overrides)
        member_type = MemberType(**fields)
        db_session.add(member_type)
        db_session.commit()
        return member_type

    return _make


@pytest.fixture
def make_member(db_session, make_member_type):
    """Factory for members.

    Defaults to an onboarded, active member on an unlimited plan who joined
    three days before ``NOW``. Pass ``member_type=None`` for an unassigned member.
    """
    counter = itertools.count(1)
    default_type: list[MemberType] = []

    def _make(**overrides: Any) -> Member:
        n = next(counter)
        if "member_type" not in overrides and "member_type_id" not in overrides:
            if not default_type:
                default_type.append(make_member_type())
            overrides["member_type"] = default_type[0]
        fields: dict[str, Any] = {
            "line_user_id": f"U{n:04d}",
            "display_name": f"Member {n}",
            "is_onboarded": True,
            "activity_status": "active",
            "created_at": NOW - timedelta(days=3),
            "last_active_at": NOW - timedelta(hours=1),
        }
        fields.update(overrides)
        member = Member(**fields)
        db_session.add(member)
        db_session.commit()
        return member

    return _make


class FakeSender:
    """Records pushes. Raises for ids in ``raise_for``, returns False for ids in ``reject``."""

    def __init__(self, raise_for: set[str] | None = None, reject: set[str] | None = None) -> None:
        self.raise_for = raise_for or set()
        self.reject = reject or set()
        self.sent: list[tuple[str, dict]] = []

    async def send(self, external_user_id: str, message: dict) -> bool:
        if external_user_id in self.raise_for:
            raise RuntimeError("push exploded")
        if external_user_id in self.reject:
            return False
        self.sent.append((external_user_id, message))
        return True

    async def aclose(self) -> None:
        return None


class FakeGenerator:
    """Returns numbered texts, or raises when ``error`` is set."""

    def __init__(self, text: str = "AI text", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[str, BaseModel]] = []

    async def generate(self, category: str, context: BaseModel) -> str:
        self.calls.append((category, context))
        if self.error is not None:
            raise self.error
        return f"{self.text} #{len(self.calls)}"


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def batch_config() -> BatchConfig:
    return BatchConfig(offset_minutes=OFFSET_MINUTES, send_delay_seconds=0, app_url="https://liff.line.me/test")
