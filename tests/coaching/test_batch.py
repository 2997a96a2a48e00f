"""Tests for batch passes: isolation, counting, dedup, cancellation."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from nutricoach.coaching.batch import BatchConfig, run_batch
from nutricoach.coaching.errors import UnknownCategoryError

NOW = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)  # 09:00 local


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_unknown_category_raises_before_reading_members(self, sender, generator, batch_config):
        class ExplodingStore:
            def __getattr__(self, name):
                raise AssertionError(f"store.{name} should not be touched")

        with pytest.raises(UnknownCategoryError):
            await run_batch("brunch", ExplodingStore(), sender, generator, batch_config, now=NOW)

    @pytest.mark.asyncio
    async def test_one_failing_send_does_not_stop_the_pass(self, store, make_member, sender, generator, batch_config):
        members = [make_member() for _ in range(10)]
        sender.raise_for = {members[4].line_user_id}

        result = await run_batch("morning", store, sender, generator, batch_config, now=NOW)

        assert result["success"]
        assert result["category"] == "morning"
        stats = result["stats"]
        assert (stats["sent"], stats["failed"], stats["skipped"], stats["total"]) == (9, 1, 0, 10)
        assert len(sender.sent) == 9

    @pytest.mark.asyncio
    async def test_rejected_send_counts_as_failed(self, store, make_member, sender, generator, batch_config):
        rejected = make_member()
        make_member()
        sender.reject = {rejected.line_user_id}

        stats = (await run_batch("evening", store, sender, generator, batch_config, now=NOW))["stats"]

        assert stats["sent"] == 1
        assert stats["failed"] == 1
        assert store.find_member(rejected.id).last_notified is None

    @pytest.mark.asyncio
    async def test_skips_are_counted_with_reasons(
        self, store, make_member, make_member_type, sender, generator, batch_config
    ):
        make_member()
        make_member(notifications_paused_until=NOW + timedelta(hours=2))
        make_member(member_type=make_member_type(morning_time="06:00"))
        make_member(notify_morning_coach=False)

        stats = (await run_batch("morning", store, sender, generator, batch_config, now=NOW))["stats"]

        assert stats["sent"] == 1
        assert stats["skipped"] == 3
        assert stats["skip_reasons"] == {
            "notifications_paused": 1,
            "outside_schedule_window": 1,
            "preference_disabled": 1,
        }

    @pytest.mark.asyncio
    async def test_prefilter_excludes_inactive_and_unassigned(self, store, make_member, sender, generator, batch_config):
        make_member()
        make_member(activity_status="inactive")
        make_member(member_type=None)
        make_member(is_active=False)

        stats = (await run_batch("morning", store, sender, generator, batch_config, now=NOW))["stats"]

        assert stats["total"] == 1
        assert stats["sent"] == 1

    @pytest.mark.asyncio
    async def test_second_pass_in_same_window_does_not_resend(
        self, store, make_member, sender, generator, batch_config
    ):
        member = make_member()

        first = await run_batch("morning", store, sender, generator, batch_config, now=NOW)
        second = await run_batch("morning", store, sender, generator, batch_config, now=NOW + timedelta(minutes=30))

        assert first["stats"]["sent"] == 1
        assert second["stats"]["sent"] == 0
        assert second["stats"]["skip_reasons"] == {"already_sent_in_window": 1}
        assert "morning" in store.find_member(member.id).last_notified

    @pytest.mark.asyncio
    async def test_generator_failure_still_sends_fallback(self, store, make_member, sender, generator, batch_config):
        make_member()
        generator.error = RuntimeError("model overloaded")

        stats = (await run_batch("evening", store, sender, generator, batch_config, now=NOW))["stats"]

        assert stats["sent"] == 1
        assert sender.sent[0][1]["type"] == "flex"

    @pytest.mark.asyncio
    async def test_ai_coach_disabled_skips_pass(self, store, system_setting, make_member, sender, generator, batch_config):
        make_member()
        system_setting.ai_coach_enabled = False
        store.session.commit()

        stats = (await run_batch("morning", store, sender, generator, batch_config, now=NOW))["stats"]

        assert stats["total"] == 0
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_cancel_event_stops_new_members(self, store, make_member, sender, generator, batch_config):
        for _ in range(3):
            make_member()
        cancel = asyncio.Event()
        cancel.set()

        stats = (await run_batch("morning", store, sender, generator, batch_config, now=NOW, cancel_event=cancel))[
            "stats"
        ]

        assert stats["cancelled"]
        assert stats["total"] == 3
        assert stats["sent"] == 0
        assert stats["not_started"] == 3

    @pytest.mark.asyncio
    async def test_stuck_send_times_out_and_fails_member(self, store, make_member, generator):
        make_member()

        class StuckSender:
            async def send(self, external_user_id, message):
                await asyncio.sleep(5)
                return True

        config = BatchConfig(offset_minutes=7 * 60, send_delay_seconds=0, send_timeout_seconds=0.05)
        stats = (await run_batch("morning", store, StuckSender(), generator, config, now=NOW))["stats"]

        assert stats["failed"] == 1
        assert stats["sent"] == 0

    @pytest.mark.asyncio
    async def test_milestone_pass(self, store, make_member, sender, generator, batch_config):
        make_member(created_at=NOW - timedelta(days=30))
        make_member(created_at=NOW - timedelta(days=8))

        stats = (await run_batch("milestone", store, sender, generator, batch_config, now=NOW))["stats"]

        assert stats["sent"] == 1
        assert stats["skip_reasons"] == {"not_milestone_day": 1}


class TestSendPacing:
    @staticmethod
    def _members_with_skips_between(make_member, skipped: int):
        # Distinct created_at values fix the processing order
        first = make_member(created_at=NOW - timedelta(days=40))
        for i in range(skipped):
            make_member(notify_morning_coach=False, created_at=NOW - timedelta(days=39, minutes=-i))
        last = make_member(created_at=NOW - timedelta(days=20))
        return first, last

    @pytest.mark.asyncio
    async def test_skipped_members_cost_no_delay(self, store, make_member, sender, generator):
        first, last = self._members_with_skips_between(make_member, 20)
        config = BatchConfig(offset_minutes=7 * 60, send_delay_seconds=0.05, deadline_seconds=0.5)

        stats = (await run_batch("morning", store, sender, generator, config, now=NOW))["stats"]

        assert stats["sent"] == 2
        assert stats["skipped"] == 20
        assert not stats["cancelled"]
        assert stats["not_started"] == 0
        assert [user for user, _ in sender.sent] == [first.line_user_id, last.line_user_id]

    @pytest.mark.asyncio
    async def test_delay_only_between_sends(self, store, make_member, sender, generator, monkeypatch):
        self._members_with_skips_between(make_member, 5)
        make_member(created_at=NOW - timedelta(days=10))
        delays: list[float] = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("nutricoach.coaching.batch.asyncio.sleep", fake_sleep)
        config = BatchConfig(offset_minutes=7 * 60, send_delay_seconds=0.1)

        stats = (await run_batch("morning", store, sender, generator, config, now=NOW))["stats"]

        assert stats["sent"] == 3
        assert delays == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_deadline_counts_members_not_started(self, store, make_member, sender, generator):
        for _ in range(3):
            make_member()
        config = BatchConfig(offset_minutes=7 * 60, send_delay_seconds=0, deadline_seconds=1e-9)

        stats = (await run_batch("morning", store, sender, generator, config, now=NOW))["stats"]

        assert stats["cancelled"]
        assert stats["sent"] + stats["skipped"] + stats["failed"] + stats["not_started"] == stats["total"]
