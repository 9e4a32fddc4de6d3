"""
Tests for alert lifecycle, feedback and threshold suggestions.
"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from pattern_alerts.exceptions import (
    AlertNotFoundError,
    InvalidAlertTransitionError,
    PatternValidationError,
)
from pattern_alerts.models.pattern_alert import AlertStatus
from pattern_alerts.services.alert_service import AlertService, can_transition, round_half_up


@pytest.fixture
def service(db):
    return AlertService(db)


@pytest_asyncio.fixture
async def pattern(add_pattern):
    return await add_pattern([1.0] * 64)


class TestTransitions:

    def test_transition_table(self):
        assert can_transition("unread", "read")
        assert can_transition("unread", "acted")
        assert can_transition("unread", "dismissed")
        assert can_transition("read", "acted")
        assert can_transition("read", "dismissed")
        assert not can_transition("read", "unread")
        assert not can_transition("acted", "dismissed")
        assert not can_transition("dismissed", "acted")

    async def test_new_alert_is_unread(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)
        assert alert.status == AlertStatus.UNREAD.value
        assert alert.user_feedback is None
        assert alert.read_at is None

    async def test_mark_as_read_is_idempotent(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)

        first = await service.mark_as_read(alert.id, "alice")
        read_at = first.read_at
        assert first.status == "read"
        assert read_at is not None

        second = await service.mark_as_read(alert.id, "alice")
        assert second.status == "read"
        assert second.read_at == read_at

    async def test_unread_to_acted_directly(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)
        acted = await service.mark_as_acted(alert.id, "alice")
        assert acted.status == "acted"
        assert acted.acted_at is not None

    async def test_dismiss_after_read(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)
        await service.mark_as_read(alert.id, "alice")
        dismissed = await service.dismiss(alert.id, "alice")
        assert dismissed.status == "dismissed"
        assert dismissed.dismissed_at is not None

    async def test_acted_is_terminal(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)
        await service.mark_as_acted(alert.id, "alice")

        with pytest.raises(InvalidAlertTransitionError):
            await service.dismiss(alert.id, "alice")

        # opening an acted alert leaves it as is
        reopened = await service.mark_as_read(alert.id, "alice")
        assert reopened.status == "acted"

    async def test_dismissed_is_terminal(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)
        await service.dismiss(alert.id, "alice")
        with pytest.raises(InvalidAlertTransitionError):
            await service.mark_as_acted(alert.id, "alice")

    async def test_other_user_cannot_touch_alert(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)
        with pytest.raises(AlertNotFoundError):
            await service.mark_as_read(alert.id, "bob")


class TestFeedback:

    async def test_feedback_in_any_state(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)
        updated = await service.submit_feedback(alert.id, "alice", "thumbs_up")
        assert updated.user_feedback == "thumbs_up"
        assert updated.status == "unread"

        await service.dismiss(alert.id, "alice")
        updated = await service.submit_feedback(alert.id, "alice", "thumbs_down")
        assert updated.user_feedback == "thumbs_down"
        assert updated.status == "dismissed"

    async def test_invalid_feedback_rejected(self, service, pattern):
        alert = await service.create_alert("alice", pattern.id, 82)
        with pytest.raises(PatternValidationError):
            await service.submit_feedback(alert.id, "alice", "meh")

    async def test_similarity_out_of_range_rejected(self, service, pattern):
        with pytest.raises(PatternValidationError):
            await service.create_alert("alice", pattern.id, 101)


class TestFeedbackStats:

    async def _alerts_with_feedback(self, service, pattern, items):
        for similarity, feedback in items:
            alert = await service.create_alert("alice", pattern.id, similarity)
            if feedback:
                await service.submit_feedback(alert.id, "alice", feedback)

    async def test_no_feedback(self, service, pattern):
        await self._alerts_with_feedback(service, pattern, [(80, None)])
        stats = await service.get_feedback_stats(pattern.id, "alice")

        assert stats["total_feedback"] == 0
        assert stats["suggested_threshold"] is None
        assert stats["precision"] is None

    async def test_midpoint_when_both_present(self, service, pattern):
        await self._alerts_with_feedback(service, pattern, [
            (90, "thumbs_up"),
            (86, "thumbs_up"),
            (72, "thumbs_down"),
            (80, None),
        ])
        stats = await service.get_feedback_stats(pattern.id, "alice")

        assert stats["total_feedback"] == 3
        assert stats["positive_count"] == 2
        assert stats["negative_count"] == 1
        assert stats["avg_positive_score"] == 88
        assert stats["avg_negative_score"] == 72
        assert stats["suggested_threshold"] == 80
        assert stats["precision"] == 67

    async def test_only_positive(self, service, pattern):
        await self._alerts_with_feedback(service, pattern, [(52, "thumbs_up")])
        stats = await service.get_feedback_stats(pattern.id, "alice")
        assert stats["suggested_threshold"] == 50

    async def test_only_negative(self, service, pattern):
        await self._alerts_with_feedback(service, pattern, [(90, "thumbs_down")])
        stats = await service.get_feedback_stats(pattern.id, "alice")
        assert stats["suggested_threshold"] == 95
        assert stats["precision"] == 0

    async def test_positive_not_above_negative_falls_back(self, service, pattern):
        await self._alerts_with_feedback(service, pattern, [
            (70, "thumbs_up"),
            (80, "thumbs_down"),
        ])
        stats = await service.get_feedback_stats(pattern.id, "alice")
        assert stats["suggested_threshold"] == 65


class TestQueries:

    async def test_list_newest_first_and_unread_count(self, service, pattern):
        base = datetime(2026, 3, 1, 9, 0, 0)
        older = await service.create_alert("alice", pattern.id, 75, created_at=base)
        newer = await service.create_alert("alice", pattern.id, 90, created_at=base + timedelta(hours=2))
        await service.mark_as_read(older.id, "alice")

        alerts = await service.list_alerts("alice")
        assert [a.id for a in alerts] == [newer.id, older.id]
        assert await service.get_unread_count("alice") == 1
        assert await service.get_unread_count("bob") == 0
        assert await service.list_alerts("bob") == []

    async def test_has_recent_alert_window(self, service, pattern):
        created = datetime(2026, 3, 1, 9, 0, 0)
        await service.create_alert("alice", pattern.id, 80, created_at=created)

        window = timedelta(hours=1)
        assert await service.has_recent_alert(pattern.id, window, now=created + timedelta(minutes=10))
        assert await service.has_recent_alert(pattern.id, window, now=created + timedelta(minutes=60))
        assert not await service.has_recent_alert(pattern.id, window, now=created + timedelta(minutes=61))


def test_round_half_up():
    assert round_half_up(62.5) == 63
    assert round_half_up(66.666) == 67
    assert round_half_up(0.4) == 0
