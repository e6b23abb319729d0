"""Tests for the goal service — uses mocked connector results."""

from __future__ import annotations

import dataclasses
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.config import settings
from app.goals import service
from app.goals.definitions import ConfigurationError, GoalStatus, Metric, Scope
from tests.conftest import T0, FakeSession, make_goal, make_sale


class TestEvaluateGoal:
    async def test_fetches_window_and_scope(self):
        session = FakeSession()
        goal = make_goal(scope=Scope.sku, target_sku="X", target_value=100)
        now = T0 + timedelta(days=2)
        fetch = AsyncMock(return_value=[make_sale(1, revenue=40, sku="X")])

        with patch("app.goals.service.connector.fetch_records_for_goal", fetch):
            progress = await service.evaluate_goal(session, 7, goal, now)

        fetch.assert_awaited_once_with(session, 7, Scope.sku, "X", T0, now)
        assert progress.current_value == 40
        assert progress.status == GoalStatus.on_track

    async def test_malformed_goal_raises(self):
        goal = make_goal(period="never")
        with patch("app.goals.service.connector.fetch_records_for_goal", AsyncMock(return_value=[])):
            with pytest.raises(ConfigurationError):
                await service.evaluate_goal(FakeSession(), 7, goal, T0 + timedelta(days=1))


class TestListGoalProgress:
    async def test_malformed_goal_reported_unavailable(self):
        good = make_goal(goal_id=1)
        bad = make_goal(goal_id=2, period="abc")

        with patch("app.goals.service.connector.fetch_goals", AsyncMock(return_value=[good, bad])), patch(
            "app.goals.service.connector.fetch_records_for_goal", AsyncMock(return_value=[])
        ):
            evaluations = await service.list_goal_progress(FakeSession(), 7, T0 + timedelta(days=1))

        assert evaluations[0].progress is not None
        assert evaluations[0].error is None
        assert evaluations[1].progress is None
        assert "abc" in evaluations[1].error

    async def test_include_archived_passes_through(self):
        fetch_goals = AsyncMock(return_value=[])
        with patch("app.goals.service.connector.fetch_goals", fetch_goals):
            await service.list_goal_progress(FakeSession(), 7, T0, include_archived=True)
        assert fetch_goals.await_args.kwargs["active_only"] is False


class TestCreateGoal:
    async def test_invalid_goal_not_stored(self):
        insert = AsyncMock()
        session = FakeSession()
        with patch("app.goals.service.connector.insert_goal", insert):
            with pytest.raises(ConfigurationError):
                await service.create_goal(session, 7, make_goal(target_value=0))
        insert.assert_not_awaited()
        assert session.commits == 0

    async def test_valid_goal_committed(self):
        goal = make_goal(goal_id=None)
        stored = dataclasses.replace(goal, id=12)
        session = FakeSession()
        with patch("app.goals.service.connector.insert_goal", AsyncMock(return_value=stored)):
            result = await service.create_goal(session, 7, goal)
        assert result.id == 12
        assert session.commits == 1


class TestUpdateGoal:
    async def test_missing_goal(self):
        with patch("app.goals.service.connector.fetch_goal", AsyncMock(return_value=None)):
            assert await service.update_goal(FakeSession(), 7, 1, {"target_value": 5.0}, T0) is None

    async def test_scope_change_clears_stale_target(self):
        existing = make_goal(scope=Scope.category, target_category="toys")
        update = AsyncMock(return_value=existing)
        with patch("app.goals.service.connector.fetch_goal", AsyncMock(return_value=existing)), patch(
            "app.goals.service.connector.update_goal", update
        ):
            await service.update_goal(FakeSession(), 7, 1, {"scope": Scope.sku, "target_sku": "X"}, T0)

        changes = update.await_args.args[3]
        assert changes == {"scope": Scope.sku, "target_sku": "X", "target_category": None}

    async def test_invalid_edit_rejected(self):
        existing = make_goal()
        update = AsyncMock()
        with patch("app.goals.service.connector.fetch_goal", AsyncMock(return_value=existing)), patch(
            "app.goals.service.connector.update_goal", update
        ):
            with pytest.raises(ConfigurationError):
                await service.update_goal(FakeSession(), 7, 1, {"period": "forever"}, T0)
        update.assert_not_awaited()


class TestSettleGoals:
    def _goals(self):
        return [
            make_goal(goal_id=1, target_value=100),  # met
            make_goal(goal_id=2, target_value=10_000, period="7d"),  # unmet (expired)
            make_goal(goal_id=3, target_value=10_000, period="90d"),  # still running
            make_goal(goal_id=4, period="bogus"),  # unavailable
        ]

    async def test_snapshots_terminal_goals_and_archives(self):
        session = FakeSession()
        fetch_goals = AsyncMock(return_value=self._goals())
        insert_history = AsyncMock(side_effect=lambda sess, snapshot: snapshot)
        set_active = AsyncMock(return_value=True)
        delete = AsyncMock(return_value=True)

        with patch("app.goals.service.connector.fetch_goals", fetch_goals), patch(
            "app.goals.service.connector.fetch_records_for_goal",
            AsyncMock(return_value=[make_sale(1, revenue=500)]),
        ), patch("app.goals.service.connector.insert_history", insert_history), patch(
            "app.goals.service.connector.set_goal_active", set_active
        ), patch("app.goals.service.connector.delete_goal", delete):
            evaluated, settled = await service.settle_goals(session, 7, T0 + timedelta(days=10))

        assert evaluated == 4
        assert fetch_goals.await_args.kwargs == {"active_only": True, "for_update": True}
        assert [(h.original_goal_id, h.status) for h in settled] == [(1, GoalStatus.met), (2, GoalStatus.unmet)]
        assert [c.args[2] for c in set_active.await_args_list] == [1, 2]
        delete.assert_not_awaited()
        assert session.commits == 1

    async def test_delete_on_settle(self, monkeypatch):
        monkeypatch.setattr(settings, "goals_delete_on_settle", True)
        delete = AsyncMock(return_value=True)
        set_active = AsyncMock(return_value=True)

        with patch(
            "app.goals.service.connector.fetch_goals",
            AsyncMock(return_value=[make_goal(goal_id=1, metric=Metric.units_sold, target_value=1)]),
        ), patch(
            "app.goals.service.connector.fetch_records_for_goal", AsyncMock(return_value=[make_sale(1)])
        ), patch(
            "app.goals.service.connector.insert_history", AsyncMock(side_effect=lambda s, h: h)
        ), patch("app.goals.service.connector.set_goal_active", set_active), patch(
            "app.goals.service.connector.delete_goal", delete
        ):
            _, settled = await service.settle_goals(FakeSession(), 7, T0 + timedelta(days=2))

        assert len(settled) == 1
        delete.assert_awaited_once()
        set_active.assert_not_awaited()

    async def test_existing_snapshot_not_duplicated(self):
        with patch(
            "app.goals.service.connector.fetch_goals",
            AsyncMock(return_value=[make_goal(goal_id=1, target_value=100)]),
        ), patch(
            "app.goals.service.connector.fetch_records_for_goal", AsyncMock(return_value=[make_sale(1, revenue=500)])
        ), patch("app.goals.service.connector.insert_history", AsyncMock(return_value=None)), patch(
            "app.goals.service.connector.set_goal_active", AsyncMock(return_value=True)
        ):
            evaluated, settled = await service.settle_goals(FakeSession(), 7, T0 + timedelta(days=2))

        assert evaluated == 1
        assert settled == []
