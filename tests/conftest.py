"""Shared fixtures for the test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from app.db import get_session
from app.goals.definitions import GoalDefinition, Metric, SaleRecord, Scope
from app.main import app

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fake DB session (no real Postgres needed)
# ---------------------------------------------------------------------------

class FakeSession:
    """Minimal stand-in for AsyncSession. Records every statement it sees."""

    def __init__(self, rows: list[dict[str, Any]] | None = None):
        self._rows = rows or []
        self.executed: list[tuple[str, dict[str, Any]]] = []
        self.commits = 0

    async def execute(self, stmt, params=None):
        self.executed.append((str(stmt), dict(params or {})))
        return FakeResult(self._rows)

    async def commit(self):
        self.commits += 1

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


class FakeResult:
    def __init__(self, rows: list[dict[str, Any]]):
        self._rows = rows
        self._keys = list(rows[0].keys()) if rows else []

    def keys(self):
        return self._keys

    def fetchall(self):
        return [tuple(r[k] for k in self._keys) for r in self._rows]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def fake_session():
    """Return a FakeSession with no rows (override _rows in tests if needed)."""
    return FakeSession()


@pytest.fixture()
def override_session(fake_session):
    """Override the FastAPI dependency so no real DB is needed."""
    async def _override():
        yield fake_session

    app.dependency_overrides[get_session] = _override
    yield fake_session
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(override_session):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": "7"},
    ) as ac:
        yield ac


def make_goal(
    metric: Metric | str = Metric.revenue,
    target_value: float = 1000.0,
    scope: Scope | str = Scope.global_,
    period: str = "30d",
    created_at: datetime = T0,
    goal_id: int | None = 1,
    **kwargs: Any,
) -> GoalDefinition:
    """Helper to build a GoalDefinition with sensible defaults."""
    return GoalDefinition(
        id=goal_id,
        metric=metric,
        target_value=target_value,
        scope=scope,
        period=period,
        created_at=created_at,
        owner_id=kwargs.pop("owner_id", 7),
        **kwargs,
    )


def make_sale(
    day: float,
    revenue: float = 100.0,
    cost: float = 60.0,
    quantity: int = 1,
    sku: str = "SKU-1",
    category: str | None = "electronics",
    start: datetime = T0,
) -> SaleRecord:
    """Helper to build a SaleRecord `day` days after `start`."""
    return SaleRecord(
        date=start + timedelta(days=day),
        revenue=revenue,
        cost=cost,
        quantity=quantity,
        sku=sku,
        category=category,
    )


def make_goal_row(goal_id: int = 1, **overrides: Any) -> dict[str, Any]:
    """Helper to build a fake goals table row dict."""
    row = {
        "id": goal_id,
        "user_id": 7,
        "metric": "revenue",
        "target_value": 1000,
        "scope": "global",
        "target_category": None,
        "target_sku": None,
        "period": "30d",
        "description": "",
        "is_active": True,
        "created_at": T0.replace(tzinfo=None),
    }
    row.update(overrides)
    return row
