"""Database connector — async access to sales, goals and goal_history.

Tables (pre-existing):
  sales        id, user_id, inventory_id, sku, quantity, total_revenue, total_cost, sale_date
  inventory    id, category
  goals        id, user_id, metric, target_value, scope, target_category, target_sku,
               period, description, is_active, created_at, updated_at
  goal_history id, user_id, original_goal_id, metric, target_value, final_value,
               progress_percentage, scope, target_category, target_sku, period,
               description, status, start_date, end_date, completed_at, days_to_complete

Every query is restricted to one owner. Timestamps are stored as naive UTC.
Numeric columns come back as Decimal from asyncpg and are converted to float
here. Nothing in this module commits.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.goals.definitions import GoalDefinition, GoalHistory, GoalStatus, Metric, SaleRecord, Scope, as_utc

GOAL_COLUMNS = (
    "id, user_id, metric, target_value, scope, target_category, target_sku, "
    "period, description, is_active, created_at"
)

HISTORY_COLUMNS = (
    "id, user_id, original_goal_id, metric, target_value, final_value, progress_percentage, "
    "scope, target_category, target_sku, period, description, status, start_date, end_date, "
    "completed_at, days_to_complete"
)

# Columns a PATCH may touch
EDITABLE_GOAL_COLUMNS = (
    "metric",
    "target_value",
    "scope",
    "target_category",
    "target_sku",
    "period",
    "description",
    "is_active",
)


def _num(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)


def _coerce(enum_cls: type[Enum], value: Any) -> Any:
    """Enum member when known, raw value otherwise (the evaluator rejects it later)."""
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


def _db_ts(ts: datetime) -> datetime:
    return as_utc(ts).replace(tzinfo=None)


def row_to_sale(row: dict[str, Any]) -> SaleRecord:
    return SaleRecord(
        date=row["sale_date"],
        revenue=_num(row.get("total_revenue")),
        cost=_num(row.get("total_cost")),
        quantity=int(row.get("quantity") or 0),
        sku=row.get("sku") or "",
        category=row.get("category"),
    )


def row_to_goal(row: dict[str, Any]) -> GoalDefinition:
    return GoalDefinition(
        id=row["id"],
        owner_id=row.get("user_id"),
        metric=_coerce(Metric, row["metric"]),
        target_value=_num(row["target_value"]),
        scope=_coerce(Scope, row["scope"]),
        period=row["period"],
        created_at=row["created_at"],
        target_category=row.get("target_category") or None,
        target_sku=row.get("target_sku") or None,
        is_active=bool(row.get("is_active", True)),
        description=row.get("description") or "",
    )


def row_to_history(row: dict[str, Any]) -> GoalHistory:
    return GoalHistory(
        id=row["id"],
        owner_id=row.get("user_id"),
        original_goal_id=row.get("original_goal_id"),
        metric=_coerce(Metric, row["metric"]),
        target_value=_num(row["target_value"]),
        final_value=_num(row["final_value"]),
        progress_percentage=_num(row["progress_percentage"]),
        scope=_coerce(Scope, row["scope"]),
        target_category=row.get("target_category") or None,
        target_sku=row.get("target_sku") or None,
        period=row["period"],
        description=row.get("description") or "",
        status=_coerce(GoalStatus, row["status"]),
        start_date=row["start_date"],
        end_date=row["end_date"],
        completed_at=row["completed_at"],
        days_to_complete=int(row.get("days_to_complete") or 0),
    )


async def _fetch_dicts(session: AsyncSession, query: str, params: dict[str, Any]) -> list[dict[str, Any]]:
    result = await session.execute(text(query), params)
    columns = list(result.keys())
    return [dict(zip(columns, r)) for r in result.fetchall()]


async def _fetch_one(session: AsyncSession, query: str, params: dict[str, Any]) -> dict[str, Any] | None:
    rows = await _fetch_dicts(session, query, params)
    return rows[0] if rows else None


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

async def fetch_records_for_goal(
    session: AsyncSession,
    owner_id: int,
    scope: Scope | str,
    target: str | None,
    since: datetime,
    until: datetime,
) -> Sequence[SaleRecord]:
    """Fetch the owner's sales dated in [since, until], narrowed to the goal scope.

    Category comes from the inventory row the sale points at.
    Returns an empty list when nothing is found.
    """
    query = (
        "SELECT s.sale_date, s.total_revenue, s.total_cost, s.quantity, s.sku, i.category "
        "FROM sales s LEFT JOIN inventory i ON i.id = s.inventory_id "
        "WHERE s.user_id = :owner_id AND s.sale_date >= :since AND s.sale_date <= :until"
    )
    params: dict[str, Any] = {"owner_id": owner_id, "since": _db_ts(since), "until": _db_ts(until)}
    if scope == Scope.category:
        query += " AND i.category = :target"
        params["target"] = target
    elif scope == Scope.sku:
        query += " AND s.sku = :target"
        params["target"] = target
    query += " ORDER BY s.sale_date, s.id"

    return [row_to_sale(r) for r in await _fetch_dicts(session, query, params)]


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

async def fetch_goals(
    session: AsyncSession,
    owner_id: int,
    active_only: bool = True,
    for_update: bool = False,
) -> list[GoalDefinition]:
    """Owner's goals, newest first. for_update locks the rows until the transaction ends."""
    query = f"SELECT {GOAL_COLUMNS} FROM goals WHERE user_id = :owner_id"
    if active_only:
        query += " AND is_active = true"
    query += " ORDER BY created_at DESC, id DESC"
    if for_update:
        query += " FOR UPDATE"
    return [row_to_goal(r) for r in await _fetch_dicts(session, query, {"owner_id": owner_id})]


async def fetch_goal(session: AsyncSession, owner_id: int, goal_id: int) -> GoalDefinition | None:
    row = await _fetch_one(
        session,
        f"SELECT {GOAL_COLUMNS} FROM goals WHERE id = :goal_id AND user_id = :owner_id",
        {"goal_id": goal_id, "owner_id": owner_id},
    )
    return row_to_goal(row) if row else None


async def insert_goal(session: AsyncSession, owner_id: int, goal: GoalDefinition) -> GoalDefinition:
    row = await _fetch_one(
        session,
        "INSERT INTO goals (user_id, metric, target_value, scope, target_category, target_sku, "
        "period, description, is_active, created_at, updated_at) "
        "VALUES (:owner_id, :metric, :target_value, :scope, :target_category, :target_sku, "
        ":period, :description, :is_active, :created_at, :created_at) "
        f"RETURNING {GOAL_COLUMNS}",
        {
            "owner_id": owner_id,
            "metric": _value(goal.metric),
            "target_value": goal.target_value,
            "scope": _value(goal.scope),
            "target_category": goal.target_category,
            "target_sku": goal.target_sku,
            "period": goal.period,
            "description": goal.description,
            "is_active": goal.is_active,
            "created_at": _db_ts(goal.created_at),
        },
    )
    if row is None:
        raise RuntimeError("INSERT INTO goals returned no row")
    return row_to_goal(row)


async def update_goal(
    session: AsyncSession,
    owner_id: int,
    goal_id: int,
    fields: dict[str, Any],
    updated_at: datetime,
) -> GoalDefinition | None:
    """Apply whitelisted column edits. None when the goal does not exist for this owner."""
    changes = {k: _value(v) for k, v in fields.items() if k in EDITABLE_GOAL_COLUMNS}
    assignments = [f"{col} = :{col}" for col in changes]
    assignments.append("updated_at = :updated_at")
    row = await _fetch_one(
        session,
        f"UPDATE goals SET {', '.join(assignments)} "
        "WHERE id = :goal_id AND user_id = :owner_id "
        f"RETURNING {GOAL_COLUMNS}",
        {**changes, "updated_at": _db_ts(updated_at), "goal_id": goal_id, "owner_id": owner_id},
    )
    return row_to_goal(row) if row else None


async def set_goal_active(session: AsyncSession, owner_id: int, goal_id: int, active: bool) -> bool:
    row = await _fetch_one(
        session,
        "UPDATE goals SET is_active = :active WHERE id = :goal_id AND user_id = :owner_id RETURNING id",
        {"active": active, "goal_id": goal_id, "owner_id": owner_id},
    )
    return row is not None


async def delete_goal(session: AsyncSession, owner_id: int, goal_id: int) -> bool:
    row = await _fetch_one(
        session,
        "DELETE FROM goals WHERE id = :goal_id AND user_id = :owner_id RETURNING id",
        {"goal_id": goal_id, "owner_id": owner_id},
    )
    return row is not None


# ---------------------------------------------------------------------------
# Goal history
# ---------------------------------------------------------------------------

async def insert_history(session: AsyncSession, history: GoalHistory) -> GoalHistory | None:
    """Insert a snapshot unless one already exists for the same goal.

    Returns the stored snapshot, or None when the goal was already recorded.
    """
    row = await _fetch_one(
        session,
        "INSERT INTO goal_history (user_id, original_goal_id, metric, target_value, final_value, "
        "progress_percentage, scope, target_category, target_sku, period, description, status, "
        "start_date, end_date, completed_at, days_to_complete) "
        "SELECT :owner_id, :goal_id, :metric, :target_value, :final_value, :progress_percentage, "
        ":scope, :target_category, :target_sku, :period, :description, :status, :start_date, "
        ":end_date, :completed_at, :days_to_complete "
        "WHERE NOT EXISTS (SELECT 1 FROM goal_history WHERE original_goal_id = :goal_id) "
        f"RETURNING {HISTORY_COLUMNS}",
        {
            "owner_id": history.owner_id,
            "goal_id": history.original_goal_id,
            "metric": _value(history.metric),
            "target_value": history.target_value,
            "final_value": history.final_value,
            "progress_percentage": history.progress_percentage,
            "scope": _value(history.scope),
            "target_category": history.target_category,
            "target_sku": history.target_sku,
            "period": history.period,
            "description": history.description,
            "status": _value(history.status),
            "start_date": _db_ts(history.start_date),
            "end_date": _db_ts(history.end_date),
            "completed_at": _db_ts(history.completed_at),
            "days_to_complete": history.days_to_complete,
        },
    )
    return row_to_history(row) if row else None


async def fetch_history(session: AsyncSession, owner_id: int, limit: int = 100) -> list[GoalHistory]:
    query = (
        f"SELECT {HISTORY_COLUMNS} FROM goal_history WHERE user_id = :owner_id "
        "ORDER BY completed_at DESC, id DESC LIMIT :limit"
    )
    return [row_to_history(r) for r in await _fetch_dicts(session, query, {"owner_id": owner_id, "limit": limit})]
