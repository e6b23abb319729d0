"""Goal service — fetch records, evaluate, settle terminal goals.

All I/O happens here; the evaluator only ever sees a fixed record snapshot and
the `now` the caller chose.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.goals import connector, evaluator
from app.goals.definitions import (
    ConfigurationError,
    GoalDefinition,
    GoalHistory,
    GoalProgress,
    Scope,
    as_utc,
    enum_value,
    validate_goal,
)
from app.goals.history import snapshot_history
from app.log import get_logger

logger = get_logger("goals.service")


@dataclass(frozen=True, slots=True)
class GoalEvaluation:
    goal: GoalDefinition
    progress: GoalProgress | None = None
    error: str | None = None


async def evaluate_goal(
    session: AsyncSession,
    owner_id: int,
    goal: GoalDefinition,
    now: datetime,
) -> GoalProgress:
    """Evaluate one goal against the owner's sales in [created_at, now].

    Raises ConfigurationError when the goal cannot be evaluated.
    """
    records = await connector.fetch_records_for_goal(
        session,
        owner_id,
        goal.scope,
        goal.target,
        as_utc(goal.created_at),
        as_utc(now),
    )
    progress = evaluator.evaluate(goal, records, now)
    logger.debug(
        f"Goal {goal.id}: {progress.current_value}/{goal.target_value} "
        f"({progress.progress_percentage:.1f}%) over {progress.record_count} sales",
        extra={"owner_id": owner_id, "goal_id": goal.id, "status": progress.status.value},
    )
    return progress


async def evaluate_safely(
    session: AsyncSession,
    owner_id: int,
    goal: GoalDefinition,
    now: datetime,
) -> GoalEvaluation:
    """Like evaluate_goal, but a malformed goal is reported as unavailable."""
    try:
        progress = await evaluate_goal(session, owner_id, goal, now)
    except ConfigurationError as exc:
        logger.warning(
            f"Goal {goal.id} not available: {exc}",
            extra={"owner_id": owner_id, "goal_id": goal.id},
        )
        return GoalEvaluation(goal=goal, error=str(exc))
    return GoalEvaluation(goal=goal, progress=progress)


async def list_goal_progress(
    session: AsyncSession,
    owner_id: int,
    now: datetime,
    include_archived: bool = False,
) -> list[GoalEvaluation]:
    goals = await connector.fetch_goals(session, owner_id, active_only=not include_archived)
    return [await evaluate_safely(session, owner_id, goal, now) for goal in goals]


# ---------------------------------------------------------------------------
# Create / edit
# ---------------------------------------------------------------------------

async def create_goal(session: AsyncSession, owner_id: int, goal: GoalDefinition) -> GoalDefinition:
    """Validate, store and commit a new goal. Raises ConfigurationError if invalid."""
    validate_goal(goal)
    stored = await connector.insert_goal(session, owner_id, goal)
    await session.commit()
    logger.info(
        f"Created goal {stored.id}: {stored.target_value:g} {enum_value(stored.metric)} over {stored.period}",
        extra={"owner_id": owner_id, "goal_id": stored.id},
    )
    return stored


def _scope_targets(fields: dict[str, Any]) -> dict[str, Any]:
    """Clear targets the new scope does not use unless the edit sets them explicitly."""
    if "scope" not in fields:
        return fields
    scope = fields["scope"]
    merged = dict(fields)
    if scope != Scope.category:
        merged.setdefault("target_category", None)
    if scope != Scope.sku:
        merged.setdefault("target_sku", None)
    return merged


async def update_goal(
    session: AsyncSession,
    owner_id: int,
    goal_id: int,
    fields: dict[str, Any],
    now: datetime,
) -> GoalDefinition | None:
    """Apply an edit. None when the goal does not exist; ConfigurationError if the result is invalid."""
    existing = await connector.fetch_goal(session, owner_id, goal_id)
    if existing is None:
        return None

    changes = _scope_targets(fields)
    candidate = dataclasses.replace(existing, **changes)
    validate_goal(candidate)

    updated = await connector.update_goal(session, owner_id, goal_id, changes, now)
    await session.commit()
    return updated


async def archive_goal(session: AsyncSession, owner_id: int, goal_id: int) -> bool:
    found = await connector.set_goal_active(session, owner_id, goal_id, False)
    if found:
        await session.commit()
    return found


async def delete_goal(session: AsyncSession, owner_id: int, goal_id: int) -> bool:
    found = await connector.delete_goal(session, owner_id, goal_id)
    if found:
        await session.commit()
    return found


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

async def settle_goals(
    session: AsyncSession,
    owner_id: int,
    now: datetime,
) -> tuple[int, list[GoalHistory]]:
    """Snapshot every active goal that is met or unmet, then retire it.

    Retired goals are archived, or deleted when goals_delete_on_settle is set.
    Returns (active goals evaluated, snapshots written). Commits once.
    """
    # Row locks make a concurrent sweep wait, then skip goals this one retired.
    goals = await connector.fetch_goals(session, owner_id, active_only=True, for_update=True)
    settled: list[GoalHistory] = []

    for goal in goals:
        evaluation = await evaluate_safely(session, owner_id, goal, now)
        if evaluation.progress is None:
            continue
        snapshot = snapshot_history(goal, evaluation.progress, now)
        if snapshot is None:
            continue

        stored = await connector.insert_history(session, snapshot)
        if settings.goals_delete_on_settle:
            await connector.delete_goal(session, owner_id, goal.id)
        else:
            await connector.set_goal_active(session, owner_id, goal.id, False)

        if stored is None:
            logger.info(
                f"Goal {goal.id} already has a history snapshot, retired only",
                extra={"owner_id": owner_id, "goal_id": goal.id},
            )
            continue
        settled.append(stored)
        logger.info(
            f"Settled goal {goal.id} as {snapshot.status.value} "
            f"({snapshot.final_value}/{goal.target_value} {enum_value(goal.metric)})",
            extra={"owner_id": owner_id, "goal_id": goal.id, "status": snapshot.status.value},
        )

    await session.commit()
    return len(goals), settled
