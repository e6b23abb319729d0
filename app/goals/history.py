"""Goal history snapshots — built once a goal reaches met or unmet."""

from __future__ import annotations

import math
from datetime import datetime

from app.goals.definitions import TERMINAL_STATUSES, GoalDefinition, GoalHistory, GoalProgress, as_utc


def days_to_complete(progress: GoalProgress) -> int:
    return max(0, math.ceil(min(progress.elapsed_days, float(progress.period_days))))


def snapshot_history(
    goal: GoalDefinition,
    progress: GoalProgress,
    now: datetime,
) -> GoalHistory | None:
    """Freeze a terminal goal into a GoalHistory. None while still in play."""
    if progress.status not in TERMINAL_STATUSES:
        return None
    return GoalHistory(
        original_goal_id=goal.id,
        owner_id=goal.owner_id,
        metric=goal.metric,
        target_value=goal.target_value,
        final_value=progress.current_value,
        progress_percentage=progress.progress_percentage,
        scope=goal.scope,
        target_category=goal.target_category,
        target_sku=goal.target_sku,
        period=goal.period,
        description=goal.description,
        status=progress.status,
        start_date=progress.start_date,
        end_date=progress.end_date,
        completed_at=as_utc(now),
        days_to_complete=days_to_complete(progress),
    )
