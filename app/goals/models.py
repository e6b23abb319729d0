"""Goals API contract — Pydantic v2 models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.goals.definitions import (
    METRIC_LABELS,
    GoalDefinition,
    GoalHistory,
    GoalProgress,
    GoalStatus,
    Metric,
    Scope,
    enum_value,
)


class GoalCreate(BaseModel):
    metric: Metric
    target_value: float
    scope: Scope = Scope.global_
    target_category: str | None = None
    target_sku: str | None = None
    period: str | None = None  # falls back to settings.goals_default_period
    description: str = ""


class GoalUpdate(BaseModel):
    metric: Metric | None = None
    target_value: float | None = None
    scope: Scope | None = None
    target_category: str | None = None
    target_sku: str | None = None
    period: str | None = None
    description: str | None = None
    is_active: bool | None = None


class ProgressOut(BaseModel):
    current_value: float
    progress_percentage: float  # 0–100, one decimal
    time_elapsed_percentage: float  # 0–100, one decimal
    days_remaining: int
    is_expired: bool
    status: GoalStatus
    start_date: datetime
    end_date: datetime
    record_count: int = 0
    message: str = ""

    @classmethod
    def from_progress(cls, goal: GoalDefinition, progress: GoalProgress) -> ProgressOut:
        return cls(
            current_value=round(progress.current_value, 2),
            progress_percentage=round(progress.progress_percentage, 1),
            time_elapsed_percentage=round(progress.time_elapsed_percentage, 1),
            days_remaining=progress.days_remaining,
            is_expired=progress.is_expired,
            status=progress.status,
            start_date=progress.start_date,
            end_date=progress.end_date,
            record_count=progress.record_count,
            message=status_message(goal, progress),
        )


class GoalOut(BaseModel):
    """A goal plus its progress. available=False means it could not be evaluated."""

    id: int | None
    metric: str
    target_value: float
    scope: str
    target_category: str | None = None
    target_sku: str | None = None
    period: str
    description: str = ""
    is_active: bool = True
    created_at: datetime
    available: bool = True
    error: str | None = None
    progress: ProgressOut | None = None

    @classmethod
    def from_goal(
        cls,
        goal: GoalDefinition,
        progress: GoalProgress | None = None,
        error: str | None = None,
    ) -> GoalOut:
        return cls(
            id=goal.id,
            metric=enum_value(goal.metric),
            target_value=goal.target_value,
            scope=enum_value(goal.scope),
            target_category=goal.target_category,
            target_sku=goal.target_sku,
            period=goal.period,
            description=goal.description,
            is_active=goal.is_active,
            created_at=goal.created_at,
            available=error is None,
            error=error,
            progress=ProgressOut.from_progress(goal, progress) if progress is not None else None,
        )


class GoalHistoryOut(BaseModel):
    id: int | None = None
    original_goal_id: int | None
    metric: str
    target_value: float
    final_value: float
    progress_percentage: float
    scope: str
    target_category: str | None = None
    target_sku: str | None = None
    period: str
    description: str = ""
    status: str
    start_date: datetime
    end_date: datetime
    completed_at: datetime
    days_to_complete: int

    @classmethod
    def from_history(cls, h: GoalHistory) -> GoalHistoryOut:
        return cls(
            id=h.id,
            original_goal_id=h.original_goal_id,
            metric=enum_value(h.metric),
            target_value=h.target_value,
            final_value=round(h.final_value, 2),
            progress_percentage=round(h.progress_percentage, 1),
            scope=enum_value(h.scope),
            target_category=h.target_category,
            target_sku=h.target_sku,
            period=h.period,
            description=h.description,
            status=enum_value(h.status),
            start_date=h.start_date,
            end_date=h.end_date,
            completed_at=h.completed_at,
            days_to_complete=h.days_to_complete,
        )


class SettleResponse(BaseModel):
    evaluated: int = 0
    settled: list[GoalHistoryOut] = Field(default_factory=list)


def status_message(goal: GoalDefinition, progress: GoalProgress) -> str:
    """e.g. "Revenue: 60.0% of 1000 (on track)"."""
    label = METRIC_LABELS.get(enum_value(goal.metric), enum_value(goal.metric))
    status = enum_value(progress.status).replace("_", " ")
    return f"{label}: {progress.progress_percentage:.1f}% of {goal.target_value:g} ({status})"
