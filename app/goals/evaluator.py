"""Goal evaluation — pure stateless functions, no I/O, no clock reads.

`now` is always passed in by the caller so the same inputs give the same
GoalProgress on every call.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from app.goals.definitions import (
    GoalDefinition,
    GoalProgress,
    GoalStatus,
    Metric,
    SaleRecord,
    Scope,
    as_utc,
    check_metric,
    check_scope,
    parse_period,
)

SECONDS_PER_DAY = 86400.0


def clamp_pct(value: float) -> float:
    """Clamp to [0, 100]. NaN collapses to 0."""
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), 100.0)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def in_scope(goal: GoalDefinition, record: SaleRecord) -> bool:
    if goal.scope == Scope.category:
        return record.category == goal.target_category
    if goal.scope == Scope.sku:
        return record.sku == goal.target_sku
    return True


def filter_records(
    goal: GoalDefinition,
    records: Iterable[SaleRecord],
    now: datetime,
) -> list[SaleRecord]:
    """Records dated within [created_at, now] that match the goal's scope."""
    start = as_utc(goal.created_at)
    end = as_utc(now)
    return [r for r in records if start <= as_utc(r.date) <= end and in_scope(goal, r)]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def aggregate_metric(metric: Metric | str, records: Sequence[SaleRecord]) -> float:
    """Aggregate filtered records into the goal's current value.

    - revenue: Σ revenue
    - unitsSold: Σ quantity
    - profit: Σ (revenue - cost)
    - profitMargin: 100 * Σ profit / Σ revenue, 0 when Σ revenue is 0
    """
    metric = check_metric(metric)
    if metric == Metric.revenue:
        return float(sum(r.revenue for r in records))
    if metric == Metric.units_sold:
        return float(sum(r.quantity for r in records))

    profit = float(sum(r.revenue - r.cost for r in records))
    if metric == Metric.profit:
        return profit

    revenue = float(sum(r.revenue for r in records))
    if revenue == 0.0:
        return 0.0
    return 100.0 * profit / revenue


# ---------------------------------------------------------------------------
# Derived fields
# ---------------------------------------------------------------------------

def progress_pct(current_value: float, target_value: float) -> float:
    """Progress toward target, clamped 0–100. Non-positive targets give 0."""
    if target_value <= 0:
        return 0.0
    return clamp_pct(current_value * 100.0 / target_value)


def elapsed_days(start: datetime, now: datetime) -> float:
    return (as_utc(now) - as_utc(start)).total_seconds() / SECONDS_PER_DAY


def time_elapsed_pct(elapsed: float, period_days: int) -> float:
    return clamp_pct(elapsed * 100.0 / period_days)


def days_remaining(elapsed: float, period_days: int) -> int:
    return max(0, math.ceil(period_days - elapsed))


def classify_status(progress: float, time_pct: float, is_expired: bool) -> GoalStatus:
    """First match wins: met, unmet, on_track, off_track."""
    if progress >= 100.0:
        return GoalStatus.met
    if is_expired:
        return GoalStatus.unmet
    if progress >= time_pct:
        return GoalStatus.on_track
    return GoalStatus.off_track


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def evaluate(
    goal: GoalDefinition,
    records: Iterable[SaleRecord],
    now: datetime,
) -> GoalProgress:
    """Compute a GoalProgress for one goal at `now`.

    Raises ConfigurationError for an unparsable period or a scope/target
    mismatch. A non-positive target is not rejected here: it yields 0% progress.
    """
    period_days = parse_period(goal.period)
    check_scope(goal.scope, goal.target_category, goal.target_sku)

    matched = filter_records(goal, records, now)
    current = aggregate_metric(goal.metric, matched)

    elapsed = elapsed_days(goal.created_at, now)
    progress = progress_pct(current, goal.target_value)
    time_pct = time_elapsed_pct(elapsed, period_days)
    expired = elapsed > period_days
    start = as_utc(goal.created_at)

    return GoalProgress(
        current_value=current,
        progress_percentage=progress,
        time_elapsed_percentage=time_pct,
        days_remaining=days_remaining(elapsed, period_days),
        is_expired=expired,
        status=classify_status(progress, time_pct, expired),
        elapsed_days=elapsed,
        period_days=period_days,
        start_date=start,
        end_date=start + timedelta(days=period_days),
        record_count=len(matched),
    )
