"""Goal domain types — immutable definitions, records and derived results.

A GoalDefinition ties a sales metric to a target over a window of days that
starts at created_at. The evaluator turns one definition plus the owner's sale
records into a GoalProgress; a GoalHistory is the frozen snapshot written once
a goal reaches a terminal status.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class ConfigurationError(ValueError):
    """Goal definition is structurally invalid (period, scope/target pairing, target value)."""


class Metric(str, Enum):
    revenue = "revenue"
    units_sold = "unitsSold"
    profit = "profit"
    profit_margin = "profitMargin"


class Scope(str, Enum):
    global_ = "global"
    category = "category"
    sku = "sku"


class GoalStatus(str, Enum):
    met = "met"
    on_track = "on_track"
    off_track = "off_track"
    unmet = "unmet"


TERMINAL_STATUSES = frozenset({GoalStatus.met, GoalStatus.unmet})

METRIC_LABELS: dict[str, str] = {
    Metric.revenue.value: "Revenue",
    Metric.units_sold.value: "Units Sold",
    Metric.profit.value: "Profit",
    Metric.profit_margin.value: "Profit Margin",
}


@dataclass(frozen=True, slots=True)
class SaleRecord:
    date: datetime
    revenue: float
    cost: float
    quantity: int
    sku: str
    category: str | None = None


@dataclass(frozen=True, slots=True)
class GoalDefinition:
    id: int | None
    metric: Metric
    target_value: float
    scope: Scope
    period: str  # "7d" | "30d" | "90d" | "180d" | "365d" | "1y" ...
    created_at: datetime
    target_category: str | None = None
    target_sku: str | None = None
    is_active: bool = True
    description: str = ""
    owner_id: int | None = None

    @property
    def target(self) -> str | None:
        """Category or SKU the goal is restricted to (None for global scope)."""
        if self.scope == Scope.category:
            return self.target_category
        if self.scope == Scope.sku:
            return self.target_sku
        return None


@dataclass(frozen=True, slots=True)
class GoalProgress:
    current_value: float
    progress_percentage: float  # 0–100
    time_elapsed_percentage: float  # 0–100
    days_remaining: int
    is_expired: bool
    status: GoalStatus
    elapsed_days: float
    period_days: int
    start_date: datetime
    end_date: datetime
    record_count: int = 0


@dataclass(frozen=True, slots=True)
class GoalHistory:
    original_goal_id: int | None
    owner_id: int | None
    metric: Metric
    target_value: float
    final_value: float
    progress_percentage: float
    scope: Scope
    target_category: str | None
    target_sku: str | None
    period: str
    description: str
    status: GoalStatus
    start_date: datetime
    end_date: datetime
    completed_at: datetime
    days_to_complete: int
    id: int | None = None


def enum_value(value: Enum | str) -> str:
    """Plain string for an enum member or an already-raw value."""
    return value.value if isinstance(value, Enum) else str(value)


def as_utc(ts: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Period tokens
# ---------------------------------------------------------------------------

_PERIOD_RE = re.compile(r"^\s*([0-9]+)\s*([dwy])\s*$", re.IGNORECASE)
_UNIT_DAYS = {"d": 1, "w": 7, "y": 365}
MAX_PERIOD_DAYS = 36500


def parse_period(token: str) -> int:
    """Convert a period token ("30d", "2w", "1y") to a number of days.

    Raises ConfigurationError for anything unparsable, zero-length or longer
    than MAX_PERIOD_DAYS.
    """
    if not isinstance(token, str):
        raise ConfigurationError(f"Goal period must be a string token, got {token!r}")
    match = _PERIOD_RE.match(token)
    if match is None:
        raise ConfigurationError(f"Unparsable goal period: {token!r}")
    try:
        days = int(match.group(1)) * _UNIT_DAYS[match.group(2).lower()]
    except ValueError:
        raise ConfigurationError(f"Unparsable goal period: {token!r}")
    if days <= 0:
        raise ConfigurationError(f"Goal period must be at least one day: {token!r}")
    if days > MAX_PERIOD_DAYS:
        raise ConfigurationError(f"Goal period exceeds {MAX_PERIOD_DAYS} days: {token!r}")
    return days


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _is_set(value: str | None) -> bool:
    return value is not None and value.strip() != ""


def check_metric(metric: str) -> Metric:
    try:
        return Metric(metric)
    except ValueError:
        raise ConfigurationError(f"Unknown goal metric: {metric!r}")


def check_scope(scope: str, target_category: str | None, target_sku: str | None) -> Scope:
    """Exactly one of {none, target_category, target_sku} must be set, matching scope."""
    try:
        resolved = Scope(scope)
    except ValueError:
        raise ConfigurationError(f"Unknown goal scope: {scope!r}")

    has_category = _is_set(target_category)
    has_sku = _is_set(target_sku)
    if resolved == Scope.global_ and (has_category or has_sku):
        raise ConfigurationError("Global goals cannot name a target category or SKU")
    if resolved == Scope.category and (not has_category or has_sku):
        raise ConfigurationError("Category goals require target_category and no target_sku")
    if resolved == Scope.sku and (not has_sku or has_category):
        raise ConfigurationError("SKU goals require target_sku and no target_category")
    return resolved


def validate_goal(goal: GoalDefinition) -> int:
    """Creation-time validation. Returns the period length in days."""
    check_metric(goal.metric)
    check_scope(goal.scope, goal.target_category, goal.target_sku)
    period_days = parse_period(goal.period)
    if not math.isfinite(goal.target_value) or goal.target_value <= 0:
        raise ConfigurationError(f"Goal target value must be positive, got {goal.target_value}")
    return period_days
