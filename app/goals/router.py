"""Goals HTTP router — CRUD, progress, settlement, history."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_owner_id, verify_api_key
from app.config import settings
from app.db import get_session
from app.goals import connector, service
from app.goals.definitions import GoalDefinition, as_utc
from app.goals.models import (
    GoalCreate,
    GoalHistoryOut,
    GoalOut,
    GoalUpdate,
    SettleResponse,
)

router = APIRouter(prefix="/api", tags=["goals"], dependencies=[Depends(verify_api_key)])


def _resolve_now(at: datetime | None) -> datetime:
    return as_utc(at) if at is not None else datetime.now(timezone.utc)


async def _goal_out(session: AsyncSession, owner_id: int, goal: GoalDefinition, now: datetime) -> GoalOut:
    evaluation = await service.evaluate_safely(session, owner_id, goal, now)
    return GoalOut.from_goal(goal, evaluation.progress, evaluation.error)


# ---------------------------------------------------------------------------
# /api/goals
# ---------------------------------------------------------------------------


@router.get("/goals", response_model=list[GoalOut])
async def goals_list(
    session: AsyncSession = Depends(get_session),
    owner_id: int = Depends(get_owner_id),
    include_archived: bool = Query(default=False, description="Also evaluate archived goals"),
    at: datetime | None = Query(default=None, description="Evaluate as of this instant (default: now)"),
) -> list[GoalOut]:
    now = _resolve_now(at)
    evaluations = await service.list_goal_progress(session, owner_id, now, include_archived)
    return [GoalOut.from_goal(e.goal, e.progress, e.error) for e in evaluations]


@router.post("/goals", response_model=GoalOut, status_code=201)
async def goals_create(
    body: GoalCreate,
    session: AsyncSession = Depends(get_session),
    owner_id: int = Depends(get_owner_id),
    at: datetime | None = Query(default=None, description="Creation instant (default: now)"),
) -> GoalOut:
    now = _resolve_now(at)
    goal = GoalDefinition(
        id=None,
        owner_id=owner_id,
        metric=body.metric,
        target_value=body.target_value,
        scope=body.scope,
        period=body.period or settings.goals_default_period,
        created_at=now,
        target_category=body.target_category,
        target_sku=body.target_sku,
        description=body.description,
    )
    stored = await service.create_goal(session, owner_id, goal)
    return await _goal_out(session, owner_id, stored, now)


# Static paths are registered before /goals/{goal_id}.


@router.get("/goals/history", response_model=list[GoalHistoryOut])
async def goals_history(
    session: AsyncSession = Depends(get_session),
    owner_id: int = Depends(get_owner_id),
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[GoalHistoryOut]:
    return [GoalHistoryOut.from_history(h) for h in await connector.fetch_history(session, owner_id, limit)]


@router.post("/goals/settle", response_model=SettleResponse)
async def goals_settle(
    session: AsyncSession = Depends(get_session),
    owner_id: int = Depends(get_owner_id),
    at: datetime | None = Query(default=None, description="Settle as of this instant (default: now)"),
) -> SettleResponse:
    evaluated, settled = await service.settle_goals(session, owner_id, _resolve_now(at))
    return SettleResponse(
        evaluated=evaluated,
        settled=[GoalHistoryOut.from_history(h) for h in settled],
    )


@router.get("/goals/{goal_id}", response_model=GoalOut)
async def goals_detail(
    goal_id: int,
    session: AsyncSession = Depends(get_session),
    owner_id: int = Depends(get_owner_id),
    at: datetime | None = Query(default=None, description="Evaluate as of this instant (default: now)"),
) -> GoalOut:
    goal = await connector.fetch_goal(session, owner_id, goal_id)
    if goal is None:
        raise HTTPException(status_code=404, detail=f"Unknown goal: {goal_id}")
    return await _goal_out(session, owner_id, goal, _resolve_now(at))


@router.patch("/goals/{goal_id}", response_model=GoalOut)
async def goals_update(
    goal_id: int,
    body: GoalUpdate,
    session: AsyncSession = Depends(get_session),
    owner_id: int = Depends(get_owner_id),
    at: datetime | None = Query(default=None, description="Evaluate as of this instant (default: now)"),
) -> GoalOut:
    now = _resolve_now(at)
    # null means "leave unchanged"
    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    updated = await service.update_goal(session, owner_id, goal_id, fields, now)
    if updated is None:
        raise HTTPException(status_code=404, detail=f"Unknown goal: {goal_id}")
    return await _goal_out(session, owner_id, updated, now)


@router.post("/goals/{goal_id}/archive", response_model=GoalOut)
async def goals_archive(
    goal_id: int,
    session: AsyncSession = Depends(get_session),
    owner_id: int = Depends(get_owner_id),
) -> GoalOut:
    if not await service.archive_goal(session, owner_id, goal_id):
        raise HTTPException(status_code=404, detail=f"Unknown goal: {goal_id}")
    goal = await connector.fetch_goal(session, owner_id, goal_id)
    if goal is None:
        raise HTTPException(status_code=404, detail=f"Unknown goal: {goal_id}")
    return GoalOut.from_goal(goal)


@router.delete("/goals/{goal_id}")
async def goals_delete(
    goal_id: int,
    session: AsyncSession = Depends(get_session),
    owner_id: int = Depends(get_owner_id),
) -> dict:
    if not await service.delete_goal(session, owner_id, goal_id):
        raise HTTPException(status_code=404, detail=f"Unknown goal: {goal_id}")
    return {"deleted": goal_id}
