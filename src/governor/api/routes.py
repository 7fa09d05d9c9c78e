"""Operations routes: quota introspection and administration, error stats."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from governor.executor import RateLimitedExecutor
from governor.quota.tracker import DEFAULT_OPERATION

logger = logging.getLogger(__name__)
router = APIRouter()


def get_executor(request: Request) -> RateLimitedExecutor:
    """The executor owned by the application lifespan."""
    executor = getattr(request.app.state, "executor", None)
    if executor is None:
        raise HTTPException(status_code=503, detail="Executor not running")
    return executor


# --- Request/Response Models ---


class RateLimitConfigUpdate(BaseModel):
    """Partial rate limit override; omitted fields keep their value."""

    per_second: float | None = Field(default=None, gt=0)
    per_minute: int | None = Field(default=None, ge=0)
    per_hour: int | None = Field(default=None, ge=0)
    per_day: int | None = Field(default=None, ge=0)
    burst_limit: int | None = Field(default=None, ge=0)
    retry_after_default_ms: float | None = Field(default=None, ge=0)


class ResetResponse(BaseModel):
    provider: str
    operation: str | None = None
    removed: int


# --- Limits ---


@router.get("/limits")
async def list_limits(executor: RateLimitedExecutor = Depends(get_executor)) -> dict[str, Any]:
    """Status of every live bucket."""
    buckets = await executor.get_all_status()
    return {"buckets": buckets, "count": len(buckets)}


@router.get("/limits/{provider}")
async def get_limit(
    provider: str,
    operation: str = Query(default=DEFAULT_OPERATION),
    executor: RateLimitedExecutor = Depends(get_executor),
) -> dict[str, Any]:
    """Admission decision, request counts and config for one resource key."""
    return await executor.get_status(provider, operation)


@router.put("/limits/{provider}")
async def update_limit(
    provider: str,
    update: RateLimitConfigUpdate,
    executor: RateLimitedExecutor = Depends(get_executor),
) -> dict[str, Any]:
    """Merge a partial config into the provider's rate limits."""
    overrides = update.model_dump(exclude_none=True)
    if not overrides:
        raise HTTPException(status_code=400, detail="No config fields given")
    config = executor.set_config(provider, **overrides)
    return {"provider": provider, "config": config.to_dict()}


@router.delete("/limits/{provider}", response_model=ResetResponse)
async def reset_limit(
    provider: str,
    operation: str | None = Query(default=None),
    executor: RateLimitedExecutor = Depends(get_executor),
) -> ResetResponse:
    """Drop the provider's buckets (or one operation's)."""
    removed = executor.reset(provider, operation)
    return ResetResponse(provider=provider, operation=operation, removed=removed)


# --- Errors ---


@router.get("/errors")
async def error_stats(executor: RateLimitedExecutor = Depends(get_executor)) -> dict[str, Any]:
    """Classified error counts and the most recent errors."""
    return executor.get_error_stats()


@router.delete("/errors")
async def clear_errors(executor: RateLimitedExecutor = Depends(get_executor)) -> dict[str, Any]:
    executor.clear_error_stats()
    return {"cleared": True}
