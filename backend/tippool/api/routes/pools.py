"""Pool routes: aggregation, allocation and pool history."""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from tippool.core.rate_limit import limiter, WRITE_LIMIT
from tippool.core.rbac import RequireManager
from tippool.core.responses import list_response
from tippool.db.session import DbSession
from tippool.schemas.pools import (
    AggregateRequest, AllocationSetResponse, PoolDetail, PoolEntryList, PoolList, PoolResponse,
)
from tippool.services.allocation_service import AllocationService
from tippool.services.pool_service import PoolService
from tippool.services.query_service import QueryService

router = APIRouter()


@router.get("/", response_model=PoolList)
@limiter.limit("60/minute")
def list_pools(
    request: Request,
    db: DbSession,
    current_user: RequireManager,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Pools in chronological order, optionally bounded by date."""
    return list_response(QueryService(db).pools_over_time(current_user, start_date, end_date))


@router.post("/aggregate", response_model=PoolResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
def aggregate_period(request: Request, body: AggregateRequest, db: DbSession, current_user: RequireManager):
    """Finalize a pool for a period (requires Manager role).

    Returns the existing pool when the period has nothing new to pool.
    """
    return PoolService(db).aggregate(current_user, body.period_start, body.period_end)


@router.get("/{pool_id}", response_model=PoolDetail)
@limiter.limit("60/minute")
def get_pool(request: Request, pool_id: int, db: DbSession, current_user: RequireManager):
    return QueryService(db).pool_details(current_user, pool_id)


@router.post("/{pool_id}/allocate", response_model=AllocationSetResponse)
@limiter.limit(WRITE_LIMIT)
def allocate_pool(
    request: Request,
    pool_id: int,
    db: DbSession,
    current_user: RequireManager,
    strict: bool = Query(False),
):
    """Distribute a pool to the receiver departments (requires Manager role)."""
    result = AllocationService(db).allocate(current_user, pool_id, strict=strict)
    return {
        "pool_id": result.pool.id,
        "total_amount": result.pool.total_amount,
        "allocated_amount": result.allocated_amount,
        "created": result.created,
        "allocations": result.allocations,
    }


@router.get("/{pool_id}/entries", response_model=PoolEntryList)
@limiter.limit("60/minute")
def get_pool_entries(request: Request, pool_id: int, db: DbSession, current_user: RequireManager):
    """Ledger entries counted in the pool."""
    return list_response(QueryService(db).pool_entries(current_user, pool_id), pool_id=pool_id)
