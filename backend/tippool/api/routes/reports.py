"""Reporting routes."""

from typing import Optional

from fastapi import APIRouter, Query, Request

from tippool.core.rate_limit import limiter
from tippool.core.rbac import RequireManager
from tippool.db.session import DbSession
from tippool.schemas.pools import DepartmentSummary
from tippool.services.query_service import QueryService

router = APIRouter()


@router.get("/department-summary", response_model=DepartmentSummary)
@limiter.limit("60/minute")
def department_summary(
    request: Request,
    db: DbSession,
    current_user: RequireManager,
    department_id: Optional[int] = Query(None, alias="departmentId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Pay period summary of what a receiver department was allocated."""
    return QueryService(db).department_summary(current_user, department_id, start_date, end_date)
