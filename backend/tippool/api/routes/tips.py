"""Collection ledger routes."""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from tippool.core.rate_limit import limiter, WRITE_LIMIT
from tippool.core.rbac import CurrentUser
from tippool.db.session import DbSession
from tippool.schemas.tips import CollectedTipResponse, CollectorTipsResponse, TipCreate
from tippool.services.ledger_service import LedgerService
from tippool.services.query_service import QueryService

router = APIRouter()


@router.post("/", response_model=CollectedTipResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
def record_tip(request: Request, body: TipCreate, db: DbSession, current_user: CurrentUser):
    """Record collected tips for a service date.

    Employees record their own tips; managers may record for anyone.
    """
    return LedgerService(db).record_tip(
        current_user,
        category_id=body.category_id,
        service_date=body.service_date,
        gross_tips=body.gross_tips,
        payment_method=body.payment_method,
        source=body.source,
        user_id=body.user_id,
    )


@router.get("/collector/{user_id}", response_model=CollectorTipsResponse)
@limiter.limit("60/minute")
def tips_by_collector(
    request: Request,
    user_id: int,
    db: DbSession,
    current_user: CurrentUser,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """List a collector's tips between two dates, newest first."""
    return QueryService(db).tips_by_collector(current_user, user_id, start_date, end_date)
