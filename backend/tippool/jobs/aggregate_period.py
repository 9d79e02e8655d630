"""Scheduled pool aggregation.

Meant to run from cron once a pay period closes:

    python -m tippool.jobs.aggregate_period --company-id 7 --allocate

Without dates it aggregates the previous calendar month.
"""

import argparse
import logging
import sys
from datetime import date, timedelta
from typing import Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from tippool.core.errors import TipEngineError
from tippool.core.logging_config import configure_logging
from tippool.core.rbac import RequestContext, UserRole
from tippool.core.validators import parse_date
from tippool.db.session import SessionLocal
from tippool.services.allocation_service import AllocationService
from tippool.services.pool_service import PoolService

logger = logging.getLogger(__name__)

# Actor recorded in the audit log for unattended runs
SYSTEM_USER_ID = 0


def previous_month(today: date) -> Tuple[date, date]:
    """First and last day of the month before ``today``."""
    last_day = today.replace(day=1) - timedelta(days=1)
    return last_day.replace(day=1), last_day


def run(
    db: Session,
    company_id: int,
    period_start: date,
    period_end: date,
    allocate: bool = False,
    user_id: int = SYSTEM_USER_ID,
) -> dict:
    """Aggregate one period for a company, optionally allocating the pool."""
    ctx = RequestContext(user_id=user_id, company_id=company_id, role=UserRole.MANAGER)
    pool = PoolService(db).aggregate(ctx, period_start, period_end)
    result = {
        "pool_id": pool.id,
        "sequence": pool.sequence,
        "total_amount": pool.total_amount,
        "entry_count": pool.entry_count,
        "allocations": None,
    }
    if allocate:
        allocations = AllocationService(db).allocate(ctx, pool.id)
        result["allocations"] = len(allocations)
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Aggregate a pay period into a finalized tip pool")
    parser.add_argument("--company-id", type=int, required=True, help="Company to aggregate")
    parser.add_argument("--start", type=str, help="Period start (YYYY-MM-DD), default: first day of last month")
    parser.add_argument("--end", type=str, help="Period end (YYYY-MM-DD), default: last day of last month")
    parser.add_argument("--allocate", action="store_true", help="Allocate the pool after aggregating")
    parser.add_argument("--user-id", type=int, default=SYSTEM_USER_ID, help="Actor recorded in the audit log")
    args = parser.parse_args(argv)

    configure_logging()

    default_start, default_end = previous_month(date.today())
    db = SessionLocal()
    try:
        start = parse_date(args.start, "start") if args.start else default_start
        end = parse_date(args.end, "end") if args.end else default_end
        result = run(db, args.company_id, start, end, allocate=args.allocate, user_id=args.user_id)
    except TipEngineError as e:
        logger.error(f"Aggregation failed for company {args.company_id}: {e.code} {e.message} {e.details}")
        return 1 if e.retryable else 2
    finally:
        db.close()

    logger.info(
        f"Company {args.company_id} period {start}..{end}: pool {result['pool_id']} "
        f"(sequence {result['sequence']}) total {result['total_amount']} "
        f"from {result['entry_count']} entries"
        + (f", {result['allocations']} allocations" if result["allocations"] is not None else "")
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
