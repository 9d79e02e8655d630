"""Read-only projections over the ledger, pools and allocations.

Every query is scoped to the caller's company and returns rows in a fixed
order so repeated calls over the same state produce identical results.
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tippool.core.errors import NotFoundError, ValidationError, FIELDS_REQUIRED, INVALID_DEPARTMENT
from tippool.core.rbac import RequestContext, UserRole, require_capability
from tippool.core.validators import parse_date, require_date_range
from tippool.models.pools import Allocation, Pool, PoolEntry
from tippool.models.tips import Category, CollectedTip, Department, DepartmentType
from tippool.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class QueryService:
    """Reporting queries for collectors and managers."""

    def __init__(self, db: Session):
        self.db = db

    def tips_by_collector(
        self,
        ctx: RequestContext,
        user_id: int,
        start_date: Optional[Any],
        end_date: Optional[Any],
    ) -> Dict[str, Any]:
        """A collector's entries over a date range, with the gross total."""
        items = LedgerService(self.db).list_by_collector(ctx, user_id, start_date, end_date)
        start, end = require_date_range(start_date, end_date)
        return {
            "user_id": user_id,
            "start_date": start,
            "end_date": end,
            "total_gross": sum((item.gross_tips for item in items), Decimal("0")),
            "items": items,
            "total": len(items),
        }

    def pools_over_time(
        self,
        ctx: RequestContext,
        start_date: Optional[Any] = None,
        end_date: Optional[Any] = None,
    ) -> List[Pool]:
        """Pools whose whole period lies within the optional bounds, oldest first."""
        require_capability(ctx, UserRole.MANAGER)
        query = (
            select(Pool)
            .where(Pool.company_id == ctx.company_id)
            .options(selectinload(Pool.allocations))
            .order_by(Pool.period_start, Pool.sequence, Pool.id)
        )
        has_start = start_date not in (None, "")
        has_end = end_date not in (None, "")
        if has_start and has_end:
            start, end = require_date_range(start_date, end_date)
            query = query.where(Pool.period_start >= start, Pool.period_end <= end)
        elif has_start:
            query = query.where(Pool.period_start >= parse_date(start_date, "start_date"))
        elif has_end:
            query = query.where(Pool.period_end <= parse_date(end_date, "end_date"))
        return list(self.db.execute(query).scalars().all())

    def pool_details(self, ctx: RequestContext, pool_id: int) -> Dict[str, Any]:
        """A pool and its allocations, largest amount first."""
        require_capability(ctx, UserRole.MANAGER)
        pool = self.db.execute(
            select(Pool)
            .where(Pool.id == pool_id, Pool.company_id == ctx.company_id)
            .options(
                selectinload(Pool.allocations).selectinload(Allocation.department),
                selectinload(Pool.allocations).selectinload(Allocation.category),
            )
        ).scalar_one_or_none()
        if pool is None:
            raise NotFoundError("Pool", pool_id)

        allocations = sorted(pool.allocations, key=lambda a: (-a.amount, a.category_id, a.department_id))
        return {
            "id": pool.id,
            "company_id": pool.company_id,
            "period_start": pool.period_start,
            "period_end": pool.period_end,
            "sequence": pool.sequence,
            "adjusts_pool_id": pool.adjusts_pool_id,
            "total_amount": pool.total_amount,
            "entry_count": pool.entry_count,
            "status": pool.status,
            "finalized_at": pool.finalized_at,
            "allocated_amount": pool.allocated_amount,
            "allocation_count": pool.allocation_count,
            "allocations": allocations,
        }

    def pool_entries(self, ctx: RequestContext, pool_id: int) -> List[CollectedTip]:
        """Ledger entries counted in a pool, by service date."""
        require_capability(ctx, UserRole.MANAGER)
        exists = self.db.execute(
            select(Pool.id).where(Pool.id == pool_id, Pool.company_id == ctx.company_id)
        ).scalar_one_or_none()
        if exists is None:
            raise NotFoundError("Pool", pool_id)

        query = (
            select(CollectedTip)
            .join(PoolEntry, PoolEntry.entry_id == CollectedTip.id)
            .where(PoolEntry.pool_id == pool_id)
            .order_by(CollectedTip.service_date, CollectedTip.id)
        )
        return list(self.db.execute(query).scalars().all())

    def department_summary(
        self,
        ctx: RequestContext,
        department_id: Optional[int],
        start_date: Optional[Any],
        end_date: Optional[Any],
    ) -> Dict[str, Any]:
        """Total allocated to a receiver department over a pay period.

        Counts allocations of pools whose whole period lies within the range,
        with a per-category breakdown ordered by category name.
        """
        require_capability(ctx, UserRole.MANAGER)
        if department_id is None or start_date in (None, "") or end_date in (None, ""):
            raise ValidationError(FIELDS_REQUIRED, "department_id, start_date and end_date are required")
        start, end = require_date_range(start_date, end_date)

        department = self.db.execute(
            select(Department).where(
                Department.id == department_id,
                Department.company_id == ctx.company_id,
                Department.not_deleted(),
            )
        ).scalar_one_or_none()
        if department is None:
            raise NotFoundError("Department", department_id)
        if department.department_type != DepartmentType.RECEIVER.value:
            raise ValidationError(
                INVALID_DEPARTMENT,
                f"Department {department_id} is not a receiver department",
                {"department_id": department_id, "department_type": department.department_type},
            )

        rows = self.db.execute(
            select(Allocation.pool_id, Allocation.category_id, Category.name, Allocation.amount)
            .join(Pool, Allocation.pool_id == Pool.id)
            .join(Category, Allocation.category_id == Category.id)
            .where(
                Allocation.department_id == department.id,
                Allocation.company_id == ctx.company_id,
                Pool.period_start >= start,
                Pool.period_end <= end,
            )
            .order_by(Category.name, Allocation.category_id, Allocation.pool_id)
        ).all()

        breakdown: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()
        pools = set()
        for pool_id, category_id, category_name, amount in rows:
            pools.add(pool_id)
            item = breakdown.setdefault(
                category_id,
                {"category_id": category_id, "category_name": category_name, "amount": Decimal("0")},
            )
            item["amount"] += amount

        total = sum((item["amount"] for item in breakdown.values()), Decimal("0"))
        logger.debug(
            f"Department {department.id} summary {start}..{end}: {total} from {len(pools)} pools"
        )
        return {
            "department_id": department.id,
            "department_name": department.name,
            "start_date": start,
            "end_date": end,
            "pool_count": len(pools),
            "total_amount": total,
            "category_breakdown": list(breakdown.values()),
        }
