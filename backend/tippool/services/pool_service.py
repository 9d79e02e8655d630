"""Pool aggregation.

Turns the unpooled collector entries of a company and period into a finalized
Pool. A ledger entry joins at most one pool (``pool_entries.entry_id`` is
unique), so aggregation can be re-run safely: a period that was already pooled
either yields the existing pool or, for entries recorded after finalization,
an adjustment pool with the next sequence number.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from tippool.core.config import settings
from tippool.core.errors import ConflictError, POOL_ALREADY_FINALIZED
from tippool.core.rbac import RequestContext, UserRole, require_capability
from tippool.core.validators import require_date_range
from tippool.db.session import unit_of_work
from tippool.models.pools import AggregationLock, Pool, PoolEntry, PoolStatus
from tippool.models.tips import Category, CollectedTip, Department, DepartmentType
from tippool.services.audit_service import log_action

logger = logging.getLogger(__name__)


class PoolService:
    """Service for aggregating ledger entries into finalized pools."""

    def __init__(self, db: Session):
        self.db = db

    def aggregate(self, ctx: RequestContext, period_start: Any, period_end: Any) -> Pool:
        """Aggregate the company's unpooled collector tips for a period.

        Returns the newly finalized pool, or the latest pool of the period when
        there is nothing new to pool.
        """
        require_capability(ctx, UserRole.MANAGER)
        start, end = require_date_range(period_start, period_end)

        conflict = ConflictError(
            POOL_ALREADY_FINALIZED,
            f"Period {start.isoformat()}..{end.isoformat()} was pooled concurrently",
            {"period_start": start.isoformat(), "period_end": end.isoformat()},
        )
        with unit_of_work(self.db, on_conflict=conflict):
            self._lock_company(ctx.company_id)
            self._reject_overlapping(ctx.company_id, start, end)

            existing = self._pools_for_period(ctx.company_id, start, end)
            entries = self._eligible_entries(ctx.company_id, start, end)
            total = sum((entry.gross_tips for entry in entries), Decimal("0"))

            if existing and not entries:
                latest = existing[-1]
                logger.info(
                    f"Period {start}..{end} of company {ctx.company_id} already pooled "
                    f"as pool {latest.id}, nothing new"
                )
                return latest

            original: Optional[Pool] = None
            if existing:
                if settings.late_entry_policy == "reject":
                    raise ConflictError(
                        POOL_ALREADY_FINALIZED,
                        f"Period {start.isoformat()}..{end.isoformat()} is already finalized",
                        {
                            "pool_id": existing[-1].id,
                            "unpooled_entries": len(entries),
                            "unpooled_total": format(total, "f"),
                        },
                    )
                original = existing[0]

            pool = Pool(
                company_id=ctx.company_id,
                period_start=start,
                period_end=end,
                sequence=existing[-1].sequence + 1 if existing else 1,
                adjusts_pool_id=original.id if original else None,
                total_amount=total,
                entry_count=len(entries),
                status=PoolStatus.FINALIZED.value,
                finalized_at=datetime.now(timezone.utc),
                created_by=ctx.user_id,
            )
            self.db.add(pool)
            self.db.flush()
            self.db.add_all([PoolEntry(pool_id=pool.id, entry_id=entry.id) for entry in entries])
            self.db.flush()
            log_action(self.db, ctx, "aggregate", "pool", pool.id, {
                "period_start": start.isoformat(),
                "period_end": end.isoformat(),
                "sequence": pool.sequence,
                "adjusts_pool_id": pool.adjusts_pool_id,
                "total_amount": format(total, "f"),
                "entry_count": len(entries),
            })

        self.db.refresh(pool)
        if original:
            logger.warning(
                f"Adjustment pool {pool.id} (sequence {pool.sequence}) created for "
                f"{len(entries)} late entries of period {start}..{end}, company {ctx.company_id}"
            )
        else:
            logger.info(
                f"Pool {pool.id} finalized for company {ctx.company_id}, "
                f"period {start}..{end}: {total} from {len(entries)} entries"
            )
        return pool

    def _lock_company(self, company_id: int) -> None:
        """Write the company's aggregation lock row before reading any pool.

        The row stays locked until the transaction ends, so concurrent
        aggregations of one company run one after another and each sees the
        pools the previous one committed. PostgreSQL holds a row lock; SQLite
        takes its database write lock on the first write.
        """
        now = datetime.now(timezone.utc)
        updated = self.db.execute(
            update(AggregationLock)
            .where(AggregationLock.company_id == company_id)
            .values(locked_at=now)
        ).rowcount
        if not updated:
            # First aggregation of the company; a concurrent insert hits the primary key
            self.db.add(AggregationLock(company_id=company_id, locked_at=now))
            self.db.flush()

    def _reject_overlapping(self, company_id: int, start: date, end: date) -> None:
        # Same date may never be pooled under two different period boundaries
        overlapping = self.db.execute(
            select(Pool.id, Pool.period_start, Pool.period_end)
            .where(
                Pool.company_id == company_id,
                Pool.period_start <= end,
                Pool.period_end >= start,
                or_(Pool.period_start != start, Pool.period_end != end),
            )
            .order_by(Pool.period_start, Pool.id)
        ).first()
        if overlapping is not None:
            raise ConflictError(
                POOL_ALREADY_FINALIZED,
                f"Period overlaps pool {overlapping.id} "
                f"({overlapping.period_start.isoformat()}..{overlapping.period_end.isoformat()})",
                {
                    "pool_id": overlapping.id,
                    "period_start": overlapping.period_start.isoformat(),
                    "period_end": overlapping.period_end.isoformat(),
                },
            )

    def _pools_for_period(self, company_id: int, start: date, end: date) -> List[Pool]:
        query = (
            select(Pool)
            .where(
                Pool.company_id == company_id,
                Pool.period_start == start,
                Pool.period_end == end,
            )
            .order_by(Pool.sequence)
        )
        return list(self.db.execute(query).scalars().all())

    def _eligible_entries(self, company_id: int, start: date, end: date) -> List[CollectedTip]:
        """Unpooled collector entries of the period.

        Categories of COLLECTOR departments contribute, and so do dual-role
        categories wherever they sit.
        """
        pooled = select(PoolEntry.entry_id)
        query = (
            select(CollectedTip)
            .join(Category, CollectedTip.category_id == Category.id)
            .join(Department, Category.department_id == Department.id)
            .where(
                CollectedTip.company_id == company_id,
                CollectedTip.was_collector.is_(True),
                CollectedTip.service_date >= start,
                CollectedTip.service_date <= end,
                CollectedTip.id.not_in(pooled),
                or_(
                    Department.department_type == DepartmentType.COLLECTOR.value,
                    Category.is_dual_role.is_(True),
                ),
            )
            .order_by(CollectedTip.id)
        )
        return list(self.db.execute(query).scalars().all())
