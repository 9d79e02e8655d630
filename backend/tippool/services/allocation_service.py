"""Allocation of finalized pools to receiver categories.

Shares are computed in minor currency units with the largest-remainder method
so the allocations of a pool always add up to its total exactly.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Hashable, Iterator, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tippool.core.config import settings
from tippool.core.errors import (
    ConflictError, NotFoundError,
    ALREADY_ALLOCATED, NO_RECEIVER_CONFIGURED,
)
from tippool.core.rbac import RequestContext, UserRole, require_capability
from tippool.db.session import unit_of_work
from tippool.models.pools import Allocation, Pool, PoolStatus
from tippool.models.tips import Department, DepartmentType
from tippool.services.audit_service import log_action

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def split_by_weights(
    total: Decimal,
    weights: Mapping[Hashable, int],
    exponent: Optional[int] = None,
) -> Dict[Hashable, Decimal]:
    """Split ``total`` proportionally to integer ``weights``.

    Every key gets the floor of its exact share in minor units; the leftover
    units go one each to the keys with the largest remainders, ties going to
    the smallest key. The result always sums to ``total``.

    Args:
        total: Non-negative amount with no digits below the minor unit.
        weights: Non-negative integer weight per key, not all zero.
        exponent: Number of minor-unit decimals, defaults to the configured
            currency exponent.
    """
    if exponent is None:
        exponent = settings.currency_exponent
    scaled = Decimal(total).scaleb(exponent)
    if scaled < 0 or scaled != scaled.to_integral_value():
        raise ValueError(f"Cannot split {total} in units of 10^-{exponent}")
    if any(w < 0 for w in weights.values()):
        raise ValueError("Weights must be non-negative")
    weight_sum = sum(weights.values())
    if weight_sum <= 0:
        raise ValueError("At least one weight must be positive")

    units = int(scaled)
    shares: Dict[Hashable, int] = {}
    remainders: List[Tuple[int, Hashable]] = []
    for key, weight in weights.items():
        shares[key], remainder = divmod(units * weight, weight_sum)
        remainders.append((remainder, key))

    leftover = units - sum(shares.values())
    remainders.sort(key=lambda item: (-item[0], item[1]))
    for _, key in remainders[:leftover]:
        shares[key] += 1

    quantum = Decimal(1).scaleb(-exponent)
    return {key: Decimal(amount).scaleb(-exponent).quantize(quantum) for key, amount in shares.items()}


@dataclass
class AllocationSet:
    """Allocations of one pool, and whether this call created them."""

    pool: Pool
    allocations: List[Allocation] = field(default_factory=list)
    created: bool = False

    @property
    def allocated_amount(self) -> Decimal:
        return sum((a.amount for a in self.allocations), Decimal("0"))

    def __iter__(self) -> Iterator[Allocation]:
        return iter(self.allocations)

    def __len__(self) -> int:
        return len(self.allocations)


class AllocationService:
    """Service for distributing finalized pools to receiver departments."""

    def __init__(self, db: Session):
        self.db = db

    def allocate(self, ctx: RequestContext, pool_id: int, strict: bool = False) -> AllocationSet:
        """Allocate a finalized pool across the active receiver distributions.

        A pool is allocated at most once. Calling again returns the stored
        allocations, or raises ALREADY_ALLOCATED when ``strict`` is set.
        """
        require_capability(ctx, UserRole.MANAGER)

        conflict = ConflictError(
            ALREADY_ALLOCATED,
            f"Pool {pool_id} was allocated concurrently",
            {"pool_id": pool_id},
        )
        try:
            with unit_of_work(self.db, on_conflict=conflict):
                pool = self._get_pool(ctx, pool_id, lock=True)
                if pool.is_allocated:
                    if strict:
                        raise ConflictError(
                            ALREADY_ALLOCATED,
                            f"Pool {pool_id} is already allocated",
                            {"pool_id": pool_id},
                        )
                    return AllocationSet(pool, self._stored_allocations(pool.id))

                created = self._create_allocations(ctx, pool)
                pool.status = PoolStatus.ALLOCATED.value
                self.db.flush()
                log_action(self.db, ctx, "allocate", "pool", pool.id, {
                    "total_amount": format(pool.total_amount, "f"),
                    "allocations": [
                        {
                            "department_id": a.department_id,
                            "category_id": a.category_id,
                            "percent": format(a.percent, "f"),
                            "amount": format(a.amount, "f"),
                        }
                        for a in created
                    ],
                })
        except ConflictError as e:
            if e.code != ALREADY_ALLOCATED or strict:
                raise
            # Lost the race against a concurrent allocation; return the winner's set
            logger.info(f"Pool {pool_id} allocated concurrently, returning stored allocations")
            self.db.expire_all()
            pool = self._get_pool(ctx, pool_id)
            return AllocationSet(pool, self._stored_allocations(pool.id))

        allocations = self._stored_allocations(pool.id)
        logger.info(
            f"Pool {pool.id} allocated: {pool.total_amount} over {len(allocations)} targets"
        )
        return AllocationSet(pool, allocations, created=True)

    def _create_allocations(self, ctx: RequestContext, pool: Pool) -> List[Allocation]:
        receivers = self._configured_receivers(ctx.company_id)
        if not receivers:
            raise ConflictError(
                NO_RECEIVER_CONFIGURED,
                "No receiver department has a distribution summing to 100",
                {"pool_id": pool.id},
            )

        # Weight is the percent in hundredths; each receiver department weighs
        # 10000 in total, which splits the pool evenly between departments
        percents: Dict[Tuple[int, int], Decimal] = {}
        weights: Dict[Tuple[int, int], int] = {}
        for department in receivers:
            for category_id, percent in department.distribution.items():
                key = (category_id, department.id)
                percents[key] = percent
                weights[key] = int((percent * 100).to_integral_value())

        amounts = split_by_weights(pool.total_amount, weights)
        allocations = [
            Allocation(
                pool_id=pool.id,
                company_id=pool.company_id,
                department_id=department_id,
                category_id=category_id,
                percent=percents[(category_id, department_id)],
                amount=amounts[(category_id, department_id)],
            )
            for category_id, department_id in sorted(weights, key=lambda k: (k[1], k[0]))
        ]
        self.db.add_all(allocations)
        return allocations

    def _configured_receivers(self, company_id: int) -> List[Department]:
        """Live receiver departments whose distribution is non-empty and sums to 100."""
        departments = self.db.execute(
            select(Department)
            .where(
                Department.company_id == company_id,
                Department.department_type == DepartmentType.RECEIVER.value,
                Department.not_deleted(),
            )
            .options(selectinload(Department.shares))
            .order_by(Department.id)
        ).scalars().all()

        receivers = []
        for department in departments:
            distribution = department.distribution
            if not distribution:
                continue
            if sum(distribution.values(), Decimal("0")) != HUNDRED:
                logger.warning(
                    f"Receiver department {department.id} distribution does not sum to 100, skipped"
                )
                continue
            receivers.append(department)
        return receivers

    def _get_pool(self, ctx: RequestContext, pool_id: int, lock: bool = False) -> Pool:
        query = select(Pool).where(Pool.id == pool_id, Pool.company_id == ctx.company_id)
        if lock:
            query = query.with_for_update()
        pool = self.db.execute(query).scalar_one_or_none()
        if pool is None:
            raise NotFoundError("Pool", pool_id)
        return pool

    def _stored_allocations(self, pool_id: int) -> List[Allocation]:
        query = (
            select(Allocation)
            .where(Allocation.pool_id == pool_id)
            .options(selectinload(Allocation.department), selectinload(Allocation.category))
            .order_by(Allocation.department_id, Allocation.category_id)
        )
        return list(self.db.execute(query).scalars().all())
