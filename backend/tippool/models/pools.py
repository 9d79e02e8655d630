"""Pool and allocation models."""

from __future__ import annotations
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import String, Integer, Date, DateTime, ForeignKey, Numeric, UniqueConstraint, Index, event, func, inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tippool.db.base import Base
from tippool.models.validators import non_negative, percentage


class PoolStatus(str, Enum):
    """Pool lifecycle. Pools are created already finalized."""
    FINALIZED = "finalized"
    ALLOCATED = "allocated"


class Pool(Base):
    """Tips collected by a company over a period, pending or after distribution."""

    __tablename__ = "tip_pools"
    __table_args__ = (
        UniqueConstraint("company_id", "period_start", "period_end", "sequence", name="uq_tip_pool_period"),
        Index("ix_tip_pools_company_period", "company_id", "period_start"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    # 1 for the first pool of a period, n > 1 for adjustment pools of late entries
    sequence: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    adjusts_pool_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tip_pools.id"), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    entry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=PoolStatus.FINALIZED.value, nullable=False)
    finalized_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    # Relationships
    entries: Mapped[List["PoolEntry"]] = relationship(back_populates="pool")
    allocations: Mapped[List["Allocation"]] = relationship(back_populates="pool")

    @property
    def is_allocated(self) -> bool:
        return self.status == PoolStatus.ALLOCATED.value

    @property
    def allocated_amount(self) -> Decimal:
        return sum((a.amount for a in self.allocations), Decimal("0"))

    @property
    def allocation_count(self) -> int:
        return len(self.allocations)

    @validates("total_amount")
    def _validate_total(self, key, value):
        return non_negative(key, value)


# Columns of a finalized pool that may never change after insert
_FROZEN_POOL_COLUMNS = (
    "company_id", "period_start", "period_end", "sequence",
    "adjusts_pool_id", "total_amount", "entry_count", "finalized_at",
)


@event.listens_for(Pool, "before_update")
def _finalized_pool_is_frozen(mapper, connection, target):
    state = inspect(target)
    changed = [name for name in _FROZEN_POOL_COLUMNS if state.attrs[name].history.has_changes()]
    if changed:
        raise ValueError(f"Pool {target.id} is finalized, cannot change {', '.join(changed)}")


class PoolEntry(Base):
    """Membership of a ledger entry in a pool.

    ``entry_id`` is unique: a ledger entry can be counted in at most one pool.
    """

    __tablename__ = "pool_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    pool_id: Mapped[int] = mapped_column(ForeignKey("tip_pools.id"), nullable=False, index=True)
    entry_id: Mapped[int] = mapped_column(ForeignKey("daily_reports.id"), nullable=False, unique=True)

    # Relationships
    pool: Mapped["Pool"] = relationship(back_populates="entries")


class Allocation(Base):
    """Share of a pool assigned to a receiver department's category.

    Immutable snapshot of the distribution in force at allocation time.
    """

    __tablename__ = "pool_allocations"
    __table_args__ = (
        UniqueConstraint("pool_id", "department_id", "category_id", name="uq_pool_allocation_target"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    pool_id: Mapped[int] = mapped_column(ForeignKey("tip_pools.id"), nullable=False, index=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id"), nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)
    percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    # Relationships
    pool: Mapped["Pool"] = relationship(back_populates="allocations")
    department = relationship("Department")
    category = relationship("Category")

    @property
    def department_name(self) -> Optional[str]:
        return self.department.name if self.department else None

    @property
    def category_name(self) -> Optional[str]:
        return self.category.name if self.category else None

    @validates("amount")
    def _validate_amount(self, key, value):
        return non_negative(key, value)

    @validates("percent")
    def _validate_percent(self, key, value):
        return percentage(key, value)


@event.listens_for(Allocation, "before_update")
def _allocation_is_immutable(mapper, connection, target):
    raise ValueError(f"Allocation {target.id} is immutable")


class AggregationLock(Base):
    """One row per company, written first by every aggregation of that company."""

    __tablename__ = "pool_aggregation_locks"

    company_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
