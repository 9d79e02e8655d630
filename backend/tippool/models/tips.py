"""Distribution configuration and collection ledger models."""

from __future__ import annotations
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import Boolean, String, Integer, Date, DateTime, ForeignKey, Numeric, UniqueConstraint, Index, event, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tippool.db.base import Base, TimestampMixin, SoftDeleteMixin
from tippool.models.validators import non_negative, percentage


class DepartmentType(str, Enum):
    """Department roles in the tip flow."""
    COLLECTOR = "COLLECTOR"
    RECEIVER = "RECEIVER"


class PaymentMethod(str, Enum):
    """How the tip was paid by the guest."""
    CASH = "cash"
    CARD = "card"
    OTHER = "other"


class Department(Base, TimestampMixin, SoftDeleteMixin):
    """Organizational department, either collecting tips or receiving a share."""

    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Relationships
    categories: Mapped[List["Category"]] = relationship(back_populates="department")
    shares: Mapped[List["DistributionShare"]] = relationship(
        back_populates="department",
        cascade="all, delete-orphan",
        order_by="DistributionShare.category_id",
    )

    @property
    def distribution(self) -> Dict[int, Decimal]:
        """Active distribution as {category_id: percent}."""
        return {share.category_id: share.percent for share in self.shares}

    @property
    def is_receiver(self) -> bool:
        return self.department_type == DepartmentType.RECEIVER.value

    @validates("department_type")
    def _validate_type(self, key, value):
        return DepartmentType(value).value


class Category(Base, TimestampMixin, SoftDeleteMixin):
    """Job category within a department (e.g. Server, Busser, Host)."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Holder may both collect and receive tips
    is_dual_role: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    department: Mapped["Department"] = relationship(back_populates="categories")

    @property
    def department_name(self) -> Optional[str]:
        return self.department.name if self.department else None

    @property
    def department_type(self) -> Optional[str]:
        return self.department.department_type if self.department else None


class DistributionShare(Base):
    """One (category, percent) pair of a department's distribution."""

    __tablename__ = "distribution_shares"
    __table_args__ = (
        UniqueConstraint("department_id", "category_id", name="uq_distribution_share"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False, index=True)
    percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    # Relationships
    department: Mapped["Department"] = relationship(back_populates="shares")
    category: Mapped["Category"] = relationship()

    @validates("percent")
    def _validate_percent(self, key, value):
        return percentage(key, value)


class CollectedTip(Base):
    """Ledger entry: gross tips reported by a collector for one service date.

    Append-only. Rows are never updated or deleted; see the ``before_update``
    listener below.
    """

    __tablename__ = "daily_reports"
    __table_args__ = (
        Index("ix_daily_reports_company_date", "company_id", "service_date"),
        Index("ix_daily_reports_user_date", "user_id", "service_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False, index=True)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    gross_tips: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    net_tips: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), default=PaymentMethod.CASH.value, nullable=False)
    source: Mapped[str] = mapped_column(String(50), default="manual", nullable=False)
    was_collector: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    recorded_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    # Relationships
    category: Mapped["Category"] = relationship()

    @validates("gross_tips", "net_tips")
    def _validate_amount(self, key, value):
        return non_negative(key, value)


@event.listens_for(CollectedTip, "before_update")
def _ledger_is_append_only(mapper, connection, target):
    raise ValueError(f"Ledger entry {target.id} is immutable")


@event.listens_for(CollectedTip, "before_delete")
def _ledger_rows_are_never_deleted(mapper, connection, target):
    raise ValueError(f"Ledger entry {target.id} cannot be deleted")
