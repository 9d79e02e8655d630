"""Pool and allocation schemas."""

from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal
from pydantic import BaseModel

from tippool.models.pools import PoolStatus


class AggregateRequest(BaseModel):
    """Period to aggregate. Both dates are checked by the service."""
    period_start: Optional[date] = None
    period_end: Optional[date] = None


class PoolResponse(BaseModel):
    """Schema for pool response."""
    id: int
    company_id: int
    period_start: date
    period_end: date
    sequence: int
    adjusts_pool_id: Optional[int] = None
    total_amount: Decimal
    entry_count: int
    status: PoolStatus
    finalized_at: datetime

    model_config = {"from_attributes": True}


class AllocationResponse(BaseModel):
    """Schema for one allocation row."""
    id: int
    pool_id: int
    department_id: int
    category_id: int
    percent: Decimal
    amount: Decimal
    department_name: Optional[str] = None
    category_name: Optional[str] = None

    model_config = {"from_attributes": True}


class AllocationSetResponse(BaseModel):
    """Result of allocating a pool."""
    pool_id: int
    total_amount: Decimal
    allocated_amount: Decimal
    created: bool
    allocations: List[AllocationResponse]


class PoolSummary(PoolResponse):
    """Pool row of the pools-over-time projection."""
    allocated_amount: Decimal
    allocation_count: int


class PoolDetail(PoolSummary):
    """Pool with its allocations."""
    allocations: List[AllocationResponse]


class PoolEntryResponse(BaseModel):
    """Ledger entry counted in a pool."""
    id: int
    user_id: int
    category_id: int
    service_date: date
    gross_tips: Decimal
    payment_method: str
    source: str

    model_config = {"from_attributes": True}


class CategoryBreakdown(BaseModel):
    category_id: int
    category_name: Optional[str] = None
    amount: Decimal


class DepartmentSummary(BaseModel):
    """Total a receiver department was allocated over a pay period."""
    department_id: int
    department_name: str
    start_date: date
    end_date: date
    pool_count: int
    total_amount: Decimal
    category_breakdown: List[CategoryBreakdown]


class PoolList(BaseModel):
    items: List[PoolSummary]
    total: int


class PoolEntryList(BaseModel):
    pool_id: int
    items: List[PoolEntryResponse]
    total: int
