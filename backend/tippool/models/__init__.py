"""Database models."""

from tippool.models.tips import (
    DepartmentType, PaymentMethod,
    Department, Category, DistributionShare, CollectedTip,
)
from tippool.models.pools import PoolStatus, Pool, PoolEntry, Allocation, AggregationLock
from tippool.models.audit import AuditLogEntry

__all__ = [
    "DepartmentType",
    "PaymentMethod",
    "Department",
    "Category",
    "DistributionShare",
    "CollectedTip",
    "PoolStatus",
    "Pool",
    "PoolEntry",
    "Allocation",
    "AggregationLock",
    "AuditLogEntry",
]
