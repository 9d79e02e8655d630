# Services module

from tippool.services.distribution_service import DistributionService
from tippool.services.ledger_service import LedgerService
from tippool.services.pool_service import PoolService
from tippool.services.allocation_service import (
    AllocationService,
    AllocationSet,
    split_by_weights,
)
from tippool.services.query_service import QueryService
from tippool.services.audit_service import log_action

__all__ = [
    "DistributionService",
    "LedgerService",
    "PoolService",
    "AllocationService",
    "AllocationSet",
    "split_by_weights",
    "QueryService",
    "log_action",
]
