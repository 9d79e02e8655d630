"""Tests for reporting queries."""

import pytest
from decimal import Decimal

from tippool.core.errors import AuthorizationError, NotFoundError, ValidationError
from tippool.services.allocation_service import AllocationService
from tippool.services.distribution_service import DistributionService
from tippool.services.pool_service import PoolService
from tippool.services.query_service import QueryService

from conftest import EMPLOYEE_ID


@pytest.fixture
def history(db_session, manager_ctx, record, restaurant):
    """Two allocated months and one unallocated month."""
    DistributionService(db_session).set_distribution(manager_ctx, restaurant["support"].id, {
        restaurant["busser"].id: 60, restaurant["host"].id: 40,
    })
    record(restaurant["server"], "2024-01-03", 100)
    record(restaurant["server"], "2024-01-17", 50)
    record(restaurant["server"], "2024-02-10", 200)
    record(restaurant["server"], "2024-03-05", 10)

    pools = PoolService(db_session)
    allocations = AllocationService(db_session)
    # Created out of order on purpose
    february = pools.aggregate(manager_ctx, "2024-02-01", "2024-02-29")
    january = pools.aggregate(manager_ctx, "2024-01-01", "2024-01-31")
    march = pools.aggregate(manager_ctx, "2024-03-01", "2024-03-31")
    allocations.allocate(manager_ctx, january.id)
    allocations.allocate(manager_ctx, february.id)
    return {"january": january, "february": february, "march": march}


class TestTipsByCollector:
    def test_total_gross(self, db_session, employee_ctx, record, restaurant):
        record(restaurant["server"], "2024-01-03", "10.25")
        record(restaurant["server"], "2024-01-04", "5.50")
        result = QueryService(db_session).tips_by_collector(
            employee_ctx, EMPLOYEE_ID, "2024-01-01", "2024-01-31",
        )
        assert result["total_gross"] == Decimal("15.75")
        assert result["total"] == 2
        assert [i.service_date.day for i in result["items"]] == [4, 3]

    def test_dates_required(self, db_session, employee_ctx):
        with pytest.raises(ValidationError) as exc:
            QueryService(db_session).tips_by_collector(employee_ctx, EMPLOYEE_ID, "2024-01-01", None)
        assert exc.value.code == "DATE_RANGE_REQUIRED"


class TestPoolsOverTime:
    def test_chronological_order(self, db_session, manager_ctx, history):
        pools = QueryService(db_session).pools_over_time(manager_ctx)
        assert [p.period_start.month for p in pools] == [1, 2, 3]
        assert [p.status for p in pools] == ["allocated", "allocated", "finalized"]
        assert pools[0].allocated_amount == Decimal("150.00")
        assert pools[2].allocation_count == 0

    def test_bounds(self, db_session, manager_ctx, history):
        pools = QueryService(db_session).pools_over_time(manager_ctx, "2024-02-01", "2024-03-31")
        assert [p.period_start.month for p in pools] == [2, 3]

    def test_reversed_bounds_rejected(self, db_session, manager_ctx, history):
        with pytest.raises(ValidationError) as exc:
            QueryService(db_session).pools_over_time(manager_ctx, "2024-03-31", "2024-01-01")
        assert exc.value.code == "INVALID_DATE_RANGE"

    def test_single_bound(self, db_session, manager_ctx, history):
        pools = QueryService(db_session).pools_over_time(manager_ctx, end_date="2024-02-29")
        assert [p.period_start.month for p in pools] == [1, 2]

    def test_adjustment_pool_follows_original(self, db_session, manager_ctx, record, restaurant, history):
        record(restaurant["server"], "2024-01-30", 5)
        PoolService(db_session).aggregate(manager_ctx, "2024-01-01", "2024-01-31")
        pools = QueryService(db_session).pools_over_time(manager_ctx, "2024-01-01", "2024-01-31")
        assert [(p.sequence, p.total_amount) for p in pools] == [
            (1, Decimal("150.00")),
            (2, Decimal("5.00")),
        ]

    def test_employee_denied(self, db_session, employee_ctx):
        with pytest.raises(AuthorizationError):
            QueryService(db_session).pools_over_time(employee_ctx)


class TestPoolDetails:
    def test_allocations_largest_first(self, db_session, manager_ctx, restaurant, history):
        details = QueryService(db_session).pool_details(manager_ctx, history["january"].id)
        assert details["total_amount"] == Decimal("150.00")
        assert details["allocated_amount"] == Decimal("150.00")
        assert [(a.category_name, a.amount) for a in details["allocations"]] == [
            ("Busser", Decimal("90.00")),
            ("Host", Decimal("60.00")),
        ]
        assert details["allocations"][0].department_name == "Support"

    def test_unknown_pool(self, db_session, manager_ctx):
        with pytest.raises(NotFoundError):
            QueryService(db_session).pool_details(manager_ctx, 12345)

    def test_other_company(self, db_session, other_company_ctx, history):
        with pytest.raises(NotFoundError):
            QueryService(db_session).pool_details(other_company_ctx, history["january"].id)


class TestPoolEntries:
    def test_entries_of_pool(self, db_session, manager_ctx, history):
        entries = QueryService(db_session).pool_entries(manager_ctx, history["january"].id)
        assert [(e.service_date.day, e.gross_tips) for e in entries] == [
            (3, Decimal("100.00")),
            (17, Decimal("50.00")),
        ]


class TestDepartmentSummary:
    def test_summary_over_quarter(self, db_session, manager_ctx, restaurant, history):
        summary = QueryService(db_session).department_summary(
            manager_ctx, restaurant["support"].id, "2024-01-01", "2024-03-31",
        )
        assert summary["department_name"] == "Support"
        assert summary["pool_count"] == 2
        assert summary["total_amount"] == Decimal("350.00")
        assert summary["category_breakdown"] == [
            {"category_id": restaurant["busser"].id, "category_name": "Busser", "amount": Decimal("210.00")},
            {"category_id": restaurant["host"].id, "category_name": "Host", "amount": Decimal("140.00")},
        ]

    def test_pools_partially_outside_range_excluded(self, db_session, manager_ctx, restaurant, history):
        summary = QueryService(db_session).department_summary(
            manager_ctx, restaurant["support"].id, "2024-01-15", "2024-02-29",
        )
        assert summary["pool_count"] == 1
        assert summary["total_amount"] == Decimal("200.00")

    def test_collector_department_rejected(self, db_session, manager_ctx, restaurant):
        with pytest.raises(ValidationError) as exc:
            QueryService(db_session).department_summary(
                manager_ctx, restaurant["floor"].id, "2024-01-01", "2024-01-31",
            )
        assert exc.value.code == "INVALID_DEPARTMENT"

    def test_fields_required(self, db_session, manager_ctx, restaurant):
        with pytest.raises(ValidationError) as exc:
            QueryService(db_session).department_summary(manager_ctx, None, "2024-01-01", "2024-01-31")
        assert exc.value.code == "FIELDS_REQUIRED"
        with pytest.raises(ValidationError):
            QueryService(db_session).department_summary(manager_ctx, restaurant["support"].id, None, None)
