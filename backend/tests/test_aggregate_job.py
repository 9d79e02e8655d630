"""Tests for the scheduled aggregation command."""

from datetime import date
from decimal import Decimal

import pytest

from tippool.jobs import aggregate_period
from tippool.models.audit import AuditLogEntry
from tippool.services.distribution_service import DistributionService

from conftest import COMPANY_ID


class TestPreviousMonth:
    def test_mid_month(self):
        assert aggregate_period.previous_month(date(2024, 3, 15)) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_january_wraps_year(self):
        assert aggregate_period.previous_month(date(2024, 1, 1)) == (date(2023, 12, 1), date(2023, 12, 31))


class TestRun:
    def test_aggregate_and_allocate(self, db_session, manager_ctx, record, restaurant):
        DistributionService(db_session).set_distribution(manager_ctx, restaurant["support"].id, {
            restaurant["busser"].id: 100,
        })
        record(restaurant["server"], "2024-01-03", 100)

        result = aggregate_period.run(
            db_session, COMPANY_ID, date(2024, 1, 1), date(2024, 1, 31), allocate=True,
        )

        assert result["total_amount"] == Decimal("100.00")
        assert result["entry_count"] == 1
        assert result["allocations"] == 1
        actors = {e.user_id for e in db_session.query(AuditLogEntry).filter_by(entity_type="pool")}
        assert actors == {aggregate_period.SYSTEM_USER_ID}

    def test_without_allocate(self, db_session, restaurant):
        result = aggregate_period.run(db_session, COMPANY_ID, date(2024, 1, 1), date(2024, 1, 31))
        assert result["allocations"] is None


class TestMain:
    def test_engine_error_exit_code(self, db_session, monkeypatch):
        monkeypatch.setattr(aggregate_period, "SessionLocal", lambda: db_session)
        code = aggregate_period.main([
            "--company-id", str(COMPANY_ID), "--start", "2024-02-01", "--end", "2024-01-01",
        ])
        assert code == 2

    def test_company_required(self):
        with pytest.raises(SystemExit):
            aggregate_period.main([])
