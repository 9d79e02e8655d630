"""Collection ledger: append-only record of tips reported by collectors."""

import logging
from datetime import date
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tippool.core.errors import NotFoundError, ValidationError, FIELDS_REQUIRED
from tippool.core.rbac import RequestContext, require_self_or_manager
from tippool.core.validators import normalize_amount, parse_date, require_date_range
from tippool.db.session import unit_of_work
from tippool.models.tips import Category, CollectedTip, PaymentMethod
from tippool.services.audit_service import log_action

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for recording and listing collected tips.

    Entries are never updated or deleted. Corrections are recorded as new
    entries.
    """

    def __init__(self, db: Session):
        self.db = db

    def record_tip(
        self,
        ctx: RequestContext,
        category_id: int,
        service_date: Any,
        gross_tips: Any,
        payment_method: Any = PaymentMethod.CASH,
        source: str = "manual",
        user_id: Optional[int] = None,
    ) -> CollectedTip:
        """Append a collector's gross tips for a service date.

        ``user_id`` defaults to the caller; recording on behalf of someone else
        requires the manager role.
        """
        collector_id = ctx.user_id if user_id is None else user_id
        require_self_or_manager(ctx, collector_id)

        if category_id is None:
            raise ValidationError(FIELDS_REQUIRED, "category_id is required")
        day = parse_date(service_date, "service_date")
        amount = normalize_amount(gross_tips, "gross_tips")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(
                FIELDS_REQUIRED,
                f"payment_method must be one of {[m.value for m in PaymentMethod]}",
                {"payment_method": str(payment_method)},
            )
        if not source or not str(source).strip() or len(str(source)) > 50:
            raise ValidationError(FIELDS_REQUIRED, "source is required (max 50 characters)")

        with unit_of_work(self.db):
            category = self.db.execute(
                select(Category).where(
                    Category.id == category_id,
                    Category.company_id == ctx.company_id,
                    Category.not_deleted(),
                )
            ).scalar_one_or_none()
            if category is None:
                raise NotFoundError("Category", category_id)

            entry = CollectedTip(
                user_id=collector_id,
                company_id=ctx.company_id,
                category_id=category.id,
                service_date=day,
                gross_tips=amount,
                net_tips=amount,
                payment_method=method.value,
                source=str(source).strip(),
                was_collector=True,
                recorded_by=ctx.user_id,
            )
            self.db.add(entry)
            self.db.flush()
            log_action(self.db, ctx, "record", "tip", entry.id, {
                "user_id": collector_id,
                "category_id": category.id,
                "service_date": day.isoformat(),
                "gross_tips": format(amount, "f"),
            })

        self.db.refresh(entry)
        logger.info(
            f"Recorded {amount} tips for user {collector_id} on {day.isoformat()} "
            f"(company {ctx.company_id}, category {category.id})"
        )
        return entry

    def list_by_collector(
        self,
        ctx: RequestContext,
        user_id: int,
        start_date: Optional[Any],
        end_date: Optional[Any],
    ) -> List[CollectedTip]:
        """Tips recorded by one collector, newest service date first."""
        require_self_or_manager(ctx, user_id)
        start, end = require_date_range(start_date, end_date)
        return self._entries_for_user(ctx.company_id, user_id, start, end)

    def _entries_for_user(self, company_id: int, user_id: int, start: date, end: date) -> List[CollectedTip]:
        query = (
            select(CollectedTip)
            .where(
                CollectedTip.user_id == user_id,
                CollectedTip.company_id == company_id,
                CollectedTip.was_collector.is_(True),
                CollectedTip.service_date >= start,
                CollectedTip.service_date <= end,
            )
            .order_by(CollectedTip.service_date.desc(), CollectedTip.id.desc())
        )
        return list(self.db.execute(query).scalars().all())
