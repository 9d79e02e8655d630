"""Distribution configuration store: departments, categories and percentage maps."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tippool.core.errors import (
    ConflictError, NotFoundError, ValidationError,
    CATEGORY_IN_DISTRIBUTION, DEPARTMENT_HAS_CATEGORIES, DEPARTMENT_NAME_AND_TYPE_REQUIRED,
    DISTRIBUTION_MUST_EQUAL_100, FIELDS_REQUIRED, INVALID_PERCENTAGE, UNKNOWN_CATEGORY,
)
from tippool.core.rbac import RequestContext, UserRole, require_capability
from tippool.db.session import unit_of_work
from tippool.models.tips import Category, Department, DepartmentType, DistributionShare
from tippool.schemas.tips import CategoryUpdate, DepartmentUpdate
from tippool.services.audit_service import log_action

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
PERCENT_QUANTUM = Decimal("0.01")


def normalize_percent(category_id: Any, value: Any) -> Decimal:
    """Coerce a percent to Decimal, rejecting negatives, >100 and sub-0.01 precision."""
    try:
        percent = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        percent = None
    if (
        percent is None
        or isinstance(value, bool)
        or not percent.is_finite()
        or percent < 0
        or percent > HUNDRED
        or percent != percent.quantize(PERCENT_QUANTUM)
    ):
        raise ValidationError(
            INVALID_PERCENTAGE,
            f"Percent for category {category_id} must be between 0 and 100 with at most two decimals",
            {"category_id": category_id, "value": str(value)},
        )
    return percent


def check_distribution_total(department_type: DepartmentType, distribution: Mapping[int, Decimal]) -> None:
    """Receiver distributions that are non-empty must sum to exactly 100."""
    if department_type != DepartmentType.RECEIVER or not distribution:
        return
    total = sum(distribution.values(), Decimal("0"))
    if total != HUNDRED:
        raise ValidationError(
            DISTRIBUTION_MUST_EQUAL_100,
            f"Distribution percentages must sum to 100, got {total}",
            {"total": str(total)},
        )


class DistributionService:
    """Service for department/category configuration and tip distributions."""

    def __init__(self, db: Session):
        self.db = db

    # ===== DEPARTMENTS =====

    def create_department(
        self,
        ctx: RequestContext,
        name: Optional[str],
        department_type: Any,
        distribution: Optional[Mapping[int, Any]] = None,
    ) -> Department:
        """Create a department, optionally with its initial distribution."""
        require_capability(ctx, UserRole.MANAGER)
        dept_type = self._require_name_and_type(name, department_type)

        with unit_of_work(self.db):
            shares = self._validated_distribution(ctx, dept_type, distribution or {})
            department = Department(
                company_id=ctx.company_id,
                name=name.strip(),
                department_type=dept_type.value,
            )
            department.shares = [
                DistributionShare(category_id=category_id, percent=percent)
                for category_id, percent in shares.items()
            ]
            self.db.add(department)
            self.db.flush()
            log_action(self.db, ctx, "create", "department", department.id, {
                "name": department.name,
                "department_type": department.department_type,
                "distribution": _serialize(shares),
            })

        self.db.refresh(department)
        logger.info(f"Department {department.id} created for company {ctx.company_id}")
        return department

    def list_departments(self, ctx: RequestContext) -> List[Department]:
        """List live departments of the caller's company in creation order."""
        query = (
            select(Department)
            .where(Department.company_id == ctx.company_id, Department.not_deleted())
            .options(selectinload(Department.shares))
            .order_by(Department.created_at, Department.id)
        )
        return list(self.db.execute(query).scalars().all())

    def get_department(self, ctx: RequestContext, department_id: int) -> Department:
        return self._get_department(ctx, department_id)

    def update_department(
        self,
        ctx: RequestContext,
        department_id: int,
        update: DepartmentUpdate,
    ) -> Department:
        """Apply an update command. Only the fields set on the command change."""
        require_capability(ctx, UserRole.MANAGER)
        fields = update.model_dump(exclude_unset=True)

        with unit_of_work(self.db):
            department = self._get_department(ctx, department_id, lock=True)

            if "name" in fields or "department_type" in fields:
                self._require_name_and_type(
                    fields.get("name", department.name),
                    fields.get("department_type", department.department_type),
                )
            if fields.get("name") is not None:
                department.name = fields["name"].strip()

            dept_type = DepartmentType(fields.get("department_type") or department.department_type)
            department.department_type = dept_type.value

            if fields.get("distribution") is not None:
                shares = self._validated_distribution(ctx, dept_type, fields["distribution"])
                self._replace_shares(department, shares)
            else:
                # A type change must still satisfy the invariant for the stored map
                check_distribution_total(dept_type, department.distribution)

            self.db.flush()
            log_action(self.db, ctx, "update", "department", department.id, {
                "fields": sorted(fields),
                "department_type": department.department_type,
                "distribution": _serialize(department.distribution),
            })

        self.db.refresh(department)
        return department

    def set_distribution(
        self,
        ctx: RequestContext,
        department_id: int,
        distribution: Mapping[int, Any],
    ) -> Department:
        """Replace a department's active distribution atomically.

        Allocations already computed keep the percentages they were made with.
        """
        require_capability(ctx, UserRole.MANAGER)

        with unit_of_work(self.db):
            department = self._get_department(ctx, department_id, lock=True)
            shares = self._validated_distribution(
                ctx, DepartmentType(department.department_type), distribution
            )
            previous = _serialize(department.distribution)
            self._replace_shares(department, shares)
            self.db.flush()
            log_action(self.db, ctx, "set_distribution", "department", department.id, {
                "previous": previous,
                "distribution": _serialize(shares),
            })

        self.db.refresh(department)
        logger.info(f"Distribution of department {department.id} set to {_serialize(shares)}")
        return department

    def delete_department(self, ctx: RequestContext, department_id: int) -> None:
        """Soft-delete a department that no longer has live categories."""
        require_capability(ctx, UserRole.MANAGER)

        with unit_of_work(self.db):
            department = self._get_department(ctx, department_id, lock=True)
            live_categories = [c.id for c in department.categories if not c.is_deleted]
            if live_categories:
                raise ConflictError(
                    DEPARTMENT_HAS_CATEGORIES,
                    f"Department {department_id} still has categories",
                    {"category_ids": live_categories},
                )
            department.soft_delete()
            log_action(self.db, ctx, "delete", "department", department.id)

    # ===== CATEGORIES =====

    def create_category(
        self,
        ctx: RequestContext,
        department_id: Optional[int],
        name: Optional[str],
        is_dual_role: bool = False,
    ) -> Category:
        """Create a category inside one of the company's departments."""
        require_capability(ctx, UserRole.MANAGER)
        if department_id is None or not name or not name.strip():
            raise ValidationError(FIELDS_REQUIRED, "department_id and name are required")

        with unit_of_work(self.db):
            department = self._get_department(ctx, department_id)
            category = Category(
                company_id=ctx.company_id,
                department_id=department.id,
                name=name.strip(),
                is_dual_role=bool(is_dual_role),
            )
            self.db.add(category)
            self.db.flush()
            log_action(self.db, ctx, "create", "category", category.id, {
                "department_id": department.id,
                "name": category.name,
                "is_dual_role": category.is_dual_role,
            })

        self.db.refresh(category)
        return category

    def list_categories(self, ctx: RequestContext) -> List[Category]:
        """List live categories ordered by department name, then category name."""
        query = (
            select(Category)
            .join(Department, Category.department_id == Department.id)
            .where(Category.company_id == ctx.company_id, Category.not_deleted())
            .options(selectinload(Category.department))
            .order_by(Department.name, Category.name, Category.id)
        )
        return list(self.db.execute(query).scalars().all())

    def get_category(self, ctx: RequestContext, category_id: int) -> Category:
        return self._get_category(ctx, category_id)

    def update_category(
        self,
        ctx: RequestContext,
        category_id: int,
        update: CategoryUpdate,
    ) -> Category:
        """Apply an update command to a category."""
        require_capability(ctx, UserRole.MANAGER)
        fields = update.model_dump(exclude_unset=True)

        with unit_of_work(self.db):
            category = self._get_category(ctx, category_id)
            if "name" in fields:
                if not fields["name"] or not fields["name"].strip():
                    raise ValidationError(FIELDS_REQUIRED, "name cannot be empty")
                category.name = fields["name"].strip()
            if fields.get("department_id") is not None:
                category.department_id = self._get_department(ctx, fields["department_id"]).id
            if fields.get("is_dual_role") is not None:
                category.is_dual_role = fields["is_dual_role"]
            self.db.flush()
            log_action(self.db, ctx, "update", "category", category.id, {"fields": sorted(fields)})

        self.db.refresh(category)
        return category

    def delete_category(self, ctx: RequestContext, category_id: int) -> None:
        """Soft-delete a category not referenced by any live distribution."""
        require_capability(ctx, UserRole.MANAGER)

        with unit_of_work(self.db):
            category = self._get_category(ctx, category_id)
            referencing = self.db.execute(
                select(DistributionShare.department_id)
                .join(Department, DistributionShare.department_id == Department.id)
                .where(DistributionShare.category_id == category.id, Department.not_deleted())
            ).scalars().all()
            if referencing:
                raise ConflictError(
                    CATEGORY_IN_DISTRIBUTION,
                    f"Category {category_id} is part of a distribution",
                    {"department_ids": sorted(set(referencing))},
                )
            category.soft_delete()
            log_action(self.db, ctx, "delete", "category", category.id)

    # ===== HELPERS =====

    def _get_department(self, ctx: RequestContext, department_id: int, lock: bool = False) -> Department:
        query = select(Department).where(
            Department.id == department_id,
            Department.company_id == ctx.company_id,
            Department.not_deleted(),
        )
        if lock:
            query = query.with_for_update()
        department = self.db.execute(query).scalar_one_or_none()
        if department is None:
            raise NotFoundError("Department", department_id)
        return department

    def _get_category(self, ctx: RequestContext, category_id: int) -> Category:
        category = self.db.execute(
            select(Category).where(
                Category.id == category_id,
                Category.company_id == ctx.company_id,
                Category.not_deleted(),
            )
        ).scalar_one_or_none()
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    @staticmethod
    def _require_name_and_type(name: Optional[str], department_type: Any) -> DepartmentType:
        try:
            dept_type = DepartmentType(department_type) if department_type is not None else None
        except ValueError:
            dept_type = None
        if not name or not str(name).strip() or dept_type is None:
            raise ValidationError(
                DEPARTMENT_NAME_AND_TYPE_REQUIRED,
                "Department name and a type of COLLECTOR or RECEIVER are required",
            )
        return dept_type

    def _validated_distribution(
        self,
        ctx: RequestContext,
        department_type: DepartmentType,
        distribution: Mapping[int, Any],
    ) -> Dict[int, Decimal]:
        """Normalize percents, check the categories exist in the company, check the total."""
        shares: Dict[int, Decimal] = {}
        for raw_id, value in distribution.items():
            try:
                category_id = int(raw_id)
            except (TypeError, ValueError):
                raise ValidationError(UNKNOWN_CATEGORY, f"Invalid category id {raw_id!r}")
            shares[category_id] = normalize_percent(category_id, value)

        if shares:
            found = set(self.db.execute(
                select(Category.id).where(
                    Category.id.in_(shares.keys()),
                    Category.company_id == ctx.company_id,
                    Category.not_deleted(),
                )
            ).scalars().all())
            missing = sorted(set(shares) - found)
            if missing:
                raise ValidationError(
                    UNKNOWN_CATEGORY,
                    "Distribution references categories outside the company",
                    {"category_ids": missing},
                )

        check_distribution_total(department_type, shares)
        return dict(sorted(shares.items()))

    @staticmethod
    def _replace_shares(department: Department, shares: Dict[int, Decimal]) -> None:
        # Update in place so a re-used category never collides with the unique constraint
        existing = {share.category_id: share for share in department.shares}
        for category_id, share in existing.items():
            if category_id not in shares:
                department.shares.remove(share)
        for category_id, percent in shares.items():
            if category_id in existing:
                existing[category_id].percent = percent
            else:
                department.shares.append(DistributionShare(category_id=category_id, percent=percent))


def _serialize(distribution: Mapping[int, Decimal]) -> Dict[str, str]:
    return {str(category_id): format(percent, "f") for category_id, percent in distribution.items()}
