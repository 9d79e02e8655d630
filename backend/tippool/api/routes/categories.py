"""Category routes."""

from fastapi import APIRouter, Request, Response, status

from tippool.core.rate_limit import limiter, WRITE_LIMIT
from tippool.core.rbac import CurrentUser, RequireManager
from tippool.core.responses import list_response
from tippool.db.session import DbSession
from tippool.schemas.tips import CategoryCreate, CategoryList, CategoryResponse, CategoryUpdate
from tippool.services.distribution_service import DistributionService

router = APIRouter()


@router.get("/", response_model=CategoryList)
@limiter.limit("60/minute")
def list_categories(request: Request, db: DbSession, current_user: CurrentUser):
    """List categories ordered by department name, then category name."""
    return list_response(DistributionService(db).list_categories(current_user))


@router.post("/", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
def create_category(request: Request, body: CategoryCreate, db: DbSession, current_user: RequireManager):
    """Create a category (requires Manager role)."""
    return DistributionService(db).create_category(
        current_user, body.department_id, body.name, body.is_dual_role,
    )


@router.get("/{category_id}", response_model=CategoryResponse)
@limiter.limit("60/minute")
def get_category(request: Request, category_id: int, db: DbSession, current_user: CurrentUser):
    return DistributionService(db).get_category(current_user, category_id)


@router.put("/{category_id}", response_model=CategoryResponse)
@limiter.limit(WRITE_LIMIT)
def update_category(
    request: Request, category_id: int, body: CategoryUpdate, db: DbSession, current_user: RequireManager
):
    return DistributionService(db).update_category(current_user, category_id, body)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(WRITE_LIMIT)
def delete_category(request: Request, category_id: int, db: DbSession, current_user: RequireManager):
    DistributionService(db).delete_category(current_user, category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
