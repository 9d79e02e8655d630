"""Department routes: CRUD and tip distribution maps."""

from fastapi import APIRouter, Request, Response, status

from tippool.core.rate_limit import limiter, WRITE_LIMIT
from tippool.core.rbac import CurrentUser, RequireManager
from tippool.core.responses import list_response
from tippool.db.session import DbSession
from tippool.schemas.tips import (
    DepartmentCreate, DepartmentList, DepartmentResponse, DepartmentUpdate, DistributionSet,
)
from tippool.services.distribution_service import DistributionService

router = APIRouter()


@router.get("/", response_model=DepartmentList)
@limiter.limit("60/minute")
def list_departments(request: Request, db: DbSession, current_user: CurrentUser):
    """List the company's departments with their distributions."""
    return list_response(DistributionService(db).list_departments(current_user))


@router.post("/", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
def create_department(request: Request, body: DepartmentCreate, db: DbSession, current_user: RequireManager):
    """Create a department (requires Manager role)."""
    return DistributionService(db).create_department(
        current_user, body.name, body.department_type, body.distribution,
    )


@router.get("/{department_id}", response_model=DepartmentResponse)
@limiter.limit("60/minute")
def get_department(request: Request, department_id: int, db: DbSession, current_user: CurrentUser):
    return DistributionService(db).get_department(current_user, department_id)


@router.put("/{department_id}", response_model=DepartmentResponse)
@limiter.limit(WRITE_LIMIT)
def update_department(
    request: Request, department_id: int, body: DepartmentUpdate, db: DbSession, current_user: RequireManager
):
    """Update name, type or distribution (requires Manager role)."""
    return DistributionService(db).update_department(current_user, department_id, body)


@router.put("/{department_id}/distribution", response_model=DepartmentResponse)
@limiter.limit(WRITE_LIMIT)
def set_distribution(
    request: Request, department_id: int, body: DistributionSet, db: DbSession, current_user: RequireManager
):
    """Replace the department's distribution map (requires Manager role)."""
    return DistributionService(db).set_distribution(current_user, department_id, body.distribution)


@router.delete("/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(WRITE_LIMIT)
def delete_department(request: Request, department_id: int, db: DbSession, current_user: RequireManager):
    DistributionService(db).delete_department(current_user, department_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
