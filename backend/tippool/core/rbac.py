"""Role-Based Access Control (RBAC) utilities.

The engine trusts the identity carried by the bearer token. Every mutating
engine operation calls ``require_capability`` before touching storage, and
every query is scoped by ``RequestContext.company_id``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from tippool.core.errors import AuthorizationError
from tippool.core.security import decode_access_token


class UserRole(str, Enum):
    """User roles for RBAC."""

    MANAGER = "manager"
    EMPLOYEE = "employee"


# Role hierarchy: manager > employee
ROLE_HIERARCHY = {
    UserRole.MANAGER: 2,
    UserRole.EMPLOYEE: 1,
}


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller, as supplied by the authorization layer.

    Attributes:
        user_id: The caller's user ID.
        company_id: The company every read and write is scoped to.
        role: The caller's role (manager/employee).
    """

    user_id: int
    company_id: int
    role: UserRole

    @property
    def is_manager(self) -> bool:
        return has_role(self, UserRole.MANAGER)


def has_role(ctx: RequestContext, minimum_role: UserRole) -> bool:
    return ROLE_HIERARCHY.get(ctx.role, 0) >= ROLE_HIERARCHY.get(minimum_role, 0)


def require_capability(ctx: RequestContext, minimum_role: UserRole = UserRole.MANAGER) -> None:
    """Raise AuthorizationError unless the caller holds at least ``minimum_role``."""
    if not has_role(ctx, minimum_role):
        raise AuthorizationError(
            message=f"Requires role {minimum_role.value} or higher",
            details={"required_role": minimum_role.value, "role": ctx.role.value},
        )


def require_self_or_manager(ctx: RequestContext, user_id: int) -> None:
    """Employees may only act on their own records; managers on anyone's."""
    if ctx.user_id != user_id and not ctx.is_manager:
        raise AuthorizationError(
            message="Employees may only access their own records",
            details={"user_id": user_id},
        )


async def get_current_user(request: Request) -> RequestContext:
    """Get the caller's context from the JWT token.

    Checks in order:
    1. Authorization: Bearer <token> header
    2. access_token cookie (HttpOnly)
    """
    payload = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        cookie_token = request.cookies.get("access_token")
        if cookie_token:
            payload = decode_access_token(cookie_token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    company_id = payload.get("company_id")
    role = payload.get("role")

    if user_id is None or company_id is None or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_role = UserRole(role)
        return RequestContext(user_id=int(user_id), company_id=int(company_id), role=user_role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role or identifiers in token",
        )


def require_role(minimum_role: UserRole):
    """Dependency to require a minimum role level."""

    async def role_checker(
        current_user: Annotated[RequestContext, Depends(get_current_user)]
    ) -> RequestContext:
        require_capability(current_user, minimum_role)
        return current_user

    return role_checker


# Common role dependencies
RequireManager = Annotated[RequestContext, Depends(require_role(UserRole.MANAGER))]
CurrentUser = Annotated[RequestContext, Depends(get_current_user)]
