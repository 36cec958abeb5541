"""Role-Based Access Control (RBAC) utilities."""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from restocore.core.security import decode_access_token


class StaffRole(str, Enum):
    """Staff roles within a store."""

    OWNER = "owner"
    ADMIN = "admin"
    CASHIER = "cashier"
    SERVER = "server"
    CHEF = "chef"


# Role hierarchy: owner > admin > cashier > server/chef
ROLE_HIERARCHY = {
    StaffRole.OWNER: 4,
    StaffRole.ADMIN: 3,
    StaffRole.CASHIER: 2,
    StaffRole.SERVER: 1,
    StaffRole.CHEF: 1,
}


def role_at_least(role: StaffRole, minimum: StaffRole) -> bool:
    return ROLE_HIERARCHY.get(role, 0) >= ROLE_HIERARCHY.get(minimum, 0)


@dataclass(frozen=True)
class ActorContext:
    """The calling staff member, passed explicitly into every core operation.

    Attributes:
        user_id: Identity provider subject.
        role: Role within ``store_id``.
        store_id: Tenant the actor is acting for.
    """

    user_id: str
    role: StaffRole
    store_id: int


async def get_current_user(request: Request) -> ActorContext:
    """Resolve the actor from the bearer token.

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
    role = payload.get("role")
    store_id = payload.get("store_id")

    if user_id is None or role is None or store_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_role = StaffRole(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role in token",
        )

    try:
        store = int(store_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid store in token",
        )

    return ActorContext(user_id=str(user_id), role=user_role, store_id=store)


def require_role(minimum_role: StaffRole):
    """Dependency to require a minimum role level."""

    async def role_checker(
        current_user: Annotated[ActorContext, Depends(get_current_user)]
    ) -> ActorContext:
        if not role_at_least(current_user.role, minimum_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role {minimum_role.value} or higher",
            )
        return current_user

    return role_checker


# Common role dependencies
RequireOwner = Annotated[ActorContext, Depends(require_role(StaffRole.OWNER))]
RequireAdmin = Annotated[ActorContext, Depends(require_role(StaffRole.ADMIN))]
RequireCashier = Annotated[ActorContext, Depends(require_role(StaffRole.CASHIER))]
CurrentUser = Annotated[ActorContext, Depends(get_current_user)]


async def get_optional_current_user(request: Request) -> Optional[ActorContext]:
    """Resolve the actor when a token is present; guests get None."""
    try:
        return await get_current_user(request)
    except HTTPException:
        return None


OptionalUser = Annotated[Optional[ActorContext], Depends(get_optional_current_user)]
