"""API dependencies for authentication and database access."""

from typing import Annotated, Callable

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from musicshop.core.database import get_db
from musicshop.core.enums import UserRole
from musicshop.core.exceptions import ForbiddenError
from musicshop.core.security import decode_access_token
from musicshop.models.user import User
from musicshop.schemas.order import ListParams
from musicshop.services.user_service import UserService

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve the acting user from the bearer token.

    The token only carries the user ID; the role is always read from the
    users table so that a role change takes effect immediately.

    Args:
        credentials: HTTP Bearer token
        db: Database session

    Returns:
        Current user

    Raises:
        HTTPException: If token is missing or invalid, or user not found
        ForbiddenError: If the account is not active
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid authentication token")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token payload")

    user = await UserService(db).get_by_id(user_id)
    if user is None:
        raise _unauthorized("User not found")

    if user.status != "active":
        raise ForbiddenError("User account is not active")

    return user


def require_roles(*roles: UserRole) -> Callable:
    """Build a dependency that admits only users holding one of ``roles``."""

    async def dependency(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role not in roles:
            raise ForbiddenError(
                "Insufficient role",
                details=f"Requires one of: {', '.join(str(role) for role in roles)}",
            )
        return current_user

    return dependency


def list_params(
    sort_by: Annotated[str | None, Query(alias="sortBy")] = None,
    sort_dir: Annotated[str | None, Query(alias="sortDir")] = None,
    limit: Annotated[int | None, Query()] = None,
    offset: Annotated[int, Query()] = 0,
    hide_closed: Annotated[bool, Query(alias="hideClosed")] = False,
) -> ListParams:
    """Sorting and paging query parameters shared by list endpoints."""
    return ListParams(
        sort_by=sort_by,
        sort_dir=sort_dir,
        limit=limit,
        offset=offset,
        hide_closed=hide_closed,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
ClientUser = Annotated[User, Depends(require_roles(UserRole.CLIENT))]
ManagerUser = Annotated[User, Depends(require_roles(UserRole.MANAGER))]
CourierUser = Annotated[User, Depends(require_roles(UserRole.COURIER))]
AdminUser = Annotated[User, Depends(require_roles(UserRole.ADMIN))]
BackOfficeUser = Annotated[User, Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER))]
Paging = Annotated[ListParams, Depends(list_params)]
