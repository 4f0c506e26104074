from collections.abc import Callable
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.tokens import InvalidTokenError, is_token_revoked, read_identity
from app.config import settings
from app.database import get_db
from app.users.models import User, UserRole
from app.users.service import get_user_by_id

# auto_error=False so a request carrying only the cookie is not rejected here
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str:
    """Session cookie first, then the Authorization header."""
    cookie_token = request.cookies.get(settings.cookie_name)
    if cookie_token:
        return cookie_token
    if credentials and credentials.credentials:
        return credentials.credentials
    raise _unauthorized("Not authenticated")


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    token = _extract_token(request, credentials)
    try:
        user_id, jti = read_identity(token)
    except InvalidTokenError:
        raise _unauthorized("Invalid token")
    if jti and await is_token_revoked(jti):
        raise _unauthorized("Token revoked")

    user = await get_user_by_id(db, user_id)
    if not user or not user.is_active:
        raise _unauthorized("User not found or inactive")
    # Read back by the audit middleware
    request.state.user_id = user.id
    request.state.username = user.username
    return user


def require_role(*roles: UserRole) -> Callable:
    async def _check(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _check
