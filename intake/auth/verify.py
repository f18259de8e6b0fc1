"""
verify.py
---------
Purpose:
    Bearer JWT verification and acting-user resolution.

Notes:
    - Tokens are HS256 signed with settings.JWT_SECRET; `sub` is the user id.
    - `auth_dependency` returns the decoded claims.
    - `get_current_user` loads the user so routes can check the role.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from intake.config import settings
from intake.infrastructure.observability.logging import get_logger
from intake.models.domain.task_domain import User
from intake.services.user_service import user_directory

logger = get_logger(__name__)

_security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt(token: str) -> dict:
    options = {"verify_exp": True, "verify_aud": settings.JWT_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except jwt.PyJWTError as e:
        raise _unauthorized(f"Invalid authentication token: {e}") from e


def auth_dependency(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
) -> dict:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return verify_jwt(credentials.credentials)


async def get_current_user(claims: dict = Depends(auth_dependency)) -> User:
    user_id = claims.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token")

    user = await user_directory.get_user(user_id)
    if user is None:
        logger.warning("Token subject has no user record", user_id=user_id)
        raise _unauthorized("Unknown user")
    return user
