from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import uuid

from app.core.database import get_db
from app.core.logging_config import logger, set_user_id
from app.core.security import decode_token
from app.models.user import User, UserRole

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""

    token = credentials.credentials
    payload = decode_token(token)

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type"
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload"
        )

    try:
        uuid.UUID(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID format"
        )

    result = await db.execute(
        select(User).where(User.id == user_id)
    )
    user = result.scalar_one_or_none()

    if not user:
        logger.log_auth_event("token", success=False, reason="user not found")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        logger.log_auth_event("token", success=False, user_email=user.email, reason="inactive")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    set_user_id(str(user.id))
    return user


def _require_roles(*roles: UserRole, detail: str):
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=detail
            )
        return current_user
    return dependency


def _require_college_scope(user: User) -> User:
    if not user.college_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not linked to a college"
        )
    return user


async def get_current_master_admin(
    current_user: User = Depends(_require_roles(UserRole.MASTER_ADMIN, detail="Master admin access required"))
) -> User:
    """Test authoring and college assignment"""
    return current_user


async def get_current_college_admin(
    current_user: User = Depends(_require_roles(UserRole.COLLEGE_ADMIN, detail="College admin access required"))
) -> User:
    """College decisions and student targeting, scoped to the admin's college"""
    return _require_college_scope(current_user)


async def get_current_college_staff(
    current_user: User = Depends(
        _require_roles(UserRole.COLLEGE_ADMIN, UserRole.FACULTY, detail="College staff access required")
    )
) -> User:
    """College admins and faculty"""
    return _require_college_scope(current_user)


async def get_current_student(
    current_user: User = Depends(_require_roles(UserRole.STUDENT, detail="Student access required"))
) -> User:
    return current_user
