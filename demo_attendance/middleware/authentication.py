from typing import Optional, List

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError

from demo_attendance.schemas.users import TokenData, STAFF_ROLES, ALL_ROLES
from demo_attendance.services.auth import decode_access_token

security = HTTPBearer(auto_error=False)

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenData:
    """
    Get the current authenticated user from the bearer token.

    Args:
        credentials: The bearer credentials from the Authorization header

    Returns:
        The identity carried by the token

    Raises:
        HTTPException: If the token is missing, invalid or expired
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user = decode_access_token(credentials.credentials)
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError:
        raise credentials_exception

    if user is None:
        raise credentials_exception

    return user

class RoleChecker:
    """
    Dependency that only lets users with one of the allowed roles through.
    """
    def __init__(self, allowed_roles: List[str]):
        self.allowed_roles = allowed_roles

    async def __call__(self, user: TokenData = Depends(get_current_user)) -> TokenData:
        if user.role not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden: Access denied"
            )
        return user

allow_staff = RoleChecker(STAFF_ROLES)
allow_all_roles = RoleChecker(ALL_ROLES)

def ensure_own_student(user: TokenData, student_id: int, detail: str) -> None:
    """Students may only act on their own record; staff may act on any."""
    if user.role == "student" and user.student_id != student_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )
