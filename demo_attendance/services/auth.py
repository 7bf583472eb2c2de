from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import jwt

from demo_attendance.config import settings
from demo_attendance.schemas.users import TokenData


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token with the given data and expiration.
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    return encoded_jwt


def decode_access_token(token: str) -> Optional[TokenData]:
    """
    Decode and verify a JWT access token.

    Returns None when the token is well formed but lacks the identity claims.
    Raises jose.JWTError (or its ExpiredSignatureError subclass) on a bad token.
    """
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])

    user_id = payload.get("sub")
    role = payload.get("role")
    if user_id is None or role is None:
        return None

    assistant_id = payload.get("assistant_id")
    return TokenData(
        id=str(user_id),
        role=role,
        assistant_id=str(assistant_id) if assistant_id is not None else None,
    )
