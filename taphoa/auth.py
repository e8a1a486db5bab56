"""
Password hashing and bearer-token authentication.

Tokens are HS256 JWTs carrying the user's id, email and role, valid for
JWT_EXPIRES_DAYS. They are stateless: a protected request is authorised
from the token claims alone.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pydantic import BaseModel

from taphoa import config
from taphoa.errors import AuthenticationFailed, PermissionDenied

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_bearer = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """Identity decoded from a bearer token."""
    id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(user_id: str, email: str, role: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(days=config.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> CurrentUser:
    try:
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
        return CurrentUser(id=claims["id"], email=claims["email"], role=claims["role"])
    except (jwt.PyJWTError, KeyError):
        raise AuthenticationFailed("Token không hợp lệ hoặc đã hết hạn")


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> CurrentUser:
    """FastAPI dependency: 401 unless a valid bearer token is present."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationFailed("Vui lòng đăng nhập")
    return decode_access_token(credentials.credentials)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise PermissionDenied("Không có quyền truy cập")
    return user
