"""
Identity collaborator boundary.

Tokens are issued elsewhere; this module only verifies them and exposes the
caller as {user_id, role}. Services trust that value and run their own
ownership checks on top of it.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from pydantic import BaseModel

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, SECRET_KEY
from .errors import AuthenticationRequired, AuthorizationDenied

logger = logging.getLogger(__name__)

ROLE_CUSTOMER = "customer"
ROLE_WORKSHOP = "workshop"
ROLES = (ROLE_CUSTOMER, ROLE_WORKSHOP)

security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    user_id: str
    role: str
    name: Optional[str] = None

    @property
    def is_customer(self) -> bool:
        return self.role == ROLE_CUSTOMER

    @property
    def is_workshop(self) -> bool:
        return self.role == ROLE_WORKSHOP


def create_access_token(
    user_id: str, role: str, name: Optional[str] = None, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed access token (development and tests; production tokens
    come from the identity provider)
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode: dict[str, Any] = {"sub": user_id, "role": role, "exp": expire}
    if name:
        to_encode["name"] = name
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> CurrentUser:
    try:
        payload = jose_jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"⚠️ JWT verification failed: {e}")
        raise AuthenticationRequired("Invalid or expired token") from e

    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or role not in ROLES:
        logger.warning(f"⚠️ Token missing subject or carrying unknown role: {role}")
        raise AuthenticationRequired("Invalid token claims")

    return CurrentUser(user_id=str(user_id), role=role, name=payload.get("name"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequired(
            "Not authenticated. Please provide a valid Bearer token in the Authorization header."
        )
    user = decode_access_token(credentials.credentials)
    logger.debug(f"✅ Authenticated {user.role} {user.user_id}")
    return user


async def require_customer(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_customer:
        raise AuthorizationDenied("Customer account required")
    return user


async def require_workshop(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_workshop:
        raise AuthorizationDenied("Workshop account required")
    return user
