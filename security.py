import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Cookie, Header, Response
from jose import JWTError, jwt
from passlib.context import CryptContext

import database
from config import settings
from responses import UnauthorizedError

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Fields that must never leave the server
PRIVATE_USER_FIELDS = {"password": 0, "refresh_token": 0, "avatar_handle": 0, "cover_image_handle": 0}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


# -------------------- Tokens --------------------

def _encode(user_id, kind: str, secret: str, expires_delta: timedelta) -> str:
    payload = {
        "sub": str(user_id),
        "type": kind,
        "jti": uuid.uuid4().hex,
        "exp": datetime.utcnow() + expires_delta,
    }
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user: dict) -> str:
    return _encode(
        user["_id"], "access", settings.ACCESS_TOKEN_SECRET,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user: dict) -> str:
    return _encode(
        user["_id"], "refresh", settings.REFRESH_TOKEN_SECRET,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str, kind: str) -> dict:
    secret = settings.ACCESS_TOKEN_SECRET if kind == "access" else settings.REFRESH_TOKEN_SECRET
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected %s token: %s", kind, exc)
        raise UnauthorizedError(f"Invalid {kind} token")
    if payload.get("type") != kind or not payload.get("sub"):
        raise UnauthorizedError(f"Invalid {kind} token")
    return payload


def issue_tokens(user: dict):
    """Create an access/refresh pair and persist the refresh token on the user."""
    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user)
    database.update_by_id("user", user["_id"], {"refresh_token": refresh_token})
    return access_token, refresh_token


# -------------------- Cookies --------------------

def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")


# -------------------- Current user --------------------

def get_current_user(
    access_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None),
) -> dict:
    """
    Resolve the authenticated actor from the access_token cookie, falling
    back to an ``Authorization: Bearer`` header.
    """
    token = access_token
    if not token and authorization:
        token = authorization.replace("Bearer ", "", 1).strip()
    if not token:
        raise UnauthorizedError("Unauthorized request")

    payload = decode_token(token, "access")
    user = database.find_one("user", {"_id": database.objid(payload["sub"])}, PRIVATE_USER_FIELDS)
    if not user:
        raise UnauthorizedError("Invalid access token")
    return user
