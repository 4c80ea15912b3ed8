"""Caller identity: JWT handling and FastAPI dependencies.

Env vars:
- JWT_SECRET (required in prod; default for dev)
- JWT_EXPIRES_MIN (default 60)
- ARENA_PUBLIC_MODE (anonymous callers act as a shared guest user)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel


logger = logging.getLogger("arena.auth")
bearer_scheme = HTTPBearer(auto_error=False)

GUEST_USER_ID = "guest"


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    expires_min: int = 60

    @staticmethod
    def from_env() -> "JwtConfig":
        secret = _get_env("JWT_SECRET", "dev-secret-change-me")
        expires = int(os.getenv("JWT_EXPIRES_MIN", "60"))
        return JwtConfig(secret=secret, expires_min=expires)


class User(BaseModel):
    user_id: str
    name: str = ""


def create_access_token(user: User, cfg: Optional[JwtConfig] = None) -> str:
    cfg = cfg or JwtConfig.from_env()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.expires_min)
    payload = {
        "sub": user.user_id,
        "name": user.name,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)


def decode_token(token: str, cfg: Optional[JwtConfig] = None) -> User:
    cfg = cfg or JwtConfig.from_env()
    try:
        data = jwt.decode(token, cfg.secret, algorithms=[cfg.algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    subject = data.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return User(user_id=str(subject), name=str(data.get("name", "")))


def _public_mode_enabled() -> bool:
    return os.getenv("ARENA_PUBLIC_MODE", "0").lower() in ("1", "true", "yes")


def _guest() -> User:
    return User(user_id=GUEST_USER_ID, name="Guest")


def get_optional_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[User]:
    """Resolve the caller if a valid bearer token is present.

    Reads are open to anonymous callers, so a missing or bad token yields
    ``None`` (or the guest user in public mode) rather than an error.
    """
    if creds is not None and creds.scheme and creds.scheme.lower() == "bearer":
        try:
            return decode_token(creds.credentials)
        except HTTPException:
            logger.debug("Ignoring invalid bearer token on optional route")
    return _guest() if _public_mode_enabled() else None


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> User:
    """Resolve the current user.

    In normal mode, requires a valid bearer token. If ARENA_PUBLIC_MODE is
    enabled, anonymous callers get the guest user.
    """
    public_mode = _public_mode_enabled()
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer":
        if public_mode:
            return _guest()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        return decode_token(creds.credentials)
    except HTTPException:
        if public_mode:
            return _guest()
        raise
