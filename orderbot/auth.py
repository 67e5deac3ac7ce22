# orderbot/auth.py
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .log import logger
from .models import StaffUser


pwd = CryptContext(schemes=["argon2"], deprecated="auto")


def _jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "dev-secret-change-me")


def _jwt_alg() -> str:
    return os.getenv("JWT_ALG", "HS256")


def _jwt_expire_minutes() -> int:
    # default: one kitchen shift
    raw = os.getenv("JWT_EXPIRE_MIN", "720")
    try:
        return int(raw)
    except ValueError:
        return 720


def hash_password(p: str) -> str:
    return pwd.hash(p)


def verify_password(p: str, h: str) -> bool:
    return pwd.verify(p, h)


def create_token(staff_id: int) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=_jwt_expire_minutes())
    payload = {"sub": str(staff_id), "role": "kitchen", "exp": exp}
    return jwt.encode(payload, _jwt_secret(), algorithm=_jwt_alg())


def decode_token(token: str) -> Optional[int]:
    try:
        data = jwt.decode(token, _jwt_secret(), algorithms=[_jwt_alg()])
        return int(data.get("sub"))
    except (JWTError, TypeError, ValueError):
        return None


def require_staff(authorization: str | None = Header(default=None)) -> int:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = authorization.split(" ", 1)[1].strip()
    sid = decode_token(token)
    if not sid:
        raise HTTPException(status_code=401, detail="Invalid token")
    return sid


def ensure_staff_user(db: Session, email: str, password: str, name: str = "Kitchen") -> Optional[StaffUser]:
    """Create the kitchen account from config on first boot; existing accounts are left alone."""
    if not email or not password:
        return None
    u = db.query(StaffUser).filter(StaffUser.email == email).first()
    if u:
        return u
    u = StaffUser(name=name, email=email, password_hash=hash_password(password))
    db.add(u)
    db.commit()
    db.refresh(u)
    logger.info("Created kitchen staff account %s", email)
    return u
