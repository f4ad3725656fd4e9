from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from seatlock.config import settings

DEFAULT_ROLE = "User"


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str = DEFAULT_ROLE


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(user_id: int, role: str = DEFAULT_ROLE, expires_minutes: Optional[int] = None) -> str:
    # issuance lives in the account service; this helper serves tests and tooling
    minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    expire = _now() + timedelta(minutes=minutes)
    payload = {"sub": str(user_id), "role": role, "type": "access", "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def verify_principal(token: str) -> Principal:
    payload = _decode_token(token)
    if payload.get("type") != "access":
        raise JWTError("Invalid token type")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise JWTError("Invalid subject")
    return Principal(user_id=user_id, role=payload.get("role") or DEFAULT_ROLE)
