# courier/auth.py
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext


pwd = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


def _jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "your-secret-key")


def _jwt_alg() -> str:
    return os.getenv("JWT_ALG", "HS256")


def _jwt_expire_minutes() -> int:
    # default 24h
    raw = os.getenv("JWT_EXPIRE_MIN", "1440")
    try:
        return int(raw)
    except ValueError:
        return 1440


def hash_password(p: str) -> str:
    return pwd.hash(p)


def verify_password(p: str, h: str) -> bool:
    try:
        return pwd.verify(p, h)
    except ValueError:
        # malformed hash in the row
        return False


def create_token(user_id: int, username: str, role: str = "user") -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=_jwt_expire_minutes())
    payload = {"sub": str(user_id), "id": user_id, "username": username, "role": role, "exp": exp}
    return jwt.encode(payload, _jwt_secret(), algorithm=_jwt_alg())


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        data = jwt.decode(token, _jwt_secret(), algorithms=[_jwt_alg()])
        data["id"] = int(data.get("sub"))
        return data
    except (JWTError, TypeError, ValueError):
        return None
