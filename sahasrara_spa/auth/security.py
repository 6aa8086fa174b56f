from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from sahasrara_spa.models import Session


_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"
_PIN_RE = re.compile(r"^[0-9]{4}$")

SESSION_TTL = timedelta(minutes=30)
REMEMBER_ME_TTL = timedelta(days=30)


class MalformedToken(ValueError):
    pass


def is_valid_pin(pin: Any) -> bool:
    """Exactly four ASCII digits."""
    return isinstance(pin, str) and _PIN_RE.match(pin) is not None


def hash_pin(pin: str) -> str:
    if not is_valid_pin(pin):
        raise ValueError("pin_invalid_format")
    return _pwd.hash(pin)


def verify_pin(pin: str, pin_hash: str) -> bool:
    if not pin or not pin_hash:
        return False
    try:
        return _pwd.verify(pin, pin_hash)
    except Exception:
        return False


def session_ttl(remember_me: bool) -> timedelta:
    return REMEMBER_ME_TTL if remember_me else SESSION_TTL


def new_session(
    *,
    user_id: int,
    user_name: str,
    user_role: str,
    remember_me: bool,
    now: Optional[datetime] = None,
) -> Session:
    # JWT timestamps are whole seconds; truncate so encode/decode is exact.
    issued = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    return Session(
        authenticated=True,
        issued_at=issued,
        expires_at=issued + session_ttl(remember_me),
        remember_me=bool(remember_me),
        user_id=int(user_id),
        user_name=user_name,
        user_role=user_role,
    )


def encode_session(session: Session, *, secret: str) -> str:
    if not secret:
        raise ValueError("session_secret_blank")

    payload: Dict[str, Any] = {
        "sub": str(session.user_id) if session.user_id is not None else "",
        "name": session.user_name,
        "role": session.user_role,
        "authenticated": bool(session.authenticated),
        "remember_me": bool(session.remember_me),
        "iat": int(session.issued_at.timestamp()),
        "exp": int(session.expires_at.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_session(token: str, *, secret: str) -> Session:
    """Verify the signature and return the session fields.

    Expiry is deliberately not enforced here: callers compare `expires_at` themselves so an
    expired session can be told apart from a forged or garbled one.
    """
    if not token:
        raise MalformedToken("token_blank")
    if not secret:
        raise ValueError("session_secret_blank")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            options={"verify_exp": False, "require": ["iat", "exp"]},
        )
    except jwt.InvalidTokenError as e:
        raise MalformedToken(f"token_invalid: {e}") from e

    try:
        sub = str(payload.get("sub") or "")
        return Session(
            authenticated=payload.get("authenticated") is True,
            issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            remember_me=payload.get("remember_me") is True,
            user_id=int(sub) if sub else None,
            user_name=payload.get("name"),
            user_role=payload.get("role"),
        )
    except (TypeError, ValueError, OverflowError) as e:
        raise MalformedToken(f"token_fields: {e}") from e
