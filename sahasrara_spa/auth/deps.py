from __future__ import annotations

from datetime import datetime, timezone, tzinfo

from fastapi import Depends, Request

from sahasrara_spa.auth.crud import CredentialStore
from sahasrara_spa.config import Config
from sahasrara_spa.errors import Forbidden, InternalError, Unauthorized
from sahasrara_spa.models import Session

from .security import MalformedToken, decode_session


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise InternalError("server_config_missing")
    return cfg


def get_credentials(request: Request) -> CredentialStore:
    store = getattr(request.app.state, "credentials", None)
    if store is None:
        raise InternalError("credential_store_missing")
    return store


def get_current_session(request: Request, cfg: Config = Depends(get_config)) -> Session:
    """Validate the session cookie on this request.

    Raises Unauthorized with a message the dashboard can show as-is.
    """
    token = request.cookies.get(cfg.AUTH_COOKIE_NAME)
    if not token:
        raise Unauthorized("No session found")

    try:
        session = decode_session(token, secret=cfg.AUTH_SESSION_SECRET)
    except MalformedToken:
        raise Unauthorized("Invalid session format")

    if not session.authenticated:
        raise Unauthorized("Not authenticated")
    if session.is_expired(datetime.now(timezone.utc)):
        raise Unauthorized("Session expired")
    return session


def require_manager(session: Session = Depends(get_current_session)) -> Session:
    if session.user_role not in ("ADMIN", "OWNER"):
        raise Forbidden("Akses ditolak")
    return session


def get_business_tz(request: Request) -> tzinfo:
    tz = getattr(request.app.state, "business_tz", None)
    if tz is None:
        raise InternalError("business_timezone_missing")
    return tz
