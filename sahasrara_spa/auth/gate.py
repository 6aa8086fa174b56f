"""Route protection.

Every request passes through `AuthGateMiddleware` before routing. The policy is uniform:
the dashboard and the transactions API are protected, while the auth API (which does its
own validation), the login page, the health check and static assets are not.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sahasrara_spa.config import Config

from .security import MalformedToken, decode_session


LOGIN_PATH = "/login"
DASHBOARD_PATH = "/"
EXEMPT_PREFIXES = ("/auth/", "/static/")
EXEMPT_PATHS = ("/health", "/favicon.ico")


@dataclass(frozen=True)
class GateDecision:
    allow: bool
    location: Optional[str] = None


def is_exempt(path: str) -> bool:
    return path in EXEMPT_PATHS or any(path.startswith(p) for p in EXEMPT_PREFIXES)


def _login_redirect(path: str, *, expired: bool = False) -> GateDecision:
    params = {"redirect": path}
    if expired:
        params["expired"] = "true"
    return GateDecision(allow=False, location=f"{LOGIN_PATH}?{urlencode(params)}")


def _session_state(cookie_value: Optional[str], *, secret: str, now: datetime) -> str:
    """Classify a cookie as 'missing', 'invalid', 'expired' or 'valid'."""
    if not cookie_value:
        return "missing"
    try:
        session = decode_session(cookie_value, secret=secret)
    except MalformedToken:
        return "invalid"
    if not session.authenticated:
        return "invalid"
    if session.is_expired(now):
        return "expired"
    return "valid"


def gate_decision(
    path: str,
    cookie_value: Optional[str],
    *,
    secret: str,
    now: Optional[datetime] = None,
) -> GateDecision:
    now = now or datetime.now(timezone.utc)

    if is_exempt(path):
        return GateDecision(allow=True)

    state = _session_state(cookie_value, secret=secret, now=now)

    if path == LOGIN_PATH:
        if state == "valid":
            return GateDecision(allow=False, location=DASHBOARD_PATH)
        return GateDecision(allow=True)

    if state == "valid":
        return GateDecision(allow=True)
    return _login_redirect(path, expired=(state == "expired"))


class AuthGateMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, cfg: Config):
        super().__init__(app)
        self.cfg = cfg

    async def dispatch(self, request: Request, call_next):
        decision = gate_decision(
            request.url.path,
            request.cookies.get(self.cfg.AUTH_COOKIE_NAME),
            secret=self.cfg.AUTH_SESSION_SECRET,
        )
        if decision.allow:
            return await call_next(request)
        return RedirectResponse(url=decision.location or LOGIN_PATH, status_code=307)
