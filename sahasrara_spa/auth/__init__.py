"""Authentication helpers.

Auth is intentionally lightweight:

- Staff accounts identified by a 4-digit PIN (stored as a pbkdf2 hash)
- A signed JWT session held in the httpOnly `sahasrara_session` cookie
- A middleware gate that redirects unauthenticated browsers to /login

No server-side session table exists; a session ends when its cookie is cleared or expires.
"""

from .crud import CredentialStore
from .deps import get_current_session, require_manager
from .gate import AuthGateMiddleware, gate_decision

__all__ = [
    "CredentialStore",
    "get_current_session",
    "require_manager",
    "AuthGateMiddleware",
    "gate_decision",
]
