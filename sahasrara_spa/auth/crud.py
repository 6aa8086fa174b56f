from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sahasrara_spa.config import Config
from sahasrara_spa.db import connect
from sahasrara_spa.models import ROLES
from sahasrara_spa.util.time import parse_iso, to_iso, utcnow, utcnow_iso

from .security import hash_pin, is_valid_pin, verify_pin


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


class PinChangeError(ValueError):
    pass


class InvalidPinFormat(PinChangeError):
    pass


class NoOpPinChange(PinChangeError):
    pass


class WrongCurrentPin(PinChangeError):
    pass


@dataclass(frozen=True)
class LockoutStatus:
    locked: bool
    retry_after_sec: int = 0


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def public_account(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d.pop("pin_hash", None)
    d["is_active"] = bool(int(d.get("is_active") or 0))
    return d


class CredentialStore:
    """Staff accounts and their PINs.

    Constructed once per app (see `create_app`) and handed to request handlers; it holds
    no state besides the config, everything else lives in the database.
    """

    def __init__(self, cfg: Config):
        self.cfg = cfg

    # -----------------
    # Accounts
    # -----------------

    def verify(self, candidate: str) -> Optional[Dict[str, Any]]:
        """Return the first active account whose PIN matches, or None.

        PINs are stored hashed, so every active account is checked in user_id order.
        """
        if not is_valid_pin(candidate):
            return None
        with connect(self.cfg.DB_DSN) as conn:
            rows = conn.execute(
                "SELECT * FROM users WHERE is_active=1 ORDER BY user_id ASC"
            ).fetchall()
        for row in rows:
            if verify_pin(candidate, str(row["pin_hash"])):
                return public_account(row)
        return None

    def change(self, current: str, new: str) -> Dict[str, Any]:
        """Replace the PIN of the active account identified by `current`.

        Format and no-op checks happen before any lookup.
        """
        if not is_valid_pin(current) or not is_valid_pin(new):
            raise InvalidPinFormat("pin_invalid_format")
        if current == new:
            raise NoOpPinChange("pin_unchanged")

        account = self.verify(current)
        if account is None:
            raise WrongCurrentPin("pin_current_wrong")

        now = utcnow_iso()
        with connect(self.cfg.DB_DSN) as conn:
            conn.execute(
                "UPDATE users SET pin_hash=?, updated_at=? WHERE user_id=?",
                (hash_pin(new), now, int(account["user_id"])),
            )
        _debug(f"PIN changed for user_id={account['user_id']}")
        account["updated_at"] = now
        return account

    def create_account(
        self,
        *,
        name: str,
        email: str,
        pin: str,
        role: str = "STAFF",
        is_active: bool = True,
    ) -> Dict[str, Any]:
        n = (name or "").strip()
        e = normalize_email(email)
        if not n:
            raise ValueError("name_blank")
        if not e:
            raise ValueError("email_blank")
        if role not in ROLES:
            raise ValueError("invalid_role")
        if not is_valid_pin(pin):
            raise ValueError("pin_invalid_format")

        now = utcnow_iso()
        with connect(self.cfg.DB_DSN) as conn:
            existing = conn.execute("SELECT 1 FROM users WHERE email=?", (e,)).fetchone()
            if existing is not None:
                raise ValueError("email_exists")
            conn.execute(
                """
                INSERT INTO users (name, email, pin_hash, role, is_active, created_at, updated_at)
                VALUES (?,?,?,?,?,?,?)
                """,
                (n, e, hash_pin(pin), role, 1 if is_active else 0, now, now),
            )
            row = conn.execute("SELECT * FROM users WHERE email=?", (e,)).fetchone()
        assert row is not None
        return public_account(row)

    def set_active(self, user_id: int, is_active: bool) -> bool:
        with connect(self.cfg.DB_DSN) as conn:
            cur = conn.execute(
                "UPDATE users SET is_active=?, updated_at=? WHERE user_id=?",
                (1 if is_active else 0, utcnow_iso(), int(user_id)),
            )
            return int(cur.rowcount or 0) > 0

    def list_accounts(self) -> List[Dict[str, Any]]:
        with connect(self.cfg.DB_DSN) as conn:
            rows = conn.execute(
                """
                SELECT user_id, name, email, role, is_active, created_at, updated_at, last_login_at
                FROM users
                ORDER BY user_id ASC
                """
            ).fetchall()
        return [public_account(r) for r in rows]

    def touch_last_login(self, user_id: int) -> None:
        now = utcnow_iso()
        with connect(self.cfg.DB_DSN) as conn:
            conn.execute(
                "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
                (now, now, int(user_id)),
            )

    def bootstrap_if_empty(self) -> Optional[Dict[str, Any]]:
        """Create the first ADMIN account from SAHASRARA_PIN when there are no accounts.

        This only runs when there are 0 rows in `users`.
        """
        with connect(self.cfg.DB_DSN) as conn:
            n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
        if int(n) > 0:
            return None

        pin = (self.cfg.DEFAULT_PIN or "").strip()
        if not is_valid_pin(pin):
            _debug("SAHASRARA_PIN is not 4 digits; skipping admin bootstrap")
            return None

        return self.create_account(
            name=self.cfg.BOOTSTRAP_ADMIN_NAME,
            email=self.cfg.BOOTSTRAP_ADMIN_EMAIL,
            pin=pin,
            role="ADMIN",
        )

    # -----------------
    # Lockout
    # -----------------

    def _lockout_enabled(self) -> bool:
        return int(self.cfg.AUTH_LOCKOUT_THRESHOLD or 0) > 0

    def lockout_status(self) -> LockoutStatus:
        if not self._lockout_enabled():
            return LockoutStatus(locked=False)

        now = utcnow()
        with connect(self.cfg.DB_DSN) as conn:
            row = conn.execute("SELECT locked_until FROM auth_state WHERE id=1").fetchone()
            locked_until = parse_iso(row["locked_until"]) if row is not None else None
            if locked_until and locked_until > now:
                retry_after = max(1, int((locked_until - now).total_seconds()))
                return LockoutStatus(locked=True, retry_after_sec=retry_after)

            if locked_until:
                conn.execute(
                    "UPDATE auth_state SET failed_count=0, window_start=NULL, locked_until=NULL WHERE id=1"
                )
        return LockoutStatus(locked=False)

    def register_failure(self) -> LockoutStatus:
        if not self._lockout_enabled():
            return LockoutStatus(locked=False)

        now = utcnow()
        window = timedelta(seconds=int(self.cfg.AUTH_LOCKOUT_WINDOW_SECONDS))
        with connect(self.cfg.DB_DSN) as conn:
            row = conn.execute(
                "SELECT failed_count, window_start FROM auth_state WHERE id=1"
            ).fetchone()
            failed_count = int(row["failed_count"] or 0) if row is not None else 0
            window_start = parse_iso(row["window_start"]) if row is not None else None

            if window_start is None or now - window_start > window:
                failed_count = 1
                window_start = now
            else:
                failed_count += 1

            if failed_count >= int(self.cfg.AUTH_LOCKOUT_THRESHOLD):
                duration = int(self.cfg.AUTH_LOCKOUT_DURATION_SECONDS)
                conn.execute(
                    "UPDATE auth_state SET failed_count=0, window_start=NULL, locked_until=? WHERE id=1",
                    (to_iso(now + timedelta(seconds=duration)),),
                )
                _debug(f"Login locked for {duration}s after {failed_count} failed attempts")
                return LockoutStatus(locked=True, retry_after_sec=duration)

            conn.execute(
                "UPDATE auth_state SET failed_count=?, window_start=?, locked_until=NULL WHERE id=1",
                (failed_count, to_iso(window_start)),
            )
        return LockoutStatus(locked=False)

    def reset_failures(self) -> None:
        if not self._lockout_enabled():
            return
        with connect(self.cfg.DB_DSN) as conn:
            conn.execute(
                "UPDATE auth_state SET failed_count=0, window_start=NULL, locked_until=NULL WHERE id=1"
            )
