"""Seed the default accounts (one per role) for a fresh local install.

Existing emails are left untouched. Not for production: the PINs are well known.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sahasrara_spa.auth.crud import CredentialStore
from sahasrara_spa.config import load_config
from sahasrara_spa.db import init_db


DEFAULT_ACCOUNTS = [
    {"name": "Admin User", "email": "admin@sahasrara.com", "pin": "1234", "role": "ADMIN"},
    {"name": "Staff User", "email": "staff@sahasrara.com", "pin": "5678", "role": "STAFF"},
    {"name": "Owner User", "email": "owner@sahasrara.com", "pin": "9999", "role": "OWNER"},
]


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN)
    store = CredentialStore(cfg)

    for acct in DEFAULT_ACCOUNTS:
        try:
            store.create_account(**acct)
            print(f"Created: {acct['name']} ({acct['email']})")
        except ValueError as e:
            if str(e) != "email_exists":
                raise
            print(f"Exists:  {acct['name']} ({acct['email']})")


if __name__ == "__main__":
    main()
