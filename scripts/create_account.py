"""Create a staff account.

Usage:
  python scripts/create_account.py --name "Staff User" --email staff@sahasrara.com --pin 5678 --role STAFF
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sahasrara_spa.auth.crud import CredentialStore
from sahasrara_spa.config import load_config
from sahasrara_spa.db import init_db
from sahasrara_spa.models import ROLES


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--pin", required=True)
    ap.add_argument("--role", choices=list(ROLES), default="STAFF")
    ap.add_argument("--inactive", action="store_true")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    try:
        u = CredentialStore(cfg).create_account(
            name=args.name,
            email=args.email,
            pin=args.pin,
            role=args.role,
            is_active=not args.inactive,
        )
    except ValueError as e:
        print(f"Failed: {e}")
        sys.exit(1)

    print("Created account:")
    print(u)


if __name__ == "__main__":
    main()
