import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sahasrara_spa.auth.crud import CredentialStore
from sahasrara_spa.config import load_config
from sahasrara_spa.db import init_db


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN)
    boot = CredentialStore(cfg).bootstrap_if_empty()
    if boot:
        print(f"Created initial admin: {boot['email']} (PIN from SAHASRARA_PIN)")

    print(f"DB initialized: {cfg.DB_DSN}")


if __name__ == "__main__":
    main()
