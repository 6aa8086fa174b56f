import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sahasrara_spa.api.server import create_app
from sahasrara_spa.auth.crud import CredentialStore
from sahasrara_spa.config import Config
from sahasrara_spa.db import init_db


TEST_SECRET = "test-secret-0123456789abcdef-0123456789"
ADMIN_PIN = "1234"


@pytest.fixture
def cfg(tmp_path):
    """Config pointing at a fresh SQLite file per test."""
    return Config(
        DB_DSN=str(tmp_path / "sahasrara_test.sqlite"),
        APP_ENV="test",
        BUSINESS_TIMEZONE="Asia/Jakarta",
        DEFAULT_PIN=ADMIN_PIN,
        AUTH_SESSION_SECRET=TEST_SECRET,
        AUTH_COOKIE_SECURE=False,
        AUTH_LOCKOUT_THRESHOLD=5,
        CORS_ALLOW_ORIGINS="",
    )


@pytest.fixture
def store(cfg):
    """Credential store over an initialized DB with the bootstrap admin."""
    init_db(cfg.DB_DSN)
    s = CredentialStore(cfg)
    s.bootstrap_if_empty()
    return s


@pytest.fixture
def client(cfg):
    """Unauthenticated client. Startup creates the schema and the admin (PIN 1234)."""
    app = create_app(cfg)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_client(client):
    """Client holding a valid session cookie for the admin account."""
    r = client.post("/auth/login", json={"pin": ADMIN_PIN, "rememberMe": False})
    assert r.status_code == 200, r.text
    return client


@pytest.fixture
def dewi_payload():
    return {
        "nama": "Dewi",
        "umur": "3 bulan",
        "jenisKelamin": "P",
        "beratBadan": "5.2",
        "panjangBadan": "58",
        "namaOrtu": "Siti",
        "alamat": "Jl. Mawar 1",
        "tindakan": "pijat_bayi",
        "biaya": "100000",
    }
