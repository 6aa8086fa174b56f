"""
Tests for the auth gate: the pure decision function and the middleware in the app.
"""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from sahasrara_spa.auth.gate import gate_decision
from sahasrara_spa.auth.security import encode_session, new_session
from sahasrara_spa.models import Session

from conftest import TEST_SECRET


NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


def _token(*, issued=NOW, remember_me=False, authenticated=True, secret=TEST_SECRET):
    s = new_session(user_id=1, user_name="Admin", user_role="ADMIN", remember_me=remember_me, now=issued)
    if not authenticated:
        s = Session(
            authenticated=False,
            issued_at=s.issued_at,
            expires_at=s.expires_at,
            user_id=s.user_id,
        )
    return encode_session(s, secret=secret)


def _query(location):
    return parse_qs(urlparse(location).query)


class TestGateDecision:
    @pytest.mark.parametrize(
        "path",
        ["/auth/login", "/auth/check", "/auth/logout", "/auth/change-pin", "/health", "/static/app.js"],
    )
    def test_exempt_paths_allowed_without_cookie(self, path):
        assert gate_decision(path, None, secret=TEST_SECRET, now=NOW).allow

    @pytest.mark.parametrize("path", ["/", "/transactions", "/transactions/summary", "/settings"])
    def test_missing_cookie_redirects_with_original_path(self, path):
        d = gate_decision(path, None, secret=TEST_SECRET, now=NOW)
        assert not d.allow
        assert urlparse(d.location).path == "/login"
        assert _query(d.location) == {"redirect": [path]}

    def test_valid_cookie_allows(self):
        assert gate_decision("/transactions", _token(), secret=TEST_SECRET, now=NOW).allow

    def test_garbage_cookie_redirects(self):
        d = gate_decision("/transactions", "not-a-token", secret=TEST_SECRET, now=NOW)
        assert not d.allow
        assert _query(d.location) == {"redirect": ["/transactions"]}

    def test_forged_cookie_redirects(self):
        token = _token(secret="someone-elses-secret-0123456789abcdef")
        d = gate_decision("/transactions", token, secret=TEST_SECRET, now=NOW)
        assert not d.allow

    def test_unauthenticated_session_redirects(self):
        d = gate_decision("/", _token(authenticated=False), secret=TEST_SECRET, now=NOW)
        assert not d.allow
        assert "expired" not in _query(d.location)

    def test_expired_cookie_adds_marker(self):
        token = _token(issued=NOW - timedelta(minutes=31))
        d = gate_decision("/transactions", token, secret=TEST_SECRET, now=NOW)
        assert not d.allow
        assert _query(d.location) == {"redirect": ["/transactions"], "expired": ["true"]}

    def test_remember_me_cookie_still_valid_after_a_week(self):
        token = _token(issued=NOW - timedelta(days=7), remember_me=True)
        assert gate_decision("/", token, secret=TEST_SECRET, now=NOW).allow

    def test_login_page_with_valid_session_goes_to_dashboard(self):
        d = gate_decision("/login", _token(), secret=TEST_SECRET, now=NOW)
        assert not d.allow
        assert d.location == "/"

    def test_login_page_without_session_is_allowed(self):
        assert gate_decision("/login", None, secret=TEST_SECRET, now=NOW).allow

    def test_login_page_with_expired_session_is_allowed(self):
        token = _token(issued=NOW - timedelta(hours=1))
        assert gate_decision("/login", token, secret=TEST_SECRET, now=NOW).allow


class TestGateMiddleware:
    def test_dashboard_without_cookie_redirects(self, client):
        r = client.get("/", follow_redirects=False)
        assert r.status_code == 307
        assert urlparse(r.headers["location"]).path == "/login"
        assert _query(r.headers["location"]) == {"redirect": ["/"]}

    def test_transactions_api_is_protected(self, client):
        r = client.get("/transactions", follow_redirects=False)
        assert r.status_code == 307
        assert _query(r.headers["location"]) == {"redirect": ["/transactions"]}

    def test_mutations_are_protected(self, client, dewi_payload):
        r = client.post("/transactions", json=dewi_payload, follow_redirects=False)
        assert r.status_code == 307
        r = client.delete("/transactions", params={"id": "x"}, follow_redirects=False)
        assert r.status_code == 307

    def test_login_page_served_without_session(self, client):
        r = client.get("/login")
        assert r.status_code == 200
        assert "text/html" in r.headers["content-type"]

    def test_login_page_redirects_when_logged_in(self, auth_client):
        r = auth_client.get("/login", follow_redirects=False)
        assert r.status_code == 307
        assert r.headers["location"] == "/"

    def test_dashboard_served_when_logged_in(self, auth_client):
        r = auth_client.get("/", follow_redirects=False)
        assert r.status_code == 200
        assert "/auth/check" in r.text

    def test_expired_cookie_redirects_with_marker(self, client):
        expired = new_session(
            user_id=1,
            user_name="Admin",
            user_role="ADMIN",
            remember_me=False,
            now=datetime.now(timezone.utc) - timedelta(hours=2),
        )
        client.cookies.set("sahasrara_session", encode_session(expired, secret=TEST_SECRET))
        r = client.get("/transactions", follow_redirects=False)
        assert r.status_code == 307
        assert _query(r.headers["location"])["expired"] == ["true"]

    def test_health_is_open(self, client):
        assert client.get("/health").json() == {"status": "ok"}
