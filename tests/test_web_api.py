from __future__ import annotations

import asyncio
import re
from pathlib import Path
from urllib.parse import unquote

from fastapi.testclient import TestClient

from accessgate.delivery.jobs import JobStatus
from tests.support import STRONG_PASSWORD, RecordingMailer, build_app_config
from web_api import create_app


def _client(tmp_path: Path) -> tuple[TestClient, RecordingMailer]:
    mailer = RecordingMailer()
    app = create_app(build_app_config(tmp_path / "state.db"), mailer=mailer)
    return TestClient(app, base_url="https://testserver"), mailer


def _drain(client: TestClient) -> None:
    pool = client.app.state.worker_pool
    while asyncio.run(pool.run_once("test-worker")):
        pass


def _verification_token(html: str) -> str:
    match = re.search(r'/verify-email/([^"]+)"', html)
    assert match is not None
    return unquote(match.group(1))


def _signup(client: TestClient, email: str = "ada@test.local") -> dict:
    response = client.post(
        "/api/auth/signup",
        json={"name": "Ada", "email": email, "password": STRONG_PASSWORD},
    )
    assert response.status_code == 201
    return response.json()


def test_health_is_public(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


def test_signup_queues_email_and_verify_link_activates_account(tmp_path: Path) -> None:
    client, mailer = _client(tmp_path)
    body = _signup(client)

    assert body["user"]["is_verified"] is False
    assert client.app.state.queue.counts()["pending"] == 1

    _drain(client)
    assert client.app.state.queue.counts()["completed"] == 1
    assert mailer.sent[0]["to"] == "ada@test.local"
    token = _verification_token(mailer.sent[0]["html"])

    verified = client.get(f"/api/auth/verify-email/{token}")
    assert verified.status_code == 200
    assert verified.json()["status"] == "ok"

    again = client.get(f"/api/auth/verify-email/{token}")
    assert again.status_code == 400
    assert again.json()["error_code"] == "VERIFICATION_ALREADY_VERIFIED"


def test_signup_validation_and_conflict(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    _signup(client)

    weak = client.post(
        "/api/auth/signup",
        json={"name": "Bob", "email": "bob@test.local", "password": "password"},
    )
    duplicate = client.post(
        "/api/auth/signup",
        json={"name": "Ada", "email": "ADA@test.local", "password": STRONG_PASSWORD},
    )
    extra = client.post(
        "/api/auth/signup",
        json={"name": "Bob", "email": "bob@test.local", "password": STRONG_PASSWORD, "role": "admin"},
    )

    assert weak.status_code == 400
    assert weak.json()["error_code"] == "VALIDATION_ERROR"
    assert "uppercase" in weak.json()["message"]
    assert duplicate.status_code == 409
    assert duplicate.json()["error_code"] == "ACCOUNT_CONFLICT"
    assert extra.status_code == 400


def test_login_sets_strict_http_only_refresh_cookie(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    _signup(client)

    response = client.post(
        "/api/auth/login",
        json={"email": "ada@test.local", "password": STRONG_PASSWORD},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 3600
    assert "refresh_token" not in body
    cookie = response.headers["set-cookie"].lower()
    assert "httponly" in cookie
    assert "secure" in cookie
    assert "samesite=strict" in cookie
    assert "path=/api/auth" in cookie

    me = client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "ada@test.local"


def test_login_rejects_bad_credentials_generically(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    _signup(client)

    wrong = client.post(
        "/api/auth/login", json={"email": "ada@test.local", "password": "Wr0ng!Pass"}
    )
    unknown = client.post(
        "/api/auth/login", json={"email": "nobody@test.local", "password": STRONG_PASSWORD}
    )

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_protected_route_requires_valid_bearer_token(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    missing = client.get("/api/auth/me")
    invalid = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})

    assert missing.status_code == 401
    assert missing.json()["error_code"] == "AUTH_MISSING_TOKEN"
    assert invalid.status_code == 401
    assert invalid.json()["error_code"] == "AUTH_TOKEN_INVALID"


def test_refresh_rotates_cookie_and_rejects_replay(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    _signup(client)
    client.post(
        "/api/auth/login", json={"email": "ada@test.local", "password": STRONG_PASSWORD}
    )
    original = client.cookies.get("refresh_token")

    rotated = client.post("/api/auth/refresh-token")
    assert rotated.status_code == 200
    assert rotated.json()["access_token"]
    assert client.cookies.get("refresh_token") != original

    client.cookies.clear()
    replay = client.post(
        "/api/auth/refresh-token", headers={"Cookie": f"refresh_token={original}"}
    )
    assert replay.status_code == 403
    assert replay.json()["error_code"] == "AUTH_REFRESH_REJECTED"


def test_refresh_without_cookie_is_unauthorized(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    response = client.post("/api/auth/refresh-token")

    assert response.status_code == 401
    assert response.json()["error_code"] == "AUTH_MISSING_TOKEN"


def test_logout_then_refresh_is_rejected(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    _signup(client)
    client.post(
        "/api/auth/login", json={"email": "ada@test.local", "password": STRONG_PASSWORD}
    )
    token = client.cookies.get("refresh_token")

    logout = client.post("/api/auth/logout")
    assert logout.status_code == 200
    assert logout.json() == {"status": "ok"}

    client.cookies.clear()
    response = client.post(
        "/api/auth/refresh-token", headers={"Cookie": f"refresh_token={token}"}
    )
    assert response.status_code == 403


def test_resend_verification_answers_uniformly(tmp_path: Path) -> None:
    client, mailer = _client(tmp_path)
    _signup(client)
    _drain(client)

    known = client.post("/api/auth/verify-email/resend", json={"email": "ada@test.local"})
    unknown = client.post("/api/auth/verify-email/resend", json={"email": "nobody@test.local"})
    _drain(client)

    assert known.status_code == unknown.status_code == 202
    assert known.json() == unknown.json()
    assert len(mailer.sent) == 2

    stale = client.get(f"/api/auth/verify-email/{_verification_token(mailer.sent[0]['html'])}")
    fresh = client.get(f"/api/auth/verify-email/{_verification_token(mailer.sent[1]['html'])}")
    assert stale.status_code == 400
    assert stale.json()["error_code"] == "VERIFICATION_TOKEN_MISMATCH"
    assert fresh.status_code == 200


def test_signup_survives_failed_delivery(tmp_path: Path) -> None:
    class _DownMailer(RecordingMailer):
        def send(self, to: str, subject: str, html: str) -> str:
            raise ConnectionError("smtp down")

    app = create_app(build_app_config(tmp_path / "state.db"), mailer=_DownMailer())
    client = TestClient(app, base_url="https://testserver")

    response = client.post(
        "/api/auth/signup",
        json={"name": "Ada", "email": "ada@test.local", "password": STRONG_PASSWORD},
    )
    asyncio.run(app.state.worker_pool.run_once("test-worker"))

    assert response.status_code == 201
    jobs = app.state.queue.list_jobs()
    assert jobs[0].status is JobStatus.PENDING
    assert jobs[0].attempts == 1


def test_cors_preflight_bypasses_bearer_check(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    response = client.options(
        "/api/auth/me",
        headers={
            "Origin": "http://frontend.test",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "Authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://frontend.test"
    assert response.headers["access-control-allow-credentials"] == "true"
