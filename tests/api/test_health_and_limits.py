from __future__ import annotations

from starlette.testclient import TestClient

from registration_intake.app.settings import RateLimitSettings
from tests.conftest import build_app
from tests.helpers import files_under, registration_fields, upload_files


def test_health(client):
    res = client.get("/health")

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["message"] == "Server is running"
    assert body["version"] == "0.1.0"


def test_db_health(client):
    assert client.get("/_db/health").status_code == 200

    verbose = client.get("/_db/health", params={"verbose": 1}).json()
    assert verbose["ok"] is True
    assert verbose["driver"] == "sqlite"


def test_registration_attempts_are_limited(tmp_path, upload_root):
    app = build_app(tmp_path, upload_root, rate_limits=RateLimitSettings(registration_limit=1))
    with TestClient(app) as client:
        first = client.post("/api/registration/register", data=registration_fields(), files=upload_files())
        assert first.status_code == 201
        stored = files_under(upload_root)

        second = client.post(
            "/api/registration/register",
            data=registration_fields(email="second@example.com", phone="9123456789", identityNumber="345678901234"),
            files=upload_files(),
        )

    assert second.status_code == 429
    assert int(second.headers["retry-after"]) > 0
    body = second.json()
    assert body["error"] == "RATE_LIMITED"
    assert body["message"] == "Too many registration attempts. Please try again later."
    assert files_under(upload_root) == stored


def test_general_api_limit_spares_health(tmp_path, upload_root):
    app = build_app(tmp_path, upload_root, rate_limits=RateLimitSettings(limit=2))
    with TestClient(app) as client:
        codes = [client.get("/api/registration/stats").status_code for _ in range(3)]
        limited = client.get("/api/admin/dashboard")
        health = client.get("/health")

    assert codes == [200, 200, 429]
    assert limited.status_code == 429
    assert limited.json()["message"] == "Too many requests from this IP, please try again later."
    assert health.status_code == 200


def test_limits_are_per_client(tmp_path, upload_root):
    app = build_app(tmp_path, upload_root, rate_limits=RateLimitSettings(limit=1))
    with TestClient(app) as client:
        assert client.get("/api/registration/stats").status_code == 200
        other = client.get("/api/registration/stats", headers={"X-Forwarded-For": "198.51.100.1"})
    assert other.status_code == 200


def test_oversized_request_is_rejected(tmp_path, upload_root):
    app = build_app(tmp_path, upload_root)
    with TestClient(app) as client:
        res = client.post(
            "/api/registration/register",
            content=b"x" * (10 * 1024 * 1024 + 1),
            headers={"content-type": "multipart/form-data; boundary=x"},
        )
    assert res.status_code == 413
    assert res.json()["error"] == "PAYLOAD_TOO_LARGE"
    assert files_under(upload_root) == []
