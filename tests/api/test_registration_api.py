from __future__ import annotations

import re
import uuid

import pytest

from registration_intake.registrations.service import RegistrationService
from tests.helpers import PDF_BYTES, files_under, registration_fields, upload_files

STORED_NAME_RE = re.compile(r"^\d{13}_[0-9a-f]{8}_[A-Za-z0-9_]+\.(pdf|png)$")


def _register(client, **overrides):
    files = overrides.pop("files", None) or upload_files()
    return client.post("/api/registration/register", data=registration_fields(**overrides), files=files)


@pytest.fixture
def registered(client) -> dict:
    res = _register(client)
    assert res.status_code == 201, res.text
    return res.json()["data"]


def test_register_success(client, upload_root):
    res = _register(client)

    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["message"] == "Registration completed successfully! We will contact you soon."
    data = body["data"]
    assert data["fullName"] == "Asha Verma"
    assert data["status"] == "pending"
    uuid.UUID(data["id"])

    identity = [p for p in files_under(upload_root) if p.parent.name == "identity"]
    signatures = [p for p in files_under(upload_root) if p.parent.name == "signatures"]
    assert len(identity) == 1 and len(signatures) == 1
    assert STORED_NAME_RE.match(identity[0].name)
    assert identity[0].name.endswith("_aadhaar_scan.pdf")


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"phone": "9123456789", "identityNumber": "345678901234"}, "email"),
        ({"email": "other@example.com", "identityNumber": "345678901234"}, "phone"),
        ({"email": "other@example.com", "phone": "9123456789"}, "identityNumber"),
    ],
)
def test_duplicate_registration_leaves_no_files(client, registered, upload_root, overrides, field):
    before = files_under(upload_root)

    res = _register(client, **overrides)

    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["error"] == "DUPLICATE"
    assert body["field"] == field
    assert files_under(upload_root) == before


def test_invalid_fields_are_listed(client, upload_root):
    res = _register(client, firstName="A1", pincode="012345", agreeTerms="false")

    assert res.status_code == 400
    body = res.json()
    assert body["message"] == "Validation failed"
    assert body["error"] == "VALIDATION_ERROR"
    assert "First name can only contain letters and spaces" in body["errors"]
    assert "You must accept the terms and conditions" in body["errors"]
    assert files_under(upload_root) == []


def test_wrong_signature_type(client, upload_root):
    files = upload_files(signature=("signature.pdf", PDF_BYTES, "application/pdf"))
    res = _register(client, files=files)

    assert res.status_code == 400
    assert res.json()["error"] == "INVALID_FILE_TYPE"
    assert files_under(upload_root) == []


def test_missing_signature(client, upload_root):
    res = _register(client, files=upload_files(signature=None))

    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "MISSING_FILES"
    assert body["missingFiles"] == ["signatureFile"]
    assert files_under(upload_root) == []


def test_get_registration(client, registered):
    res = client.get(f"/api/registration/{registered['id']}")

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["email"] == "asha.verma@example.com"
    assert data["formattedIdentityNumber"] == "2345 6789 0123"
    assert data["files"]["identityFile"]["originalName"] == "aadhaar scan.pdf"
    assert "path" not in data["files"]["identityFile"]
    assert "ipAddress" not in data


def test_get_unknown_and_malformed_ids(client):
    missing = client.get(f"/api/registration/{uuid.uuid4()}")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Registration not found", "error": "NOT_FOUND"}

    malformed = client.get("/api/registration/not-a-uuid")
    assert malformed.status_code == 400
    assert malformed.json()["error"] == "VALIDATION_ERROR"


def test_unknown_route(client):
    res = client.get("/api/nowhere")
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Route /api/nowhere not found", "error": "HTTP_404"}


def test_list_registrations(client, registered):
    _register(
        client,
        firstName="Rohan",
        lastName="Mehta",
        email="rohan@example.com",
        phone="9123456789",
        identityNumber="345678901234",
        courseName="Web Development",
    )

    res = client.get("/api/registration/all", params={"search": "rohan", "limit": 5})
    assert res.status_code == 200
    data = res.json()["data"]
    assert [r["firstName"] for r in data["registrations"]] == ["Rohan"]
    assert data["pagination"]["totalRecords"] == 1
    assert data["stats"]["total"] == 2

    res = client.get("/api/registration/all", params={"status": "all", "sortBy": "firstName", "sortOrder": "asc"})
    assert [r["firstName"] for r in res.json()["data"]["registrations"]] == ["Asha", "Rohan"]


@pytest.mark.parametrize(
    "params",
    [{"page": 0}, {"limit": 101}, {"sortBy": "password"}, {"status": "archived"}],
)
def test_list_rejects_bad_query(client, params):
    res = client.get("/api/registration/all", params=params)
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_update_registration(client, registered):
    res = client.put(
        f"/api/registration/{registered['id']}",
        json={"firstName": "Anika", "courseName": "Cloud Foundations"},
    )

    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Registration updated successfully"
    assert body["data"]["fullName"] == "Anika Verma"
    assert body["data"]["courseName"] == "Cloud Foundations"


def test_update_with_invalid_status(client, registered):
    res = client.put(f"/api/registration/{registered['id']}", json={"status": "archived"})

    assert res.status_code == 400
    assert res.json()["errors"] == ["Invalid status. Must be one of: pending, approved, rejected, under_review"]


def test_status_update(client, registered):
    res = client.put(
        f"/api/registration/{registered['id']}/status",
        json={"status": "under_review", "notes": "Checking address"},
    )

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["status"] == "under_review"
    assert data["reviewedBy"] == "Admin"
    assert data["notes"] == "Checking address"
    assert data["reviewedAt"]


def test_delete_registration_removes_files(client, registered, upload_root):
    res = client.delete(f"/api/registration/{registered['id']}")

    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Registration deleted successfully"}
    assert files_under(upload_root) == []
    assert client.get(f"/api/registration/{registered['id']}").status_code == 404


def test_stats_and_service_health(client, registered):
    stats = client.get("/api/registration/stats").json()["data"]
    assert stats["overview"]["total"] == 1
    assert stats["timeline"]["today"] == 1

    health = client.get("/api/registration/health/check").json()
    assert health["status"] == "active"


def test_storage_failure_reports_file_system_error(client, upload_root):
    signatures = upload_root / "signatures"
    signatures.rmdir()
    signatures.write_bytes(b"")

    res = _register(client)

    assert res.status_code == 500
    body = res.json()
    assert body["error"] == "FILE_SYSTEM_ERROR"
    assert body["field"] == "signatureFile"
    assert "detail" not in body
    assert str(upload_root) not in res.text
    assert files_under(upload_root) == [signatures]


def test_commit_time_duplicate_removes_uploaded_files(client, registered, upload_root, monkeypatch):
    async def _skip_lookup(self, **kwargs):
        return None

    monkeypatch.setattr(RegistrationService, "_ensure_unique", _skip_lookup)
    before = files_under(upload_root)

    res = _register(client, phone="9123456789", identityNumber="345678901234")

    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "DUPLICATE"
    assert body["field"] == "email"
    assert files_under(upload_root) == before
