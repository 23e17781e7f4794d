from __future__ import annotations

import csv
import io

import pytest

from tests.helpers import registration_fields, upload_files


@pytest.fixture
def registration_id(client) -> str:
    res = client.post("/api/registration/register", data=registration_fields(), files=upload_files())
    assert res.status_code == 201, res.text
    return res.json()["data"]["id"]


def test_dashboard(client, registration_id):
    res = client.get("/api/admin/dashboard")

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["overview"]["totalRegistrations"] == 1
    assert data["overview"]["pendingReviews"] == 1
    assert data["topCourses"] == [{"courseName": "Data Science Fundamentals", "count": 1}]
    assert data["files"]["totalFiles"] == 2
    assert data["recentRegistrations"][0]["id"] == registration_id


@pytest.mark.parametrize("period, expected", [("today", "today"), ("month", "month"), ("decade", "week")])
def test_analytics_periods(client, registration_id, period, expected):
    data = client.get("/api/admin/analytics/registrations", params={"period": period}).json()["data"]
    assert data["period"] == expected
    assert data["summary"]["totalInPeriod"] == 1


def test_csv_export(client, registration_id):
    res = client.get("/api/admin/export/registrations", params={"format": "csv"})

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert res.headers["content-disposition"].startswith('attachment; filename="registrations_')
    rows = list(csv.reader(io.StringIO(res.text)))
    assert rows[0][:3] == ["ID", "Name", "Email"]
    assert rows[1][:3] == [registration_id, "Asha Verma", "asha.verma@example.com"]


def test_json_export_filters(client, registration_id):
    matching = client.get("/api/admin/export/registrations", params={"status": "pending"}).json()
    assert matching["total"] == 1
    assert matching["data"][0]["id"] == registration_id

    none = client.get("/api/admin/export/registrations", params={"status": "approved"}).json()
    assert none["total"] == 0

    future = client.get("/api/admin/export/registrations", params={"startDate": "2999-01-01"}).json()
    assert future["total"] == 0


def test_export_rejects_bad_input(client):
    assert client.get("/api/admin/export/registrations", params={"format": "xml"}).status_code == 400
    res = client.get("/api/admin/export/registrations", params={"startDate": "yesterday"})
    assert res.status_code == 400
    assert res.json()["message"] == "startDate must be an ISO 8601 date"
