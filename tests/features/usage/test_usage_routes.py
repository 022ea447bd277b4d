import pytest
from starlette.requests import Request

from app.features.audit.models.audit_record import AuditRecord
from app.platform.utils.client_ip import generate_ip_fingerprint


@pytest.mark.asyncio
async def test_guest_usage(async_client):
    res = await async_client.get("/api/v1/usage")

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["plan"] == "guest"
    assert data["used"] == 0
    assert data["limit"] == 1
    assert data["period_key"] is None


@pytest.mark.asyncio
async def test_user_usage_creates_free_record(async_client, auth_headers):
    res = await async_client.get("/api/v1/usage", headers=auth_headers("user-1"))

    assert res.status_code == 200
    payload = res.json()
    assert payload["message"] == "Usage retrieved successfully"
    data = payload["data"]
    assert data["plan"] == "free"
    assert data["used"] == 0
    assert data["limit"] == 3
    assert data["token_limit"] == 2000
    assert len(data["period_key"]) == 7


@pytest.mark.asyncio
async def test_guests_are_keyed_by_forwarded_ip(async_client, db_session):
    scope = {"type": "http", "headers": [(b"x-forwarded-for", b"203.0.113.7, 10.0.0.1")], "client": ("10.0.0.1", 1)}
    db_session.add(AuditRecord(guest_key=generate_ip_fingerprint(Request(scope)), ui_title="Landing"))
    await db_session.commit()

    same_ip = await async_client.get("/api/v1/usage", headers={"X-Forwarded-For": "203.0.113.7"})
    other_ip = await async_client.get("/api/v1/usage", headers={"X-Forwarded-For": "198.51.100.2"})

    assert same_ip.json()["data"]["used"] == 1
    assert other_ip.json()["data"]["used"] == 0
