from uuid import uuid4

import pytest

from app.models.audit import AuditLog


@pytest.mark.anyio("asyncio")
async def test_user_creation_audit_has_api_actor(client, admin_headers, db_session):
    payload = {
        "username": f"audit-user-{uuid4().hex[:6]}",
        "email": f"audit-user-{uuid4().hex[:6]}@example.com",
    }
    resp = await client.post("/users", json=payload, headers=admin_headers)
    assert resp.status_code == 201

    db_session.expire_all()
    audit = (
        db_session.query(AuditLog)
        .filter(AuditLog.action == "CREATE_USER")
        .order_by(AuditLog.id.desc())
        .first()
    )
    assert audit is not None
    assert audit.actor.startswith("apikey:")
    assert audit.data_json["email"].startswith("***@")


@pytest.mark.anyio("asyncio")
async def test_duplicate_username_is_rejected(client, admin_headers, buyer):
    resp = await client.post(
        "/users",
        json={"username": buyer.username, "email": f"dup-{uuid4().hex[:6]}@example.com"},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "USER_CREATE_FAILED"


@pytest.mark.anyio("asyncio")
async def test_get_user(client, admin_headers, buyer):
    resp = await client.get(f"/users/{buyer.id}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["username"] == buyer.username

    missing = await client.get("/users/999999", headers=admin_headers)
    assert missing.status_code == 404


@pytest.mark.anyio("asyncio")
async def test_deactivated_buyer_loses_access(client, admin_headers, buyer, buyer_headers, db_session):
    before = await client.get("/escrow/transactions/mine", headers=buyer_headers)
    assert before.status_code == 200

    resp = await client.post(f"/users/{buyer.id}/deactivate", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    after = await client.get("/escrow/transactions/mine", headers=buyer_headers)
    assert after.status_code == 401

    db_session.expire_all()
    audit = db_session.query(AuditLog).filter(AuditLog.action == "DEACTIVATE_USER").one()
    assert audit.entity_id == buyer.id
    assert audit.data_json == {"revoked_keys": 1}


@pytest.mark.anyio("asyncio")
async def test_operator_lists_buyer_reservation_payments(client, operator_headers, buyer, create_reservation):
    create_reservation(buyer, "900")
    create_reservation(buyer, "901", amount="0.002")

    resp = await client.get(f"/users/{buyer.id}/reservation-payments", headers=operator_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert len(body) == 2
    assert {item["amount"] for item in body} == {"4.00", "8.00"}
    assert all(item["user_id"] == buyer.id for item in body)
