import pytest
from sqlalchemy import select

from app.models import AuditLog, EscrowTransaction, ReservationPayment
from app.models.reservation_payment import ReservationPaymentStatus

RECEIVER_ADDRESS = "0x" + "2b" * 20
TX = "0x" + "ab" * 32


@pytest.mark.anyio
async def test_buyer_creates_reservation(client, buyer, buyer_headers, reservation_payload, db_session):
    response = await client.post("/escrow/reservations", json=reservation_payload("77"), headers=buyer_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["contract_escrow_id"] == "77"

    payment = db_session.get(ReservationPayment, body["data"]["reservation_payment_id"])
    assert payment.user_id == buyer.id
    assert payment.status == ReservationPaymentStatus.INITIATED


@pytest.mark.anyio
async def test_duplicate_reservation_is_conflict(client, buyer_headers, reservation_payload):
    first = await client.post("/escrow/reservations", json=reservation_payload("78"), headers=buyer_headers)
    second = await client.post("/escrow/reservations", json=reservation_payload("78"), headers=buyer_headers)

    assert first.status_code == 201
    assert second.status_code == 409
    body = second.json()
    assert body["success"] is False
    assert body["error"]["code"] == "DUPLICATE_ESCROW"


@pytest.mark.anyio
async def test_malformed_reservation_uses_envelope(client, buyer_headers, reservation_payload):
    payload = reservation_payload()
    payload["escrow_data"]["buyer_address"] = "0x123"

    response = await client.post("/escrow/reservations", json=payload, headers=buyer_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INVALID_INPUT"
    assert body["error"]["details"]["errors"]


@pytest.mark.anyio
async def test_owner_reads_and_lists(client, buyer, buyer_headers, create_reservation):
    create_reservation(buyer, "79")

    single = await client.get("/escrow/transactions", params={"contract_escrow_id": "79"}, headers=buyer_headers)
    mine = await client.get("/escrow/transactions/mine", headers=buyer_headers)

    assert single.status_code == 200
    assert single.json()["data"]["contract_escrow_id"] == "79"
    assert mine.status_code == 200
    assert [item["contract_escrow_id"] for item in mine.json()["data"]] == ["79"]


@pytest.mark.anyio
async def test_other_buyer_gets_forbidden(client, buyer, other_buyer_headers, create_reservation):
    data = create_reservation(buyer, "80")

    read = await client.get(
        "/escrow/transactions",
        params={"reservation_payment_id": data["reservation_payment_id"]},
        headers=other_buyer_headers,
    )
    write = await client.post(
        "/escrow/transactions/80/status",
        json={"status": "paid", "transaction_hash": TX},
        headers=other_buyer_headers,
    )
    mine = await client.get("/escrow/transactions/mine", headers=other_buyer_headers)

    assert read.status_code == 403
    assert read.json()["error"]["code"] == "UNAUTHORIZED"
    assert write.status_code == 403
    assert mine.json()["data"] == []


@pytest.mark.anyio
async def test_missing_escrow_is_not_found(client, buyer_headers):
    response = await client.get("/escrow/transactions", params={"contract_escrow_id": "12345"}, headers=buyer_headers)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ESCROW_NOT_FOUND"


@pytest.mark.anyio
async def test_buyer_reports_release(client, buyer, buyer_headers, create_reservation):
    create_reservation(buyer, "81")

    paid = await client.post(
        "/escrow/transactions/81/status", json={"status": "paid", "transaction_hash": TX}, headers=buyer_headers
    )
    released = await client.post(
        "/escrow/transactions/81/status",
        json={"status": "resolved", "winner_address": RECEIVER_ADDRESS, "transaction_hash": TX},
        headers=buyer_headers,
    )
    regress = await client.post(
        "/escrow/transactions/81/status", json={"status": "paid", "transaction_hash": TX}, headers=buyer_headers
    )

    assert paid.status_code == 200
    assert released.status_code == 200
    assert released.json()["data"]["payment_status"] == "completed"
    assert regress.status_code == 409
    assert regress.json()["error"]["code"] == "INVALID_TRANSITION"


@pytest.mark.anyio
async def test_key_without_linked_buyer_cannot_use_buyer_routes(client, operator_headers, admin_headers):
    for headers in (operator_headers, admin_headers):
        response = await client.get("/escrow/transactions/mine", headers=headers)
        assert response.status_code == 403


@pytest.mark.anyio
async def test_operator_ingests_ledger_events(client, buyer, operator_headers, create_reservation, db_session):
    create_reservation(buyer, "82")

    response = await client.post(
        "/ops/escrow/ledger-events",
        json={"event": "DisputeCreated", "escrow_id": "82", "dispute_id": "5"},
        headers=operator_headers,
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    paid = await client.post(
        "/ops/escrow/ledger-events",
        json={"event": "Payment", "escrow_id": "82", "payer": "0x" + "9f" * 20, "amount": "0.001"},
        headers=operator_headers,
    )
    disputed = await client.post(
        "/ops/escrow/ledger-events",
        json={"event": "DisputeCreated", "escrow_id": "82", "dispute_id": "5"},
        headers=operator_headers,
    )
    assert paid.status_code == 200
    assert disputed.status_code == 200
    db_session.expire_all()
    escrow = db_session.scalars(select(EscrowTransaction).where(EscrowTransaction.contract_escrow_id == "82")).one()
    assert escrow.dispute_id == "5"


@pytest.mark.anyio
async def test_operator_monitoring_routes(client, buyer, operator_headers, create_reservation):
    create_reservation(buyer, "83")

    forced = await client.post(
        "/ops/escrow/transactions/83/status",
        json={"status": "resolved", "winner_address": RECEIVER_ADDRESS},
        headers=operator_headers,
    )
    active = await client.get("/ops/escrow/transactions/active", headers=operator_headers)
    resolved = await client.get("/ops/escrow/transactions", params={"status": "resolved"}, headers=operator_headers)
    reconcile = await client.post("/ops/escrow/reconcile", headers=operator_headers)

    assert forced.status_code == 200
    assert active.json()["data"] == []
    assert [item["contract_escrow_id"] for item in resolved.json()["data"]] == ["83"]
    assert reconcile.json() == {"success": True, "data": {"corrected": 0}, "error": None}


@pytest.mark.anyio
async def test_buyer_cannot_reach_operator_routes(client, buyer_headers):
    response = await client.get("/ops/escrow/transactions/active", headers=buyer_headers)

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_SCOPE"


@pytest.mark.anyio
async def test_buyer_report_must_name_the_transaction(client, buyer, buyer_headers, create_reservation, db_session):
    create_reservation(buyer, "84")

    unsigned_payment = await client.post(
        "/escrow/transactions/84/status", json={"status": "paid"}, headers=buyer_headers
    )
    unsigned_release = await client.post(
        "/escrow/transactions/84/status",
        json={"status": "resolved", "winner_address": RECEIVER_ADDRESS},
        headers=buyer_headers,
    )

    for response in (unsigned_payment, unsigned_release):
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_INPUT"
    db_session.expire_all()
    escrow = db_session.scalars(select(EscrowTransaction).where(EscrowTransaction.contract_escrow_id == "84")).one()
    assert escrow.status.value == "created"

    signed = await client.post(
        "/escrow/transactions/84/status", json={"status": "paid", "transaction_hash": TX}, headers=buyer_headers
    )
    assert signed.status_code == 200
    db_session.expire_all()
    audit = db_session.scalars(
        select(AuditLog).where(AuditLog.action == "ESCROW_STATUS_UPDATED", AuditLog.entity_id == escrow.id)
    ).one()
    assert audit.actor == f"user:{buyer.id}"
    assert audit.data_json["transaction_hash"] == TX


@pytest.mark.anyio
async def test_buyer_dispute_needs_no_transaction_hash(client, buyer, buyer_headers, create_reservation):
    create_reservation(buyer, "85")
    await client.post(
        "/escrow/transactions/85/status", json={"status": "paid", "transaction_hash": TX}, headers=buyer_headers
    )

    disputed = await client.post(
        "/escrow/transactions/85/status", json={"status": "dispute_created", "dispute_id": "4"}, headers=buyer_headers
    )

    assert disputed.status_code == 200
    assert disputed.json()["data"]["payment_status"] == "under_validation"


@pytest.mark.anyio
async def test_operator_resyncs_from_snapshot(client, buyer, operator_headers, create_reservation):
    create_reservation(buyer, "86")

    response = await client.post(
        "/ops/escrow/ledger-snapshots",
        json={"escrow_id": 86, "status": 3, "winner": RECEIVER_ADDRESS, "property_id": "unit-12b"},
        headers=operator_headers,
    )
    bad = await client.post("/ops/escrow/ledger-snapshots", json={"escrow_id": "x"}, headers=operator_headers)

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "resolved"
    assert response.json()["data"]["payment_status"] == "completed"
    assert bad.status_code == 400
