from app.models.audit import AuditLog
from app.utils.audit import actor_from_api_key, log_audit, sanitize_payload_for_audit


def test_audit_log_masks_sensitive_fields(db_session):
    payload = {
        "contract_escrow_id": "77",
        "email": "sensitive@example.com",
        "phone": "+598 99 123 456",
        "address": "Av. Brasil 2400",
        "personal_info": [{"document_id": "4.123.456-7"}],
    }

    log_audit(
        db_session,
        actor="test",
        action="MASK_TEST",
        entity="ReservationPayment",
        entity_id=1,
        data=payload,
    )
    db_session.commit()

    entry = (
        db_session.query(AuditLog)
        .filter(AuditLog.action == "MASK_TEST")
        .order_by(AuditLog.id.desc())
        .first()
    )
    assert entry is not None
    assert entry.data_json["contract_escrow_id"] == "77"
    assert entry.data_json["email"] == "***@example.com"
    assert entry.data_json["phone"] == "***3456"
    assert entry.data_json["address"] == "***"
    assert entry.data_json["personal_info"][0]["document_id"] == "***56-7"


def test_wallet_addresses_are_not_masked():
    data = {"winner_address": "0x" + "2b" * 20}
    assert sanitize_payload_for_audit(data) == data


def test_actor_prefers_linked_user():
    class Key:
        user_id = 12
        prefix = "dmr_abc"

    class ServiceKey:
        user_id = None
        prefix = "dmr_ops"

    assert actor_from_api_key(Key()) == "user:12"
    assert actor_from_api_key(ServiceKey()) == "apikey:dmr_ops"
    assert actor_from_api_key(object(), fallback="apikey:unknown") == "apikey:unknown"
