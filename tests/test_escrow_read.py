from sqlalchemy import select

from app.models import AuditLog
from app.services.escrow_coordinator import EscrowCoordinator


def test_owner_reads_by_either_key(db_session, buyer, create_reservation):
    data = create_reservation(buyer, "310")
    coordinator = EscrowCoordinator(db_session)

    by_contract = coordinator.get_escrow_transaction(buyer.id, contract_escrow_id="310")
    by_payment = coordinator.get_escrow_transaction(buyer.id, reservation_payment_id=data["reservation_payment_id"])

    assert by_contract.success and by_payment.success
    assert by_contract.data == by_payment.data
    record = by_contract.data
    assert record["status"] == "created"
    assert record["amount"] == "0.001"
    assert record["reservation_payment"]["status"] == "initiated"
    assert record["reservation_payment"]["amount"] == "4.00"
    assert record["reservation_payment"]["user_id"] == buyer.id


def test_reads_are_audited(db_session, buyer, create_reservation):
    create_reservation(buyer, "311")

    EscrowCoordinator(db_session).get_escrow_transaction(buyer.id, contract_escrow_id="311")

    entry = db_session.scalars(select(AuditLog).where(AuditLog.action == "ESCROW_READ")).one()
    assert entry.actor == f"user:{buyer.id}"


def test_non_owner_is_unauthorized(db_session, buyer, other_buyer, create_reservation):
    data = create_reservation(buyer, "312")
    coordinator = EscrowCoordinator(db_session)

    by_contract = coordinator.get_escrow_transaction(other_buyer.id, contract_escrow_id="312")
    by_payment = coordinator.get_escrow_transaction(
        other_buyer.id, reservation_payment_id=data["reservation_payment_id"]
    )

    for result in (by_contract, by_payment):
        assert result.success is False
        assert result.error_code == "UNAUTHORIZED"
        assert result.data is None
        assert "312" not in str(result.error)


def test_missing_record_is_not_found(db_session, buyer):
    coordinator = EscrowCoordinator(db_session)

    assert coordinator.get_escrow_transaction(buyer.id, contract_escrow_id="999").error_code == "ESCROW_NOT_FOUND"
    assert coordinator.get_escrow_transaction(buyer.id, reservation_payment_id=999).error_code == "ESCROW_NOT_FOUND"


def test_exactly_one_key_is_required(db_session, buyer):
    coordinator = EscrowCoordinator(db_session)

    assert coordinator.get_escrow_transaction(buyer.id).error_code == "INVALID_INPUT"
    assert (
        coordinator.get_escrow_transaction(buyer.id, contract_escrow_id="1", reservation_payment_id=1).error_code
        == "INVALID_INPUT"
    )


def test_listing_returns_only_own_records(db_session, buyer, other_buyer, create_reservation):
    create_reservation(buyer, "320")
    create_reservation(buyer, "321")
    create_reservation(other_buyer, "322")

    result = EscrowCoordinator(db_session).list_user_escrow_transactions(buyer.id)

    assert result.success
    assert sorted(item["contract_escrow_id"] for item in result.data) == ["320", "321"]


def test_operator_listings(db_session, buyer, create_reservation):
    create_reservation(buyer, "330")
    create_reservation(buyer, "331")
    coordinator = EscrowCoordinator(db_session)
    assert coordinator.update_escrow_status("331", "resolved", winner_address="0x" + "2b" * 20).success

    active = coordinator.list_active()
    resolved = coordinator.list_by_status("resolved")

    assert [item["contract_escrow_id"] for item in active.data] == ["330"]
    assert [item["contract_escrow_id"] for item in resolved.data] == ["331"]
    assert coordinator.list_by_status("bogus").error_code == "INVALID_INPUT"
