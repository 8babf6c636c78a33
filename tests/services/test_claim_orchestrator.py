import uuid

import pytest
from sqlalchemy.exc import OperationalError

from tradelink.models.contractor import Contractor
from tradelink.models.customer import Customer
from tradelink.models.inventory_record import InventoryRecord
from tradelink.repositories.invitation_store import InvitationStore
from tradelink.services.claim_errors import ErrorCode
from tradelink.services.claim_orchestrator import IMPORTED_FROM, ClaimOrchestrator
from tradelink.services.property_service import PropertyService
from tradelink.services.stats_aggregator import StatsAggregator

CONTRACTOR_ID = "user_contractor_1"


def _records_for(db, invitation_id):
    db.expire_all()
    return db.query(InventoryRecord).filter(InventoryRecord.source_invitation_id == invitation_id).all()


def test_happy_path_imports_and_links_customer(db, make_invitation, home):
    created = make_invitation(contractor_id=CONTRACTOR_ID)

    result = ClaimOrchestrator(db).claim(
        created.invitation.id,
        home.owner_id,
        home.id,
        customer_name="Alex Homeowner",
        claimant_email="a@x.com",
    )

    assert result.success is True
    assert result.error is None
    assert result.imported_count == 3
    assert result.contractor_id == CONTRACTOR_ID
    assert result.contractor_info["company"] == "Rivera HVAC"

    records = _records_for(db, created.invitation.id)
    assert len(records) == 3
    assert {r.property_id for r in records} == {home.id}
    assert all(r.owner_id == home.owner_id for r in records)
    assert all(r.imported_from == IMPORTED_FROM for r in records)
    assert all(r.contractor == "Rivera HVAC" for r in records)

    invitation = InvitationStore(db).get_by_id(created.invitation.id, fresh=True)
    assert invitation.status == "claimed"
    assert invitation.claimed_by == home.owner_id
    assert invitation.claimed_at is not None

    mirror = InvitationStore(db).get_mirror(CONTRACTOR_ID, created.invitation.id)
    assert mirror.status == "claimed"
    assert mirror.customer_name == "Alex Homeowner"
    assert mirror.customer_property_name == "Main House"

    customer = db.query(Customer).filter(Customer.contractor_id == CONTRACTOR_ID).one()
    assert customer.claimant_id == home.owner_id
    assert customer.total_jobs == 1
    assert customer.total_spend == 600.0
    assert customer.email == "a@x.com"

    stats = StatsAggregator(db).get_stats(CONTRACTOR_ID)
    assert stats.total_customers == 1
    assert stats.total_invitations == 1
    assert stats.claim_rate == 1.0


def test_unlinked_invitation_claims_without_customer_entry(db, make_invitation, home):
    created = make_invitation()

    result = ClaimOrchestrator(db).claim(created.invitation.id, home.owner_id, home.id)

    assert result.success is True
    assert result.contractor_id is None
    assert db.query(Customer).count() == 0
    assert len(_records_for(db, created.invitation.id)) == 3


def test_second_claim_is_already_claimed(db, make_invitation, home):
    created = make_invitation(contractor_id=CONTRACTOR_ID)
    orchestrator = ClaimOrchestrator(db)

    first = orchestrator.claim(created.invitation.id, home.owner_id, home.id)
    second = orchestrator.claim(created.invitation.id, home.owner_id, home.id)

    assert first.success is True
    assert second.success is False
    assert second.error == ErrorCode.ALREADY_CLAIMED
    assert len(_records_for(db, created.invitation.id)) == 3


def test_concurrent_claims_have_exactly_one_winner(db, other_db, make_invitation, home, monkeypatch):
    created = make_invitation(contractor_id=CONTRACTOR_ID)
    cabin = PropertyService(other_db).create_property("user_homeowner_2", "Cabin")

    loser = ClaimOrchestrator(other_db)
    guarded_update = loser.store.mark_claimed
    outcomes = {}

    def rival_commits_first(*args, **kwargs):
        # The rival claimant's unit commits between our read and our guarded update
        outcomes["winner"] = ClaimOrchestrator(db).claim(created.invitation.id, home.owner_id, home.id)
        return guarded_update(*args, **kwargs)

    monkeypatch.setattr(loser.store, "mark_claimed", rival_commits_first)

    result = loser.claim(created.invitation.id, "user_homeowner_2", cabin.id)

    assert outcomes["winner"].success is True
    assert result.success is False
    assert result.error == ErrorCode.ALREADY_CLAIMED

    records = _records_for(db, created.invitation.id)
    assert len(records) == 3
    assert {r.owner_id for r in records} == {home.owner_id}
    assert db.query(Customer).count() == 1
    assert StatsAggregator(db).get_stats(CONTRACTOR_ID).total_customers == 1


def test_failure_mid_import_rolls_back_everything(db, make_invitation, home, monkeypatch):
    created = make_invitation(contractor_id=CONTRACTOR_ID)

    def failing_import(self, invitation, claimant_id, destination, now):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ClaimOrchestrator, "_import_records", failing_import)

    result = ClaimOrchestrator(db).claim(created.invitation.id, home.owner_id, home.id)

    assert result.success is False
    assert result.error == ErrorCode.UNAVAILABLE
    assert result.error.is_retryable

    invitation = InvitationStore(db).get_by_id(created.invitation.id, fresh=True)
    assert invitation.status == "pending"
    assert invitation.claimed_by is None
    assert _records_for(db, created.invitation.id) == []
    assert InvitationStore(db).get_mirror(CONTRACTOR_ID, created.invitation.id).status == "pending"
    assert StatsAggregator(db).get_stats(CONTRACTOR_ID).total_customers == 0

    # Retrying once the store recovers succeeds
    monkeypatch.undo()
    retry = ClaimOrchestrator(db).claim(created.invitation.id, home.owner_id, home.id)
    assert retry.success is True
    assert retry.imported_count == 3


def test_replayed_claim_does_not_duplicate_records(db, make_invitation, home):
    created = make_invitation()
    for i in range(3):
        db.add(InventoryRecord(
            owner_id=home.owner_id,
            property_id=home.id,
            source_invitation_id=created.invitation.id,
            item=f"Item {i + 1}",
        ))
    db.commit()

    result = ClaimOrchestrator(db).claim(created.invitation.id, home.owner_id, home.id)

    assert result.success is True
    assert result.imported_count == 3
    assert len(_records_for(db, created.invitation.id)) == 3


def test_destination_must_belong_to_claimant(db, make_invitation, home):
    created = make_invitation()
    someone_elses = PropertyService(db).create_property("user_other", "Not Yours")
    orchestrator = ClaimOrchestrator(db)

    for destination in (someone_elses.id, uuid.uuid4(), "not-a-uuid"):
        result = orchestrator.claim(created.invitation.id, home.owner_id, destination)
        assert result.error == ErrorCode.INVALID_PROPERTY

    assert InvitationStore(db).get_by_id(created.invitation.id, fresh=True).status == "pending"
    assert _records_for(db, created.invitation.id) == []


@pytest.mark.parametrize("invitation_id", [uuid.uuid4(), "garbage", None])
def test_unknown_invitation_is_not_found(db, home, invitation_id):
    result = ClaimOrchestrator(db).claim(invitation_id, home.owner_id, home.id)

    assert result.success is False
    assert result.error == ErrorCode.NOT_FOUND


def test_expired_invitation_cannot_be_claimed(db, make_invitation, home):
    created = make_invitation(age_days=40)

    result = ClaimOrchestrator(db).claim(created.invitation.id, home.owner_id, home.id)

    assert result.error == ErrorCode.EXPIRED
    assert InvitationStore(db).get_by_id(created.invitation.id, fresh=True).status == "pending"


def test_repeat_customer_updates_existing_entry(db, make_invitation, home):
    first = make_invitation(contractor_id=CONTRACTOR_ID)
    second = make_invitation(contractor_id=CONTRACTOR_ID, records=[{"item": "Water heater", "cost": 50}])
    orchestrator = ClaimOrchestrator(db)

    orchestrator.claim(first.invitation.id, home.owner_id, home.id, customer_name="Alex")
    orchestrator.claim(second.invitation.id, home.owner_id, home.id, customer_name="Alex")

    db.expire_all()
    customer = db.query(Customer).filter(Customer.contractor_id == CONTRACTOR_ID).one()
    assert customer.total_jobs == 2
    assert customer.total_spend == 650.0

    contractor = db.query(Contractor).filter(Contractor.id == CONTRACTOR_ID).one()
    assert contractor.claim_rate == 1.0
