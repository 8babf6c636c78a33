from tradelink.auth.clerk import AuthenticatedUser
from tradelink.models.contractor import Contractor
from tradelink.models.invitation import Invitation

CONTRACTOR_ID = "user_contractor_1"
CONTRACTOR_EMAIL = "pro@riverahvac.com"


def _sign_in_as_contractor(current_user, email=CONTRACTOR_EMAIL):
    current_user["user"] = AuthenticatedUser(user_id=CONTRACTOR_ID, email=email, name="Sam Rivera")


def test_session_creates_profile_and_links_invitations(client, db, current_user, make_invitation, home):
    sent_before = [make_invitation(), make_invitation()]
    client.post(
        f"/invitations/{sent_before[0].claim_token}/claim",
        json={"destination_property_id": str(home.id)},
    )
    _sign_in_as_contractor(current_user, email="PRO@riverahvac.com")

    response = client.post("/contractors/session")

    assert response.status_code == 200
    assert response.json()["id"] == CONTRACTOR_ID
    assert response.json()["display_name"] == "Sam Rivera"

    # Linking ran as a background task
    db.expire_all()
    linked = db.query(Invitation).filter(Invitation.contractor_id == CONTRACTOR_ID).count()
    assert linked == 2

    invitations = client.get("/contractors/me/invitations").json()
    assert sorted(i["status"] for i in invitations) == ["claimed", "pending"]

    stats = client.get("/contractors/me/stats").json()
    assert stats == {
        "total_invitations": 2,
        "total_customers": 1,
        "claim_rate": 0.5,
        "pending_invitations": 1,
    }


def test_session_is_safe_to_repeat(client, db, current_user, make_invitation):
    make_invitation()
    _sign_in_as_contractor(current_user)

    client.post("/contractors/session")
    client.post("/contractors/session")

    db.expire_all()
    assert db.query(Contractor).count() == 1
    assert client.get("/contractors/me/stats").json()["total_invitations"] == 1


def test_session_survives_linking_failure(client, db, current_user, make_invitation, monkeypatch):
    make_invitation()

    def broken(self, email):
        raise RuntimeError("boom")

    monkeypatch.setattr("tradelink.repositories.invitation_store.InvitationStore.find_unlinked_ids", broken)
    _sign_in_as_contractor(current_user)

    response = client.post("/contractors/session")

    assert response.status_code == 200
    db.expire_all()
    assert db.query(Invitation).filter(Invitation.contractor_id == CONTRACTOR_ID).count() == 0


def test_create_invitation_as_contractor(client, current_user, sent_emails):
    _sign_in_as_contractor(current_user)

    response = client.post(
        "/contractors/me/invitations",
        json={
            "contractor": {"name": "Sam Rivera", "company": "Rivera HVAC"},
            "records": [{"item": "Furnace", "cost": 3200}],
            "recipient_email": "homeowner@example.com",
        },
    )

    assert response.status_code == 201
    token = response.json()["claim_token"]

    invitations = client.get("/contractors/me/invitations").json()
    assert [i["claim_token"] for i in invitations] == [token]
    assert invitations[0]["status"] == "pending"
    assert invitations[0]["recipient_email"] == "homeowner@example.com"

    stats = client.get("/contractors/me/stats").json()
    assert stats["total_invitations"] == 1
    assert stats["claim_rate"] == 0.0

    assert [e["to"] for e in sent_emails] == ["homeowner@example.com"]
    assert "Rivera HVAC shared 1 home record with you" == sent_emails[0]["subject"]


def test_recalculate_stats(client, db, current_user, make_invitation):
    make_invitation(contractor_id=CONTRACTOR_ID)
    contractor = db.query(Contractor).filter(Contractor.id == CONTRACTOR_ID).one()
    contractor.claim_rate = 0.75
    db.commit()
    _sign_in_as_contractor(current_user)

    response = client.post("/contractors/me/stats/recalculate")

    assert response.status_code == 200
    assert response.json()["claim_rate"] == 0.0


def test_stats_for_new_contractor_are_zero(client, current_user):
    _sign_in_as_contractor(current_user)

    assert client.get("/contractors/me/stats").json() == {
        "total_invitations": 0,
        "total_customers": 0,
        "claim_rate": 0.0,
        "pending_invitations": 0,
    }


def _claim_as(client, current_user, token, home, user_id, name):
    current_user["user"] = AuthenticatedUser(user_id=user_id, email=f"{user_id}@x.com", name=name)
    response = client.post(
        f"/invitations/{token}/claim",
        json={"destination_property_id": str(home.id)},
    )
    assert response.status_code == 200


def test_list_customers_by_name(client, db, current_user, make_invitation):
    from tradelink.services.property_service import PropertyService

    zoe_home = PropertyService(db).create_property("user_zoe", "Lake House")
    ann_home = PropertyService(db).create_property("user_ann", "Townhome")
    first = make_invitation(contractor_id=CONTRACTOR_ID)
    second = make_invitation(contractor_id=CONTRACTOR_ID, records=[{"item": "Boiler", "cost": 50}])
    _claim_as(client, current_user, first.claim_token, zoe_home, "user_zoe", "Zoe Park")
    _claim_as(client, current_user, second.claim_token, ann_home, "user_ann", "Ann Lee")
    _sign_in_as_contractor(current_user)

    response = client.get("/contractors/me/customers")

    assert response.status_code == 200
    customers = response.json()
    assert [c["customer_name"] for c in customers] == ["Ann Lee", "Zoe Park"]
    assert customers[0]["property_name"] == "Townhome"
    assert customers[0]["total_jobs"] == 1
    assert customers[0]["total_spend"] == 50.0
    assert customers[1]["total_spend"] == 600.0


def test_list_customers_is_scoped_to_contractor(client, current_user, make_invitation, home):
    created = make_invitation(contractor_id="user_contractor_2")
    _claim_as(client, current_user, created.claim_token, home, home.owner_id, "Alex")
    _sign_in_as_contractor(current_user)

    assert client.get("/contractors/me/customers").json() == []


def test_delete_invitation_updates_stats(client, db, current_user, make_invitation, home):
    claimed = make_invitation(contractor_id=CONTRACTOR_ID)
    pending = make_invitation(contractor_id=CONTRACTOR_ID)
    _claim_as(client, current_user, claimed.claim_token, home, home.owner_id, "Alex")
    _sign_in_as_contractor(current_user)
    assert client.get("/contractors/me/stats").json()["claim_rate"] == 0.5

    response = client.delete(f"/contractors/me/invitations/{pending.invitation.id}")

    assert response.status_code == 204
    assert [i["id"] for i in client.get("/contractors/me/invitations").json()] == [str(claimed.invitation.id)]
    stats = client.get("/contractors/me/stats").json()
    assert stats["total_invitations"] == 1
    assert stats["claim_rate"] == 1.0
    assert stats["pending_invitations"] == 0

    # The homeowner's link still works
    assert client.get(f"/invitations/{pending.claim_token}").json()["valid"] is True


def test_delete_unknown_invitation_is_not_found(client, current_user, make_invitation):
    someone_elses = make_invitation(contractor_id="user_contractor_2")
    _sign_in_as_contractor(current_user)

    response = client.delete(f"/contractors/me/invitations/{someone_elses.invitation.id}")

    assert response.status_code == 404
