from datetime import timedelta

import pytest

from tradelink.models.home_property import HomeProperty
from tradelink.models.invitation import Invitation, InvitationStatus
from tradelink.models.mixins import utcnow
from tradelink.repositories.invitation_store import InvitationStore, PartialBatchError


def _count_properties(db):
    return db.query(HomeProperty).count()


def test_atomic_commits_outermost_block_only(db):
    store = InvitationStore(db)

    with store.atomic():
        db.add(HomeProperty(owner_id="owner-1", name="Outer"))
        with store.atomic():
            db.add(HomeProperty(owner_id="owner-1", name="Inner"))
            db.flush()
        # Inner block must not have committed on its own
        assert db.in_transaction()

    assert _count_properties(db) == 2
    assert db.info.get("tradelink.atomic_depth") == 0


def test_atomic_failure_in_nested_block_rolls_back_whole_unit(db):
    store = InvitationStore(db)

    with pytest.raises(RuntimeError):
        with store.atomic():
            db.add(HomeProperty(owner_id="owner-1", name="Outer"))
            db.flush()
            with store.atomic():
                db.add(HomeProperty(owner_id="owner-1", name="Inner"))
                db.flush()
                raise RuntimeError("boom")

    assert _count_properties(db) == 0


def test_bounded_batch_chunks_and_commits_each(db):
    store = InvitationStore(db)
    seen = []

    def apply(chunk):
        seen.append(list(chunk))
        for name in chunk:
            db.add(HomeProperty(owner_id="owner-1", name=name))
        return len(chunk)

    results = store.bounded_batch([f"home-{i}" for i in range(5)], 2, apply)

    assert results == [2, 2, 1]
    assert [len(chunk) for chunk in seen] == [2, 2, 1]
    assert _count_properties(db) == 5


def test_bounded_batch_partial_failure_keeps_committed_chunks(db):
    store = InvitationStore(db)
    calls = {"n": 0}

    def apply(chunk):
        calls["n"] += 1
        for name in chunk:
            db.add(HomeProperty(owner_id="owner-1", name=name))
        db.flush()
        if calls["n"] == 2:
            raise ValueError("chunk two failed")
        return len(chunk)

    with pytest.raises(PartialBatchError) as exc:
        store.bounded_batch(["a", "b", "c", "d", "e"], 2, apply)

    assert exc.value.committed == [2]
    assert isinstance(exc.value.cause, ValueError)
    # Only the first chunk survived
    assert _count_properties(db) == 2


def test_bounded_batch_rejects_non_positive_chunk_size(db):
    with pytest.raises(ValueError):
        InvitationStore(db).bounded_batch([1, 2], 0, lambda chunk: None)


def test_get_by_token_and_id(db, make_invitation):
    created = make_invitation()
    store = InvitationStore(db)

    assert store.get_by_token(created.claim_token).id == created.invitation.id
    assert store.get_by_token("nope") is None
    assert store.get_by_id(str(created.invitation.id)).claim_token == created.claim_token


def test_mark_claimed_is_compare_and_set(db, make_invitation):
    created = make_invitation()
    store = InvitationStore(db)
    now = utcnow()

    with store.atomic():
        assert store.mark_claimed(created.invitation.id, "claimant-1", now) is True
    with store.atomic():
        assert store.mark_claimed(created.invitation.id, "claimant-2", now) is False

    invitation = store.get_by_id(created.invitation.id, fresh=True)
    assert invitation.status == InvitationStatus.CLAIMED.value
    assert invitation.claimed_by == "claimant-1"


def test_status_never_moves_backwards(db, make_invitation):
    created = make_invitation()
    store = InvitationStore(db)

    with store.atomic():
        assert store.mark_claimed(created.invitation.id, "claimant-1", utcnow())
    with store.atomic():
        assert store.mark_expired(created.invitation.id) is False

    assert store.get_by_id(created.invitation.id, fresh=True).status == InvitationStatus.CLAIMED.value


def test_mark_linked_only_once(db, make_invitation):
    created = make_invitation()
    store = InvitationStore(db)

    with store.atomic():
        assert store.mark_linked(created.invitation.id, "contractor-1", utcnow())
    with store.atomic():
        assert not store.mark_linked(created.invitation.id, "contractor-2", utcnow())

    assert store.get_by_id(created.invitation.id, fresh=True).contractor_id == "contractor-1"


def test_find_unlinked_ids_matches_email_and_skips_linked(db, make_invitation):
    first = make_invitation(contractor_email="pro@example.com")
    make_invitation(contractor_email="other@example.com")
    make_invitation(contractor_email="pro@example.com", contractor_id="contractor-1")

    ids = InvitationStore(db).find_unlinked_ids("pro@example.com")

    assert ids == [first.invitation.id]


def test_find_stale_pending_ids(db, make_invitation):
    old = make_invitation(age_days=40)
    make_invitation(age_days=5)

    ids = InvitationStore(db).find_stale_pending_ids(utcnow() - timedelta(days=30))

    assert ids == [old.invitation.id]


def test_mirror_listing_and_counts(db, make_invitation):
    make_invitation(contractor_id="contractor-1")
    claimed = make_invitation(contractor_id="contractor-1")
    make_invitation(contractor_id="contractor-2")

    store = InvitationStore(db)
    mirror = store.get_mirror("contractor-1", claimed.invitation.id)
    mirror.status = InvitationStatus.CLAIMED.value
    db.commit()

    assert len(store.list_mirrors("contractor-1")) == 2
    assert len(store.list_mirrors("contractor-1", limit=1)) == 1
    assert store.count_mirrors("contractor-1") == {"pending": 1, "claimed": 1}
    assert store.get_mirror("contractor-2", claimed.invitation.id) is None


def test_mirror_from_copies_current_state(db, make_invitation):
    created = make_invitation()
    invitation = db.query(Invitation).filter(Invitation.id == created.invitation.id).first()

    mirror = InvitationStore.mirror_from(invitation, "contractor-9")

    assert mirror.id == invitation.id
    assert mirror.contractor_id == "contractor-9"
    assert mirror.claim_token == invitation.claim_token
    assert mirror.status == "pending"
