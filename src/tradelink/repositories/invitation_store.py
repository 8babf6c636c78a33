# src/tradelink/repositories/invitation_store.py

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.orm import Session
from opentelemetry import trace, metrics

from tradelink.models.invitation import Invitation, InvitationStatus
from tradelink.models.contractor_invitation import ContractorInvitation

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
meter = metrics.get_meter(__name__)

# Metrics – safe even without real exporter
claim_guard_counter = meter.create_counter(
    "tradelink_claim_guard_total",
    description="Guarded pending->claimed updates, by whether the guard was won",
)
link_guard_counter = meter.create_counter(
    "tradelink_link_guard_total",
    description="Guarded contractor_id updates, by whether the guard was won",
)

T = TypeVar("T")
R = TypeVar("R")

_DEPTH_KEY = "tradelink.atomic_depth"


class PartialBatchError(Exception):
    """A bounded batch failed after some chunks had already committed."""

    def __init__(self, committed: list, cause: Exception):
        super().__init__(f"batch failed after {len(committed)} committed chunk(s): {cause}")
        self.committed = committed
        self.cause = cause


def _as_uuid(value) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class InvitationStore:
    """
    Persistence for invitations and their contractor mirrors.

    Two write primitives:
    - atomic(): one all-or-nothing unit of work on the session. Nested use
      joins the outer unit, only the outermost block commits or rolls back.
    - bounded_batch(): applies a function to fixed-size chunks, each chunk
      in its own unit of work.
    """

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Units of work
    # -------------------------------------------------------------------------
    @contextmanager
    def atomic(self) -> Iterator[Session]:
        depth = self.db.info.get(_DEPTH_KEY, 0)
        self.db.info[_DEPTH_KEY] = depth + 1
        try:
            yield self.db
            if depth == 0:
                self.db.commit()
        except Exception:
            if depth == 0:
                logger.debug("Rolling back unit of work")
                self.db.rollback()
            raise
        finally:
            self.db.info[_DEPTH_KEY] = depth

    def bounded_batch(
        self,
        items: Sequence[T],
        max_chunk_size: int,
        apply: Callable[[Sequence[T]], R],
    ) -> list[R]:
        """
        Run apply() over items in chunks of at most max_chunk_size.

        Returns one result per committed chunk. If a chunk fails, the chunks
        before it stay committed and PartialBatchError carries their results.
        """
        if max_chunk_size < 1:
            raise ValueError("max_chunk_size must be at least 1")

        committed: list[R] = []
        for start in range(0, len(items), max_chunk_size):
            chunk = items[start:start + max_chunk_size]
            with tracer.start_as_current_span("db.bounded_batch_chunk") as span:
                span.set_attribute("batch.chunk_start", start)
                span.set_attribute("batch.chunk_size", len(chunk))
                try:
                    with self.atomic():
                        result = apply(chunk)
                except Exception as exc:
                    logger.exception(
                        "Batch chunk failed at offset=%d size=%d", start, len(chunk)
                    )
                    raise PartialBatchError(committed, exc) from exc
            committed.append(result)
        return committed

    # -------------------------------------------------------------------------
    # CREATE
    # -------------------------------------------------------------------------
    def add(self, invitation: Invitation, mirror: ContractorInvitation | None = None) -> Invitation:
        with tracer.start_as_current_span("db.add_invitation") as span:
            span.set_attribute("invitation.contractor_id", invitation.contractor_id or "")
            with self.atomic():
                self.db.add(invitation)
                if mirror is not None:
                    self.db.add(mirror)
                self.db.flush()
            self.db.refresh(invitation)

        logger.info(
            "Stored invitation id=%s contractor=%s records=%d",
            invitation.id,
            invitation.contractor_id,
            len(invitation.records or []),
        )
        return invitation

    # -------------------------------------------------------------------------
    # READ HELPERS
    # -------------------------------------------------------------------------
    def get_by_token(self, claim_token: str) -> Invitation | None:
        with tracer.start_as_current_span("db.get_invitation_by_token"):
            return (
                self.db.query(Invitation)
                .filter(Invitation.claim_token == claim_token)
                .first()
            )

    def get_by_id(self, invitation_id, fresh: bool = False) -> Invitation | None:
        """Load an invitation; fresh=True bypasses the session's cached copy."""
        with tracer.start_as_current_span("db.get_invitation_by_id") as span:
            span.set_attribute("invitation.id", str(invitation_id))
            query = self.db.query(Invitation).filter(Invitation.id == _as_uuid(invitation_id))
            if fresh:
                query = query.populate_existing()
            return query.first()

    def find_unlinked_ids(self, contractor_email: str) -> list[UUID]:
        """Ids of invitations created under this email before the contractor had an account."""
        with tracer.start_as_current_span("db.find_unlinked_invitations"):
            rows = (
                self.db.query(Invitation.id)
                .filter(
                    Invitation.contractor_email == contractor_email,
                    Invitation.contractor_id.is_(None),
                )
                .order_by(Invitation.created_at)
                .all()
            )
        return [row[0] for row in rows]

    def find_stale_pending_ids(self, cutoff: datetime) -> list[UUID]:
        rows = (
            self.db.query(Invitation.id)
            .filter(
                Invitation.status == InvitationStatus.PENDING.value,
                Invitation.created_at < cutoff,
            )
            .all()
        )
        return [row[0] for row in rows]

    # -------------------------------------------------------------------------
    # GUARDED UPDATES
    # -------------------------------------------------------------------------
    def mark_claimed(self, invitation_id, claimant_id: str, claimed_at: datetime) -> bool:
        """
        Compare-and-set pending -> claimed.

        Returns False when the invitation is no longer pending, i.e. another
        caller got there first.
        """
        with tracer.start_as_current_span("db.mark_invitation_claimed") as span:
            span.set_attribute("invitation.id", str(invitation_id))
            result = self.db.execute(
                update(Invitation)
                .where(
                    Invitation.id == _as_uuid(invitation_id),
                    Invitation.status == InvitationStatus.PENDING.value,
                )
                .values(
                    status=InvitationStatus.CLAIMED.value,
                    claimed_at=claimed_at,
                    claimed_by=claimant_id,
                )
                .execution_options(synchronize_session=False)
            )
            won = result.rowcount == 1
            span.set_attribute("claim.won", won)

        claim_guard_counter.add(1, {"won": won})
        return won

    def mark_linked(self, invitation_id, contractor_id: str, linked_at: datetime) -> bool:
        """Compare-and-set contractor_id null -> contractor_id."""
        result = self.db.execute(
            update(Invitation)
            .where(
                Invitation.id == _as_uuid(invitation_id),
                Invitation.contractor_id.is_(None),
            )
            .values(contractor_id=contractor_id, linked_at=linked_at)
            .execution_options(synchronize_session=False)
        )
        won = result.rowcount == 1
        link_guard_counter.add(1, {"won": won})
        return won

    def mark_expired(self, invitation_id) -> bool:
        """Compare-and-set pending -> expired."""
        result = self.db.execute(
            update(Invitation)
            .where(
                Invitation.id == _as_uuid(invitation_id),
                Invitation.status == InvitationStatus.PENDING.value,
            )
            .values(status=InvitationStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # -------------------------------------------------------------------------
    # CONTRACTOR MIRRORS
    # -------------------------------------------------------------------------
    @staticmethod
    def mirror_from(invitation: Invitation, contractor_id: str) -> ContractorInvitation:
        """Build a mirror seeded from the invitation's current state."""
        return ContractorInvitation(
            id=invitation.id,
            contractor_id=contractor_id,
            claim_token=invitation.claim_token,
            recipient_email=invitation.recipient_email,
            status=invitation.status,
            claimed_at=invitation.claimed_at,
            claimed_by=invitation.claimed_by,
            created_at=invitation.created_at,
        )

    def get_mirror(self, contractor_id: str, invitation_id) -> ContractorInvitation | None:
        return (
            self.db.query(ContractorInvitation)
            .filter(
                ContractorInvitation.contractor_id == contractor_id,
                ContractorInvitation.id == _as_uuid(invitation_id),
            )
            .first()
        )

    def list_mirrors(self, contractor_id: str, limit: int = 100) -> list[ContractorInvitation]:
        with tracer.start_as_current_span("db.list_contractor_invitations") as span:
            span.set_attribute("contractor.id", contractor_id)
            results = (
                self.db.query(ContractorInvitation)
                .filter(ContractorInvitation.contractor_id == contractor_id)
                .order_by(ContractorInvitation.created_at.desc())
                .limit(limit)
                .all()
            )

        logger.debug("Listed %d invitations for contractor=%s", len(results), contractor_id)
        return results

    def count_mirrors(self, contractor_id: str) -> dict[str, int]:
        """Mirror counts per status for a contractor."""
        rows = (
            self.db.query(ContractorInvitation.status, func.count(ContractorInvitation.id))
            .filter(ContractorInvitation.contractor_id == contractor_id)
            .group_by(ContractorInvitation.status)
            .all()
        )
        return {status: count for status, count in rows}

    def delete_mirror(self, contractor_id: str, invitation_id) -> bool:
        """Remove the contractor's copy of an invitation; the invitation itself stays."""
        with tracer.start_as_current_span("db.delete_contractor_invitation") as span:
            span.set_attribute("contractor.id", contractor_id)
            deleted = (
                self.db.query(ContractorInvitation)
                .filter(
                    ContractorInvitation.contractor_id == contractor_id,
                    ContractorInvitation.id == _as_uuid(invitation_id),
                )
                .delete(synchronize_session=False)
            )
        return deleted == 1
