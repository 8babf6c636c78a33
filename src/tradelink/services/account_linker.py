"""
Linking of invitations created before the contractor had an account.

Such invitations only carry contractor_email. Once the contractor signs up
or signs in, migrate() sweeps them into the account: sets contractor_id,
writes the contractor's mirror seeded from the invitation's current state
and bumps the stats counters. Each chunk commits on its own; a linked
invitation drops out of the match set, so re-running only picks up what is
still unlinked.

Linking is best effort. Nothing here may break sign-in.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Tuple
from uuid import UUID

from opentelemetry import trace
from sqlalchemy.orm import Session

from tradelink.config import MIGRATION_BATCH_SIZE
from tradelink.metrics import invitation_migrations_total, invitation_migration_failures_total
from tradelink.models.invitation import InvitationStatus
from tradelink.models.mixins import utcnow
from tradelink.repositories.invitation_store import InvitationStore, PartialBatchError
from tradelink.services.email_gate import normalize_email
from tradelink.services.stats_aggregator import StatsAggregator

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class MigrationResult:
    migrated_count: int = 0
    claimed_count: int = 0
    error: Optional[str] = None


class AccountLinker:
    """Migrates anonymous invitations into a contractor account."""

    def __init__(self, db: Session, batch_size: int = MIGRATION_BATCH_SIZE):
        self.db = db
        self.store = InvitationStore(db)
        self.stats = StatsAggregator(db)
        self.batch_size = batch_size

    def migrate(self, contractor_id: str, contractor_email: Optional[str]) -> MigrationResult:
        """
        Link every unlinked invitation created under contractor_email.

        Never raises: failures are logged and reported in
        MigrationResult.error, and the counts cover the chunks that did
        commit.
        """
        email = normalize_email(contractor_email)
        if not contractor_id or not email:
            return MigrationResult()

        with tracer.start_as_current_span("invitation.migrate") as span:
            span.set_attribute("contractor.id", contractor_id)
            committed: Sequence[Tuple[int, int]] = []
            try:
                self.stats.get_or_create_contractor(contractor_id, email)

                invitation_ids = self.store.find_unlinked_ids(email)
                span.set_attribute("migrate.candidates", len(invitation_ids))
                if not invitation_ids:
                    return MigrationResult()

                now = utcnow()
                committed = self.store.bounded_batch(
                    invitation_ids,
                    self.batch_size,
                    lambda chunk: self._link_chunk(chunk, contractor_id, now),
                )

                self.stats.recalculate_claim_rate(contractor_id)
            except PartialBatchError as exc:
                committed = exc.committed
                if committed:
                    self._reconcile_claim_rate(contractor_id)
                return self._failed(contractor_id, committed, exc.cause)
            except Exception as exc:
                self.db.rollback()
                return self._failed(contractor_id, committed, exc)

            migrated, claimed = _totals(committed)
            span.set_attribute("migrate.linked", migrated)

        invitation_migrations_total.inc(migrated)
        if migrated:
            logger.info(
                f"Linked {migrated} invitation(s) ({claimed} already claimed) "
                f"to contractor {contractor_id}"
            )
        return MigrationResult(migrated_count=migrated, claimed_count=claimed)

    def _link_chunk(self, chunk: Sequence[UUID], contractor_id: str, now: datetime) -> Tuple[int, int]:
        """Link one chunk inside the caller's unit of work; returns (linked, claimed)."""
        linked = 0
        claimed = 0
        for invitation_id in chunk:
            # Someone else may have linked it since the query ran
            if not self.store.mark_linked(invitation_id, contractor_id, now):
                continue

            invitation = self.store.get_by_id(invitation_id, fresh=True)
            if self.store.get_mirror(contractor_id, invitation.id) is None:
                self.db.add(self.store.mirror_from(invitation, contractor_id))

            linked += 1
            if invitation.status == InvitationStatus.CLAIMED.value:
                claimed += 1

        self.stats.increment(contractor_id, invitations=linked, customers=claimed)
        return linked, claimed

    def _reconcile_claim_rate(self, contractor_id: str) -> None:
        """Bring claim_rate in line with the chunks that did commit."""
        try:
            self.stats.recalculate_claim_rate(contractor_id)
        except Exception as exc:
            logger.warning(f"Could not recalculate claim rate for contractor {contractor_id}: {exc}")

    def _failed(self, contractor_id: str, committed, exc: Exception) -> MigrationResult:
        migrated, claimed = _totals(committed)
        invitation_migration_failures_total.inc()
        if migrated:
            invitation_migrations_total.inc(migrated)
        logger.warning(
            f"Invitation linking for contractor {contractor_id} failed (non-fatal) "
            f"after linking {migrated}: {exc}",
            exc_info=True,
        )
        return MigrationResult(migrated_count=migrated, claimed_count=claimed, error=str(exc))


def _totals(committed) -> Tuple[int, int]:
    migrated = sum(linked for linked, _ in committed)
    claimed = sum(claimed for _, claimed in committed)
    return migrated, claimed
