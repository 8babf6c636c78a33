"""
Contractor stats maintenance.

total_invitations and total_customers are cheap counters bumped with SQL
increments on every write path. claim_rate is always recomputed from the
contractor's invitation mirrors, so any drift from concurrent claims or the
linking sweep heals the next time it runs.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm import Session

from tradelink.models.contractor import Contractor
from tradelink.models.invitation import InvitationStatus
from tradelink.repositories.invitation_store import InvitationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractorStats:
    total_invitations: int = 0
    total_customers: int = 0
    claim_rate: float = 0.0
    pending_invitations: int = 0


def compute_claim_rate(claimed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(1.0, max(0.0, claimed / total))


class StatsAggregator:
    """Keeps the stats block on a contractor profile consistent."""

    def __init__(self, db: Session):
        self.db = db
        self.store = InvitationStore(db)

    def get_or_create_contractor(self, contractor_id: str, email: str | None = None) -> Contractor:
        """
        Get existing contractor profile or create an empty one.

        Joins the caller's unit of work when called inside one.
        """
        contractor = self.db.query(Contractor).filter(Contractor.id == contractor_id).first()
        if contractor:
            if email and not contractor.email:
                with self.store.atomic():
                    contractor.email = email
            return contractor

        with self.store.atomic():
            contractor = Contractor(
                id=contractor_id,
                email=email,
                total_invitations=0,
                total_customers=0,
                claim_rate=0.0,
                created_by_user_id=contractor_id,
            )
            self.db.add(contractor)
            self.db.flush()

        logger.info(f"Created contractor profile: {contractor_id}")
        return contractor

    def increment(self, contractor_id: str, invitations: int = 0, customers: int = 0) -> None:
        """Apply additive counter changes; joins the caller's unit of work."""
        if not invitations and not customers:
            return
        with self.store.atomic():
            self.db.execute(
                update(Contractor)
                .where(Contractor.id == contractor_id)
                .values(
                    total_invitations=Contractor.total_invitations + invitations,
                    total_customers=Contractor.total_customers + customers,
                )
                .execution_options(synchronize_session=False)
            )
        logger.debug(
            "Incremented stats for contractor=%s invitations=%+d customers=%+d",
            contractor_id,
            invitations,
            customers,
        )

    def recalculate_claim_rate(self, contractor_id: str) -> float:
        """
        Recount the contractor's mirrors and write claimed/total back.

        Returns the new claim rate (0.0 when the contractor has no invitations).
        """
        with self.store.atomic():
            self.db.flush()
            counts = self.store.count_mirrors(contractor_id)
            total = sum(counts.values())
            claimed = counts.get(InvitationStatus.CLAIMED.value, 0)
            claim_rate = compute_claim_rate(claimed, total)

            self.db.execute(
                update(Contractor)
                .where(Contractor.id == contractor_id)
                .values(claim_rate=claim_rate)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "Recalculated claim rate for contractor=%s: %d/%d = %.3f",
            contractor_id,
            claimed,
            total,
            claim_rate,
        )
        return claim_rate

    def get_stats(self, contractor_id: str) -> ContractorStats:
        contractor = (
            self.db.query(Contractor)
            .populate_existing()
            .filter(Contractor.id == contractor_id)
            .first()
        )
        if not contractor:
            return ContractorStats()

        counts = self.store.count_mirrors(contractor_id)
        return ContractorStats(
            total_invitations=contractor.total_invitations or 0,
            total_customers=contractor.total_customers or 0,
            claim_rate=contractor.claim_rate or 0.0,
            pending_invitations=counts.get(InvitationStatus.PENDING.value, 0),
        )
