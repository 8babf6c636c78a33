"""
Invitation service for creating invitations and sweeping expired ones.

Handles:
- Invitation creation for signed-in contractors (linked immediately, with a
  mirror and a totalInvitations bump)
- Invitation creation before the contractor has an account (keyed only by
  contractor email, linked later by AccountLinker)
- Persisting expiry for pending invitations past their validity window
- Removing an invitation from a contractor's list
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging
import secrets

from sqlalchemy.orm import Session

from tradelink.config import INVITATION_VALIDITY_DAYS, MIGRATION_BATCH_SIZE
from tradelink.logging_config import redact_token
from tradelink.models.invitation import Invitation, InvitationStatus
from tradelink.models.mixins import as_utc, utcnow
from tradelink.repositories.invitation_store import InvitationStore
from tradelink.services.email_gate import normalize_email
from tradelink.services.email_service import claim_link
from tradelink.services.stats_aggregator import StatsAggregator

logger = logging.getLogger(__name__)


def generate_claim_token() -> str:
    """48 hex chars from 24 random bytes."""
    return secrets.token_hex(24)


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def prepare_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise one import candidate to the stored record shape."""
    return {
        "item": _clean(record.get("item")),
        "category": _clean(record.get("category")) or "Other",
        "area": _clean(record.get("area")) or "General",
        "brand": _clean(record.get("brand")),
        "model": _clean(record.get("model")),
        "serial_number": _clean(record.get("serial_number")),
        "date_installed": record.get("date_installed") or utcnow().date().isoformat(),
        "cost": record.get("cost"),
        "labor_cost": record.get("labor_cost"),
        "parts_cost": record.get("parts_cost"),
        "warranty": _clean(record.get("warranty")),
        "notes": _clean(record.get("notes")),
        "maintenance_frequency": _clean(record.get("maintenance_frequency")) or "annual",
        "maintenance_tasks": list(record.get("maintenance_tasks") or []),
        "attachments": list(record.get("attachments") or []),
    }


@dataclass(frozen=True)
class CreatedInvitation:
    invitation: Invitation
    claim_token: str
    link: str


class InvitationService:
    """Service for creating invitations and persisting their expiry."""

    def __init__(self, db: Session, validity_days: int = INVITATION_VALIDITY_DAYS):
        self.db = db
        self.store = InvitationStore(db)
        self.stats = StatsAggregator(db)
        self.validity_days = validity_days

    def create_invitation(
        self,
        contractor_info: Dict[str, Any],
        records: List[Dict[str, Any]],
        recipient_email: Optional[str] = None,
        contractor_id: Optional[str] = None,
    ) -> CreatedInvitation:
        """
        Create a pending invitation.

        Args:
            contractor_info: name, company, phone, email of the contractor
            records: Import candidates, in display order
            recipient_email: Optional email lock
            contractor_id: Clerk user_id when the contractor is signed in

        Returns:
            CreatedInvitation with the claim token and link

        Raises:
            ValueError: If there are no records, or an anonymous invitation
                has no contractor email to link it by later
        """
        if not records:
            raise ValueError("An invitation needs at least one record")

        contractor_email = normalize_email(contractor_info.get("email"))
        if not contractor_id and not contractor_email:
            raise ValueError("Contractor email is required when creating an invitation without an account")

        claim_token = generate_claim_token()
        invitation = Invitation(
            id=uuid4(),
            claim_token=claim_token,
            contractor_id=contractor_id,
            contractor_email=contractor_email,
            recipient_email=normalize_email(recipient_email),
            status=InvitationStatus.PENDING.value,
            records=[prepare_record(record) for record in records],
            contractor_info={
                "name": _clean(contractor_info.get("name")),
                "company": _clean(contractor_info.get("company")),
                "phone": _clean(contractor_info.get("phone")),
                "email": contractor_email or "",
            },
            created_at=utcnow(),
            created_by_user_id=contractor_id,
        )

        with self.store.atomic():
            mirror = None
            if contractor_id:
                self.stats.get_or_create_contractor(contractor_id, contractor_email)
                mirror = self.store.mirror_from(invitation, contractor_id)
            self.store.add(invitation, mirror)
            if contractor_id:
                self.stats.increment(contractor_id, invitations=1)
                self.stats.recalculate_claim_rate(contractor_id)

        self.db.refresh(invitation)
        logger.info(
            f"Created invitation {invitation.id} (token {redact_token(claim_token)}) "
            f"with {len(records)} records for {contractor_id or contractor_email}"
        )
        return CreatedInvitation(
            invitation=invitation,
            claim_token=claim_token,
            link=claim_link(claim_token),
        )

    def delete_contractor_invitation(self, contractor_id: str, invitation_id) -> bool:
        """
        Drop an invitation from the contractor's list.

        Only the contractor's mirror is removed; the invitation stays
        claimable through its link. total_invitations goes down by one and
        the claim rate is recomputed over what remains.

        Returns:
            False when the contractor has no such invitation
        """
        with self.store.atomic():
            if not self.store.delete_mirror(contractor_id, invitation_id):
                return False
            self.stats.increment(contractor_id, invitations=-1)
            self.stats.recalculate_claim_rate(contractor_id)

        logger.info(f"Contractor {contractor_id} removed invitation {invitation_id} from their list")
        return True

    def expire_stale_invitations(self, now: Optional[datetime] = None) -> int:
        """
        Persist expiry for pending invitations past the validity window.

        Validation already treats them as expired; this only makes the
        stored status (and the contractor's mirror) agree.

        Returns:
            Number of invitations moved to expired
        """
        now = as_utc(now) if now else utcnow()
        cutoff = now - timedelta(days=self.validity_days)
        stale_ids = self.store.find_stale_pending_ids(cutoff)
        if not stale_ids:
            return 0

        def expire_chunk(chunk) -> int:
            expired = 0
            for invitation_id in chunk:
                if not self.store.mark_expired(invitation_id):
                    continue
                expired += 1
                invitation = self.store.get_by_id(invitation_id, fresh=True)
                if invitation.contractor_id:
                    mirror = self.store.get_mirror(invitation.contractor_id, invitation_id)
                    if mirror is not None:
                        mirror.status = InvitationStatus.EXPIRED.value
            return expired

        expired = sum(self.store.bounded_batch(stale_ids, MIGRATION_BATCH_SIZE, expire_chunk))
        logger.info(f"Expired {expired} stale invitation(s) older than {cutoff.isoformat()}")
        return expired
