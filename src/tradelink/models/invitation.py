"""
Invitation model - a single-use, tokenized offer from a contractor to import
a set of records into a customer's home profile.

Status only ever moves forward: pending -> claimed or pending -> expired.
"""
from datetime import datetime, timedelta
from uuid import uuid4
import enum

from sqlalchemy import Column, String, DateTime, Index, JSON
from sqlalchemy.dialects.postgresql import UUID

from tradelink.config import INVITATION_VALIDITY_DAYS
from tradelink.db.database import Base
from tradelink.models.mixins import AuditMixin, as_utc, utcnow


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    EXPIRED = "expired"


class Invitation(Base, AuditMixin):
    """
    Source-of-truth invitation record.

    Looked up globally by claim_token (before the claimant signs in) and by
    contractor_email (when linking invitations created before the contractor
    had an account).
    """
    __tablename__ = "invitations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, nullable=False)

    # Secure token carried by the claim link
    claim_token = Column(String(255), nullable=False, unique=True, index=True)

    # Null until the contractor has an account and the invitation is linked
    contractor_id = Column(String(255), nullable=True, index=True)
    contractor_email = Column(String, nullable=True, index=True)

    # Optional email lock, stored lowercased
    recipient_email = Column(String, nullable=True)

    status = Column(String(50), nullable=False, default=InvitationStatus.PENDING.value)

    # Ordered import candidates and the contractor snapshot shown to claimants
    records = Column(JSON, nullable=False, default=list)
    contractor_info = Column(JSON, nullable=False, default=dict)

    claimed_at = Column(DateTime(timezone=True), nullable=True)
    claimed_by = Column(String(255), nullable=True)
    linked_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_invitations_contractor_email_contractor_id", "contractor_email", "contractor_id"),
        Index("ix_invitations_status", "status"),
    )

    def expires_at(self, validity_days: int = INVITATION_VALIDITY_DAYS) -> datetime:
        return as_utc(self.created_at) + timedelta(days=validity_days)

    def is_expired(self, now: datetime | None = None, validity_days: int = INVITATION_VALIDITY_DAYS) -> bool:
        """Expired if marked so, or if the validity window has passed."""
        if self.status == InvitationStatus.EXPIRED.value:
            return True
        now = as_utc(now) if now else utcnow()
        return now > self.expires_at(validity_days)

    @property
    def declared_value(self) -> float:
        """Sum of the declared cost of every record."""
        total = 0.0
        for record in self.records or []:
            try:
                total += float(record.get("cost") or 0)
            except (TypeError, ValueError):
                continue
        return total

    @property
    def contractor_display_name(self) -> str:
        info = self.contractor_info or {}
        return info.get("company") or info.get("name") or "A contractor"

    def __repr__(self):
        return f"<Invitation(id={self.id}, contractor={self.contractor_id}, status={self.status})>"
