"""
ContractorInvitation model - the contractor's own copy of each invitation.

A read-optimised mirror of Invitation keyed by the same id, so listing a
contractor's invitations never has to look outside their namespace. Only the
invitation write paths (create, claim, link, expiry sweep) touch it.
"""
from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID

from tradelink.db.database import Base
from tradelink.models.mixins import AuditMixin


class ContractorInvitation(Base, AuditMixin):
    __tablename__ = "contractor_invitations"

    # Same id as the source invitation
    id = Column(UUID(as_uuid=True), primary_key=True, nullable=False)

    contractor_id = Column(String(255), nullable=False, index=True)

    claim_token = Column(String(255), nullable=False)
    recipient_email = Column(String, nullable=True)

    status = Column(String(50), nullable=False, default="pending")
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    claimed_by = Column(String(255), nullable=True)

    # Display fields filled in at claim time
    customer_name = Column(String, nullable=True)
    customer_property_name = Column(String, nullable=True)

    __table_args__ = (
        Index("ix_contractor_invitations_contractor_status", "contractor_id", "status"),
    )

    def __repr__(self):
        return f"<ContractorInvitation(id={self.id}, contractor={self.contractor_id}, status={self.status})>"
