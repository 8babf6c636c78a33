"""
Customer model - a contractor-owned CRM entry for someone who claimed one of
the contractor's invitations. One row per (contractor, claimant) pair.
"""
from uuid import uuid4

from sqlalchemy import Column, String, Integer, Float, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID

from tradelink.db.database import Base
from tradelink.models.mixins import AuditMixin


class Customer(Base, AuditMixin):
    __tablename__ = "contractor_customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, nullable=False)

    contractor_id = Column(String(255), nullable=False, index=True)

    # Clerk user_id of the claimant
    claimant_id = Column(String(255), nullable=False)

    customer_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    property_name = Column(String, nullable=True)

    total_jobs = Column(Integer, nullable=False, default=0)
    total_spend = Column(Float, nullable=False, default=0.0)
    last_contact = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_contractor_customers_contractor_claimant", "contractor_id", "claimant_id", unique=True),
    )

    def __repr__(self):
        return f"<Customer(contractor={self.contractor_id}, claimant={self.claimant_id})>"
