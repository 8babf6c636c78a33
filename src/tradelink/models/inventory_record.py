"""
InventoryRecord model - an item in a homeowner's inventory.

Records imported from an invitation carry source_invitation_id so a replayed
claim can tell the import already happened.
"""
from uuid import uuid4

from sqlalchemy import Column, String, Float, Text, DateTime, JSON, Index
from sqlalchemy.dialects.postgresql import UUID

from tradelink.db.database import Base
from tradelink.models.base_model import uuid_fk
from tradelink.models.mixins import AuditMixin


class InventoryRecord(Base, AuditMixin):
    __tablename__ = "inventory_records"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, nullable=False)

    owner_id = Column(String(255), nullable=False, index=True)
    property_id = uuid_fk("home_properties")
    source_invitation_id = Column(UUID(as_uuid=True), nullable=True)

    item = Column(String, nullable=False, default="")
    category = Column(String, nullable=True)
    area = Column(String, nullable=True)
    brand = Column(String, nullable=True)
    model = Column(String, nullable=True)
    serial_number = Column(String, nullable=True)
    date_installed = Column(String, nullable=True)
    cost = Column(Float, nullable=True)
    labor_cost = Column(Float, nullable=True)
    parts_cost = Column(Float, nullable=True)
    warranty = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    maintenance_frequency = Column(String, nullable=True)
    maintenance_tasks = Column(JSON, nullable=False, default=list)
    attachments = Column(JSON, nullable=False, default=list)

    # Contractor attribution copied from the invitation
    contractor = Column(String, nullable=True)
    contractor_phone = Column(String, nullable=True)
    contractor_email = Column(String, nullable=True)

    imported_from = Column(String(50), nullable=True)
    imported_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_inventory_records_owner_source", "owner_id", "source_invitation_id"),
    )
