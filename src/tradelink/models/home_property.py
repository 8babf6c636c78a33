from uuid import uuid4

from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID

from tradelink.db.database import Base
from tradelink.models.mixins import AuditMixin


class HomeProperty(Base, AuditMixin):
    """A claimant-owned home that imported records are filed under."""
    __tablename__ = "home_properties"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, nullable=False)
    owner_id = Column(String(255), nullable=False, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
