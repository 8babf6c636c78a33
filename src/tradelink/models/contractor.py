from sqlalchemy import Column, String, Integer, Float

from tradelink.db.database import Base
from tradelink.models.mixins import AuditMixin


class Contractor(Base, AuditMixin):
    """Contractor profile with its embedded stats block."""
    __tablename__ = "contractors"

    # Clerk user_id
    id = Column(String(255), primary_key=True)

    email = Column(String, nullable=True, index=True)
    display_name = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    # Stats: counters are incremented, claim_rate is recomputed from mirrors
    total_invitations = Column(Integer, nullable=False, default=0)
    total_customers = Column(Integer, nullable=False, default=0)
    claim_rate = Column(Float, nullable=False, default=0.0)

    def __repr__(self):
        return f"<Contractor(id={self.id}, email={self.email})>"
