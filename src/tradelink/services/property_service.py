from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from tradelink.config import DEFAULT_PROPERTY_NAME
from tradelink.models.home_property import HomeProperty

logger = logging.getLogger(__name__)


def _parse_uuid(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class PropertyService:
    """Destination properties owned by a homeowner."""

    def __init__(self, db: Session):
        self.db = db

    def list_properties(self, owner_id: str) -> List[HomeProperty]:
        return self.db.query(HomeProperty).filter(
            HomeProperty.owner_id == owner_id
        ).order_by(HomeProperty.created_at).all()

    def get_property(self, owner_id: str, property_id) -> Optional[HomeProperty]:
        """Return the property only if it exists and belongs to owner_id."""
        parsed = _parse_uuid(property_id)
        if parsed is None:
            return None
        return self.db.query(HomeProperty).filter(
            HomeProperty.id == parsed,
            HomeProperty.owner_id == owner_id
        ).first()

    def create_property(self, owner_id: str, name: str = DEFAULT_PROPERTY_NAME, address: Optional[str] = None) -> HomeProperty:
        name = (name or "").strip() or DEFAULT_PROPERTY_NAME
        prop = HomeProperty(
            owner_id=owner_id,
            name=name,
            address=address,
            created_by_user_id=owner_id,
        )
        self.db.add(prop)
        try:
            self.db.commit()
        except Exception:
            logger.exception("Failed to create property for owner=%s", owner_id)
            self.db.rollback()
            raise
        self.db.refresh(prop)

        logger.info(f"Created property {prop.id} ({name}) for {owner_id}")
        return prop

    def ensure_default_property(self, owner_id: str) -> HomeProperty:
        """Return the owner's first property, creating one when they have none."""
        existing = self.list_properties(owner_id)
        if existing:
            return existing[0]
        return self.create_property(owner_id)
