from tradelink.db.database import Base

# Import all models so Alembic can discover them
from .invitation import Invitation, InvitationStatus
from .contractor_invitation import ContractorInvitation
from .contractor import Contractor
from .customer import Customer
from .home_property import HomeProperty
from .inventory_record import InventoryRecord
