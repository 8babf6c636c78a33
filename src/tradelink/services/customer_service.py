from typing import List
import logging

from sqlalchemy.orm import Session

from tradelink.models.customer import Customer

logger = logging.getLogger(__name__)


class CustomerService:
    """A contractor's CRM entries, written by claims of their invitations."""

    def __init__(self, db: Session):
        self.db = db

    def list_customers(self, contractor_id: str) -> List[Customer]:
        customers = self.db.query(Customer).filter(
            Customer.contractor_id == contractor_id
        ).order_by(Customer.customer_name.asc(), Customer.created_at).all()

        logger.debug(f"Listed {len(customers)} customers for contractor {contractor_id}")
        return customers
