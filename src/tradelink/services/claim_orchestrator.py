"""
Invitation claim.

A claim is one unit of work: flip the invitation to claimed, import its
records under the claimant's home, upsert the contractor's customer entry,
update the contractor's mirror and stats. Either all of it commits or the
invitation stays pending and the claim can be retried.

The compare-and-set on status (pending -> claimed) is the only concurrency
guard: whichever caller wins it imports, everyone else gets already_claimed.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradelink.config import INVITATION_VALIDITY_DAYS
from tradelink.metrics import invitation_claims_total
from tradelink.models.customer import Customer
from tradelink.models.home_property import HomeProperty
from tradelink.models.inventory_record import InventoryRecord
from tradelink.models.invitation import Invitation, InvitationStatus
from tradelink.models.mixins import as_utc, utcnow
from tradelink.repositories.invitation_store import InvitationStore
from tradelink.services.claim_errors import ErrorCode
from tradelink.services.property_service import PropertyService
from tradelink.services.stats_aggregator import StatsAggregator

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

IMPORTED_FROM = "contractor_invitation"


@dataclass(frozen=True)
class ClaimResult:
    success: bool
    imported_count: int = 0
    contractor_info: Dict[str, Any] = field(default_factory=dict)
    contractor_id: Optional[str] = None
    error: Optional[ErrorCode] = None


class ClaimAborted(Exception):
    """Raised inside the claim unit to roll it back with a typed reason."""

    def __init__(self, code: ErrorCode):
        super().__init__(code.value)
        self.code = code


def _parse_uuid(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _to_float(value) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ClaimOrchestrator:
    """Performs the atomic claim of an invitation by an authenticated claimant."""

    def __init__(self, db: Session, validity_days: int = INVITATION_VALIDITY_DAYS):
        self.db = db
        self.store = InvitationStore(db)
        self.stats = StatsAggregator(db)
        self.properties = PropertyService(db)
        self.validity_days = validity_days

    def claim(
        self,
        invitation_id,
        claimant_id: str,
        destination_property_id,
        *,
        customer_name: Optional[str] = None,
        claimant_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ClaimResult:
        """
        Claim an invitation for claimant_id and import its records into
        destination_property_id.

        Never raises for expected outcomes; failures come back as
        ClaimResult(success=False, error=...). Store errors map to
        ErrorCode.UNAVAILABLE and leave the invitation pending.
        """
        now = as_utc(now) if now else utcnow()

        with tracer.start_as_current_span("invitation.claim") as span:
            span.set_attribute("invitation.id", str(invitation_id))
            span.set_attribute("claimant.id", claimant_id)

            try:
                with self.store.atomic():
                    result = self._claim_unit(
                        invitation_id,
                        claimant_id,
                        destination_property_id,
                        customer_name=customer_name,
                        claimant_email=claimant_email,
                        now=now,
                    )
            except ClaimAborted as aborted:
                result = ClaimResult(success=False, error=aborted.code)
            except SQLAlchemyError:
                logger.exception(
                    "Claim failed in store for invitation=%s claimant=%s",
                    invitation_id,
                    claimant_id,
                )
                result = ClaimResult(success=False, error=ErrorCode.UNAVAILABLE)

            outcome = "success" if result.success else result.error.value
            span.set_attribute("claim.outcome", outcome)

        invitation_claims_total.labels(outcome=outcome).inc()
        if result.success:
            logger.info(
                f"Invitation {invitation_id} claimed by {claimant_id}: "
                f"imported {result.imported_count} records"
            )
        else:
            logger.info(f"Claim of invitation {invitation_id} by {claimant_id} refused: {outcome}")
        return result

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------
    def _claim_unit(
        self,
        invitation_id,
        claimant_id: str,
        destination_property_id,
        *,
        customer_name: Optional[str],
        claimant_email: Optional[str],
        now: datetime,
    ) -> ClaimResult:
        parsed_id = _parse_uuid(invitation_id)
        if parsed_id is None:
            raise ClaimAborted(ErrorCode.NOT_FOUND)

        invitation = self.store.get_by_id(parsed_id, fresh=True)
        if invitation is None:
            raise ClaimAborted(ErrorCode.NOT_FOUND)
        if invitation.status == InvitationStatus.CLAIMED.value:
            raise ClaimAborted(ErrorCode.ALREADY_CLAIMED)
        if invitation.is_expired(now=now, validity_days=self.validity_days):
            raise ClaimAborted(ErrorCode.EXPIRED)

        destination = self.properties.get_property(claimant_id, destination_property_id)
        if destination is None:
            raise ClaimAborted(ErrorCode.INVALID_PROPERTY)

        if not self.store.mark_claimed(invitation.id, claimant_id, now):
            raise ClaimAborted(ErrorCode.ALREADY_CLAIMED)

        # A linking sweep may have set contractor_id since the first read
        invitation = self.store.get_by_id(invitation.id, fresh=True)

        imported_count = self._import_records(invitation, claimant_id, destination, now)

        contractor_id = invitation.contractor_id
        if contractor_id:
            name = customer_name or claimant_email or "Homeowner"
            self._upsert_customer(invitation, contractor_id, claimant_id, name, claimant_email, destination, now)
            self._update_mirror(invitation, contractor_id, claimant_id, name, destination, now)
            self.stats.increment(contractor_id, customers=1)
            self.stats.recalculate_claim_rate(contractor_id)

        return ClaimResult(
            success=True,
            imported_count=imported_count,
            contractor_info=dict(invitation.contractor_info or {}),
            contractor_id=contractor_id,
        )

    def _import_records(
        self,
        invitation: Invitation,
        claimant_id: str,
        destination: HomeProperty,
        now: datetime,
    ) -> int:
        already_imported = (
            self.db.query(InventoryRecord)
            .filter(
                InventoryRecord.owner_id == claimant_id,
                InventoryRecord.source_invitation_id == invitation.id,
            )
            .count()
        )
        if already_imported:
            logger.warning(
                "Invitation %s already imported for %s (%d records); skipping import",
                invitation.id,
                claimant_id,
                already_imported,
            )
            return already_imported

        info = invitation.contractor_info or {}
        records = invitation.records or []
        for record in records:
            self.db.add(InventoryRecord(
                owner_id=claimant_id,
                property_id=destination.id,
                source_invitation_id=invitation.id,
                item=record.get("item") or "",
                category=record.get("category") or "Other",
                area=record.get("area") or "General",
                brand=record.get("brand") or None,
                model=record.get("model") or None,
                serial_number=record.get("serial_number") or None,
                date_installed=record.get("date_installed") or None,
                cost=_to_float(record.get("cost")),
                labor_cost=_to_float(record.get("labor_cost")),
                parts_cost=_to_float(record.get("parts_cost")),
                warranty=record.get("warranty") or None,
                notes=record.get("notes") or None,
                maintenance_frequency=record.get("maintenance_frequency") or "annual",
                maintenance_tasks=list(record.get("maintenance_tasks") or []),
                attachments=list(record.get("attachments") or []),
                contractor=info.get("company") or info.get("name") or None,
                contractor_phone=info.get("phone") or None,
                contractor_email=info.get("email") or None,
                imported_from=IMPORTED_FROM,
                imported_at=now,
                created_by_user_id=claimant_id,
            ))
        return len(records)

    def _upsert_customer(
        self,
        invitation: Invitation,
        contractor_id: str,
        claimant_id: str,
        customer_name: str,
        claimant_email: Optional[str],
        destination: HomeProperty,
        now: datetime,
    ) -> Customer:
        customer = self.db.query(Customer).filter(
            Customer.contractor_id == contractor_id,
            Customer.claimant_id == claimant_id
        ).first()

        if customer is None:
            customer = Customer(
                contractor_id=contractor_id,
                claimant_id=claimant_id,
                customer_name=customer_name,
                email=claimant_email,
                property_name=destination.name,
                total_jobs=1,
                total_spend=invitation.declared_value,
                last_contact=now,
                created_by_user_id=claimant_id,
            )
            self.db.add(customer)
            return customer

        customer.total_jobs = (customer.total_jobs or 0) + 1
        customer.total_spend = (customer.total_spend or 0.0) + invitation.declared_value
        customer.last_contact = now
        customer.property_name = destination.name
        if claimant_email and not customer.email:
            customer.email = claimant_email
        customer.updated_by_user_id = claimant_id
        return customer

    def _update_mirror(
        self,
        invitation: Invitation,
        contractor_id: str,
        claimant_id: str,
        customer_name: str,
        destination: HomeProperty,
        now: datetime,
    ) -> None:
        mirror = self.store.get_mirror(contractor_id, invitation.id)
        if mirror is None:
            # Contractor removed it from their list; it stays out
            logger.info(
                "Invitation %s is not in contractor %s's list; mirror left absent",
                invitation.id,
                contractor_id,
            )
            return

        mirror.status = InvitationStatus.CLAIMED.value
        mirror.claimed_at = now
        mirror.claimed_by = claimant_id
        mirror.customer_name = customer_name
        mirror.customer_property_name = destination.name
