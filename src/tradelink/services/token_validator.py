"""
Token validation for claim links.

Resolves a claim token to its invitation and decides whether it can be
claimed right now. Validation only reads: expiry is computed from created_at
and never written back here (see InvitationService.expire_stale_invitations).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradelink.config import INVITATION_VALIDITY_DAYS, PREVIEW_RECORD_LIMIT
from tradelink.logging_config import redact_token
from tradelink.metrics import invitation_validations_total
from tradelink.models.invitation import Invitation, InvitationStatus
from tradelink.repositories.invitation_store import InvitationStore
from tradelink.services.claim_errors import ErrorCode

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class RecordSummary:
    item: str
    category: Optional[str]
    brand: Optional[str]


@dataclass(frozen=True)
class InvitationPreview:
    """What a claimant may see before the claim succeeds."""
    invitation_id: str
    contractor_name: str
    record_count: int
    total_value: float
    record_previews: List[RecordSummary] = field(default_factory=list)
    has_email_lock: bool = False
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    invitation: Optional[Invitation] = None
    preview: Optional[InvitationPreview] = None
    reason: Optional[ErrorCode] = None


def build_preview(
    invitation: Invitation,
    record_limit: int = PREVIEW_RECORD_LIMIT,
    validity_days: int = INVITATION_VALIDITY_DAYS,
) -> InvitationPreview:
    records = invitation.records or []
    return InvitationPreview(
        invitation_id=str(invitation.id),
        contractor_name=invitation.contractor_display_name,
        record_count=len(records),
        total_value=invitation.declared_value,
        record_previews=[
            RecordSummary(
                item=record.get("item") or "",
                category=record.get("category"),
                brand=record.get("brand"),
            )
            for record in records[:record_limit]
        ],
        has_email_lock=bool(invitation.recipient_email),
        expires_at=invitation.expires_at(validity_days),
    )


class TokenValidator:
    """Classifies a claim token as claimable or not, without side effects."""

    def __init__(
        self,
        db: Session,
        validity_days: int = INVITATION_VALIDITY_DAYS,
        preview_limit: int = PREVIEW_RECORD_LIMIT,
    ):
        self.store = InvitationStore(db)
        self.validity_days = validity_days
        self.preview_limit = preview_limit

    def validate(self, token: Optional[str], now: Optional[datetime] = None) -> ValidationResult:
        with tracer.start_as_current_span("invitation.validate") as span:
            result = self._validate(token, now)
            outcome = "valid" if result.valid else result.reason.value
            span.set_attribute("validation.outcome", outcome)

        invitation_validations_total.labels(outcome=outcome).inc()
        return result

    def _validate(self, token: Optional[str], now: Optional[datetime]) -> ValidationResult:
        if not token:
            return ValidationResult(valid=False, reason=ErrorCode.NOT_FOUND)

        try:
            invitation = self.store.get_by_token(token)
        except SQLAlchemyError:
            logger.exception("Failed to look up invitation token=%s", redact_token(token))
            return ValidationResult(valid=False, reason=ErrorCode.UNAVAILABLE)

        if invitation is None:
            logger.info("Unknown invitation token=%s", redact_token(token))
            return ValidationResult(valid=False, reason=ErrorCode.NOT_FOUND)

        if invitation.status == InvitationStatus.CLAIMED.value:
            return ValidationResult(valid=False, invitation=invitation, reason=ErrorCode.ALREADY_CLAIMED)

        if invitation.is_expired(now=now, validity_days=self.validity_days):
            return ValidationResult(valid=False, invitation=invitation, reason=ErrorCode.EXPIRED)

        return ValidationResult(
            valid=True,
            invitation=invitation,
            preview=build_preview(invitation, self.preview_limit, self.validity_days),
        )
