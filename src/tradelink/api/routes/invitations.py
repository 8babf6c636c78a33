"""
API routes for claiming contractor invitations.

Endpoints:
- GET /invitations/{token} - Validate a claim link and preview its records (public)
- POST /invitations/{token}/claim - Claim the invitation into one of the caller's homes
- POST /invitations - Create an invitation before the contractor has an account (public)
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from tradelink.auth.clerk import AuthenticatedUser, get_current_user
from tradelink.db.database import get_db
from tradelink.services.claim_errors import ERROR_MESSAGES, ErrorCode
from tradelink.services.claim_orchestrator import ClaimOrchestrator
from tradelink.services.email_gate import check_email_match
from tradelink.services.email_service import EmailService
from tradelink.services.invitation_service import InvitationService
from tradelink.services.token_validator import TokenValidator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invitations", tags=["invitations"])

ERROR_STATUS = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ALREADY_CLAIMED: status.HTTP_409_CONFLICT,
    ErrorCode.EXPIRED: status.HTTP_410_GONE,
    ErrorCode.EMAIL_MISMATCH: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVALID_PROPERTY: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ==================== Request/Response Models ====================

class ContractorInfo(BaseModel):
    """Contact details shown to the claimant and stamped on imported records."""
    name: str = ""
    company: str = ""
    phone: str = ""
    email: Optional[EmailStr] = None


class RecordIn(BaseModel):
    """One inventory record offered for import."""
    item: str
    category: Optional[str] = None
    area: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    date_installed: Optional[str] = None
    cost: Optional[float] = None
    labor_cost: Optional[float] = None
    parts_cost: Optional[float] = None
    warranty: Optional[str] = None
    notes: Optional[str] = None
    maintenance_frequency: Optional[str] = None
    maintenance_tasks: List[Any] = Field(default_factory=list)
    attachments: List[Any] = Field(default_factory=list)


class CreateInvitationRequest(BaseModel):
    """Request to create an invitation."""
    contractor: ContractorInfo
    records: List[RecordIn]
    recipient_email: Optional[EmailStr] = None

    class Config:
        json_schema_extra = {
            "example": {
                "contractor": {"name": "Sam Rivera", "company": "Rivera HVAC", "email": "sam@riverahvac.com"},
                "records": [{"item": "Furnace", "category": "HVAC", "brand": "Carrier", "cost": 3200}],
                "recipient_email": "homeowner@example.com"
            }
        }


class InvitationCreatedResponse(BaseModel):
    invitation_id: UUID
    claim_token: str
    link: str
    status: str


class RecordSummaryResponse(BaseModel):
    item: str
    category: Optional[str]
    brand: Optional[str]

    class Config:
        from_attributes = True


class InvitationPreviewResponse(BaseModel):
    invitation_id: str
    contractor_name: str
    record_count: int
    total_value: float
    record_previews: List[RecordSummaryResponse]
    has_email_lock: bool
    expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class ValidationResponse(BaseModel):
    valid: bool
    reason: Optional[ErrorCode] = None
    title: Optional[str] = None
    message: Optional[str] = None
    preview: Optional[InvitationPreviewResponse] = None


class ClaimRequest(BaseModel):
    """Request to claim an invitation into one of the caller's homes."""
    destination_property_id: str


class ClaimResponse(BaseModel):
    success: bool
    imported_count: int
    contractor_info: Dict[str, Any]


def claim_error_response(code: ErrorCode) -> JSONResponse:
    """Typed error body for a refused claim."""
    title, message = ERROR_MESSAGES[code]
    return JSONResponse(
        status_code=ERROR_STATUS[code],
        content={"success": False, "error": code.value, "title": title, "message": message},
    )


def _notify_contractor(invitation, customer_name: str, imported_count: int, background_tasks: BackgroundTasks):
    contractor_email = (invitation.contractor_info or {}).get("email") or invitation.contractor_email
    if not contractor_email:
        return
    email_service = EmailService()
    background_tasks.add_task(
        email_service.send_claim_notification,
        to_email=contractor_email,
        customer_name=customer_name,
        imported_count=imported_count
    )


def schedule_invitation_email(created, background_tasks: BackgroundTasks):
    """Send the claim link to a locked recipient after the response goes out."""
    invitation = created.invitation
    if not invitation.recipient_email:
        return
    email_service = EmailService()
    background_tasks.add_task(
        email_service.send_invitation_email,
        to_email=invitation.recipient_email,
        contractor_name=invitation.contractor_display_name,
        claim_token=created.claim_token,
        record_count=len(invitation.records or [])
    )


# ==================== Endpoints ====================

@router.get("/{token}", response_model=ValidationResponse)
def validate_invitation(
    token: str,
    db: Session = Depends(get_db)
):
    """
    Validate a claim link.

    Public: the preview only exposes what a claimant may see before signing
    in. Invalid links still return 200 with the reason and its message.
    """
    result = TokenValidator(db).validate(token)
    if not result.valid:
        title, message = ERROR_MESSAGES[result.reason]
        return ValidationResponse(valid=False, reason=result.reason, title=title, message=message)

    return ValidationResponse(
        valid=True,
        preview=InvitationPreviewResponse.model_validate(result.preview),
    )


@router.post("/{token}/claim", response_model=ClaimResponse)
def claim_invitation(
    token: str,
    request: ClaimRequest,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Claim an invitation.

    Runs the email lock check, then the atomic claim. Refusals come back as
    {success: false, error} with a status code per error.
    """
    validation = TokenValidator(db).validate(token)
    if not validation.valid:
        return claim_error_response(validation.reason)

    invitation = validation.invitation
    if not check_email_match(invitation, user.email).matches:
        logger.info(f"Email lock refused claim of invitation {invitation.id} by {user.user_id}")
        return claim_error_response(ErrorCode.EMAIL_MISMATCH)

    customer_name = user.name or user.email or "Homeowner"
    result = ClaimOrchestrator(db).claim(
        invitation.id,
        user.user_id,
        request.destination_property_id,
        customer_name=customer_name,
        claimant_email=user.email,
    )
    if not result.success:
        return claim_error_response(result.error)

    _notify_contractor(invitation, customer_name, result.imported_count, background_tasks)

    return ClaimResponse(
        success=True,
        imported_count=result.imported_count,
        contractor_info=result.contractor_info,
    )


@router.post("", response_model=InvitationCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_anonymous_invitation(
    request: CreateInvitationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """
    Create an invitation for a contractor who has no account yet.

    The invitation is keyed by the contractor's email and linked to their
    account when they first sign in.
    """
    try:
        created = InvitationService(db).create_invitation(
            contractor_info=request.contractor.model_dump(),
            records=[record.model_dump() for record in request.records],
            recipient_email=request.recipient_email,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    schedule_invitation_email(created, background_tasks)

    return InvitationCreatedResponse(
        invitation_id=created.invitation.id,
        claim_token=created.claim_token,
        link=created.link,
        status=created.invitation.status,
    )
