"""
API routes for the contractor side of invitations.

Endpoints:
- POST /contractors/session - Sign-in hook: ensure the profile, link anonymous invitations
- GET /contractors/me/invitations - List the contractor's invitations
- POST /contractors/me/invitations - Create an invitation as a signed-in contractor
- DELETE /contractors/me/invitations/{invitation_id} - Remove an invitation from the list
- GET /contractors/me/customers - Customers who claimed the contractor's invitations
- GET /contractors/me/stats - Invitation stats
- POST /contractors/me/stats/recalculate - Recount the claim rate
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tradelink.api.routes.invitations import (
    CreateInvitationRequest,
    InvitationCreatedResponse,
    schedule_invitation_email,
)
from tradelink.auth.clerk import AuthenticatedUser, get_current_user, get_current_user_id
from tradelink.db import database
from tradelink.db.database import get_db
from tradelink.repositories.invitation_store import InvitationStore
from tradelink.services.account_linker import AccountLinker
from tradelink.services.customer_service import CustomerService
from tradelink.services.invitation_service import InvitationService
from tradelink.services.stats_aggregator import StatsAggregator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contractors", tags=["contractors"])


# ==================== Request/Response Models ====================

class ContractorResponse(BaseModel):
    id: str
    email: Optional[str]
    display_name: Optional[str]
    company_name: Optional[str]
    total_invitations: int
    total_customers: int
    claim_rate: float

    class Config:
        from_attributes = True


class ContractorInvitationResponse(BaseModel):
    """Response model for the contractor's copy of an invitation."""
    id: UUID
    claim_token: str
    recipient_email: Optional[str]
    status: str
    claimed_at: Optional[datetime]
    claimed_by: Optional[str]
    customer_name: Optional[str]
    customer_property_name: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ContractorStatsResponse(BaseModel):
    total_invitations: int
    total_customers: int
    claim_rate: float
    pending_invitations: int

    class Config:
        from_attributes = True


class CustomerResponse(BaseModel):
    id: UUID
    claimant_id: str
    customer_name: Optional[str]
    email: Optional[str]
    property_name: Optional[str]
    total_jobs: int
    total_spend: float
    last_contact: Optional[datetime]

    class Config:
        from_attributes = True


def link_invitations_in_background(contractor_id: str, contractor_email: Optional[str]) -> None:
    """Run the linking sweep on its own session once the response has gone out."""
    db = database.SessionLocal()
    try:
        AccountLinker(db).migrate(contractor_id, contractor_email)
    finally:
        db.close()


# ==================== Endpoints ====================

@router.post("/session", response_model=ContractorResponse)
def start_contractor_session(
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Called after a contractor signs in or signs up.

    Ensures the contractor profile exists and schedules linking of any
    invitations sent from their email before they had an account. Linking
    never blocks or fails sign-in.
    """
    contractor = StatsAggregator(db).get_or_create_contractor(user.user_id, user.email)
    if user.name and not contractor.display_name:
        contractor.display_name = user.name
        db.commit()
        db.refresh(contractor)

    if user.email:
        background_tasks.add_task(link_invitations_in_background, user.user_id, user.email)

    return contractor


@router.get("/me/invitations", response_model=List[ContractorInvitationResponse])
def list_my_invitations(
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List the contractor's invitations, newest first."""
    return InvitationStore(db).list_mirrors(user_id, limit=limit)


@router.post("/me/invitations", response_model=InvitationCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_my_invitation(
    request: CreateInvitationRequest,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Create an invitation as the signed-in contractor.

    The invitation is linked immediately and counted in the contractor's stats.
    """
    contractor_info = request.contractor.model_dump()
    if not contractor_info.get("email"):
        contractor_info["email"] = user.email

    try:
        created = InvitationService(db).create_invitation(
            contractor_info=contractor_info,
            records=[record.model_dump() for record in request.records],
            recipient_email=request.recipient_email,
            contractor_id=user.user_id,
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


@router.delete("/me/invitations/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_my_invitation(
    invitation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Remove an invitation from the contractor's list.

    The invitation link keeps working for the homeowner.
    """
    if not InvitationService(db).delete_contractor_invitation(user_id, invitation_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invitation not found"
        )


@router.get("/me/customers", response_model=List[CustomerResponse])
def list_my_customers(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List the contractor's customers by name."""
    return CustomerService(db).list_customers(user_id)


@router.get("/me/stats", response_model=ContractorStatsResponse)
def get_my_stats(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return StatsAggregator(db).get_stats(user_id)


@router.post("/me/stats/recalculate", response_model=ContractorStatsResponse)
def recalculate_my_stats(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Recount the claim rate from the contractor's invitations."""
    stats = StatsAggregator(db)
    stats.get_or_create_contractor(user_id)
    stats.recalculate_claim_rate(user_id)
    return stats.get_stats(user_id)
