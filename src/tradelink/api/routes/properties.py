"""
API routes for a homeowner's properties (claim destinations).

Endpoints:
- GET /properties - List the caller's homes
- POST /properties - Create a home
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradelink.auth.clerk import get_current_user_id
from tradelink.config import DEFAULT_PROPERTY_NAME
from tradelink.db.database import get_db
from tradelink.services.property_service import PropertyService

router = APIRouter(prefix="/properties", tags=["properties"])


class CreatePropertyRequest(BaseModel):
    name: str = DEFAULT_PROPERTY_NAME
    address: Optional[str] = None


class PropertyResponse(BaseModel):
    id: UUID
    name: str
    address: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


@router.get("", response_model=List[PropertyResponse])
def list_properties(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return PropertyService(db).list_properties(user_id)


@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
def create_property(
    request: CreatePropertyRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        return PropertyService(db).create_property(user_id, request.name, request.address)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not create property"
        )
