from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, model_validator
from sqlmodel import Session

from badman.database import get_session
from badman.models.enrollment_session import EnrollmentSessionStatus, ItemValidationStatus
from badman.routes.enrollments import BulkValidationResponse, EnrollmentResponse
from badman.services.enrollment_cart import (
    CartItemInput,
    add_to_cart,
    clear_cart,
    find_or_create_cart,
    get_cart,
    remove_from_cart,
    submit_cart,
    validate_cart,
)
from badman.utils.http_errors import commit_or_409, service_errors

router = APIRouter()


class CartCreate(BaseModel):
    tournament_event_id: int
    player_id: Optional[int] = None
    session_key: Optional[str] = None


class CartItemCreate(BaseModel):
    sub_event_id: int
    preferred_partner_id: Optional[int] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None


class CartItemsAdd(BaseModel):
    items: List[CartItemCreate]

    @model_validator(mode="after")
    def validate_items(self):
        if not self.items:
            raise ValueError("items cannot be empty")
        return self


class CartItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sub_event_id: int
    preferred_partner_id: Optional[int] = None
    guest_name: Optional[str] = None
    validation_status: ItemValidationStatus
    validation_errors: Optional[List[str]] = None
    notes: Optional[str] = None


class CartResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_key: str
    tournament_event_id: int
    player_id: Optional[int] = None
    status: EnrollmentSessionStatus
    expires_at: datetime
    total_sub_events: int
    completed_at: Optional[datetime] = None
    items: List[CartItemResponse] = []


@router.post("/carts", response_model=CartResponse, status_code=201)
def open_cart(data: CartCreate, request: Request, session: Session = Depends(get_session)):
    """Return the owner's open cart for the tournament, creating one when there is none."""
    with service_errors(session):
        cart = find_or_create_cart(
            session,
            data.tournament_event_id,
            player_id=data.player_id,
            session_key=data.session_key,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    commit_or_409(session)
    session.refresh(cart)
    return cart


@router.get("/carts/{cart_id}", response_model=CartResponse)
def get_cart_detail(cart_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        return get_cart(session, cart_id)


@router.post("/carts/{cart_id}/items", response_model=CartResponse)
def add_cart_items(cart_id: int, data: CartItemsAdd, session: Session = Depends(get_session)):
    with service_errors(session):
        cart = add_to_cart(session, cart_id, [CartItemInput(**item.model_dump()) for item in data.items])
    commit_or_409(session)
    session.refresh(cart)
    return cart


@router.delete("/carts/{cart_id}/items/{sub_event_id}", response_model=CartResponse)
def remove_cart_item(cart_id: int, sub_event_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        cart = remove_from_cart(session, cart_id, sub_event_id)
    commit_or_409(session)
    session.refresh(cart)
    return cart


@router.delete("/carts/{cart_id}/items", response_model=CartResponse)
def clear_cart_items(cart_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        cart = clear_cart(session, cart_id)
    commit_or_409(session)
    session.refresh(cart)
    return cart


@router.post("/carts/{cart_id}/validate", response_model=BulkValidationResponse)
def validate_cart_items(cart_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        result = validate_cart(session, cart_id)
    commit_or_409(session)
    return {
        "valid": result.valid,
        "errors": [asdict(e) for e in result.errors],
        "warnings": result.warnings,
    }


@router.post("/carts/{cart_id}/submit", response_model=List[EnrollmentResponse])
def submit(cart_id: int, session: Session = Depends(get_session)):
    """Enroll the cart owner in every sub-event of the cart. All or nothing."""
    with service_errors(session):
        enrollments = submit_cart(session, cart_id)
    commit_or_409(session)
    for enrollment in enrollments:
        session.refresh(enrollment)
    return enrollments
