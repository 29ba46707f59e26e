from dataclasses import asdict
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session

from badman.database import get_session
from badman.models.enrollment import EnrollmentSource, EnrollmentStatus
from badman.services.enrollment_service import (
    approve_enrollment,
    cancel_enrollment,
    enroll_guest,
    enroll_player,
    find_players_looking_for_partner,
    get_enrollment,
    get_sub_event,
    list_enrollments,
    promote_enrollment,
    reject_enrollment,
    update_enrollment,
)
from badman.services.enrollment_validation import check_eligibility, validate_bulk_enrollment
from badman.utils.http_errors import commit_or_409, service_errors

router = APIRouter()


class EnrollmentCreate(BaseModel):
    player_id: int
    preferred_partner_id: Optional[int] = None
    notes: Optional[str] = None
    source: EnrollmentSource = EnrollmentSource.MANUAL


class GuestEnrollmentCreate(BaseModel):
    guest_name: str
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("guest_name")
    @classmethod
    def validate_guest_name(cls, v):
        if not v or not v.strip():
            raise ValueError("guest_name cannot be empty")
        return v.strip()

    @field_validator("guest_email")
    @classmethod
    def validate_guest_email(cls, v):
        if v is not None and "@" not in v:
            raise ValueError("guest_email is not a valid email address")
        return v


class EnrollmentUpdate(BaseModel):
    preferred_partner_id: Optional[int] = None
    notes: Optional[str] = None


class EnrollmentCancel(BaseModel):
    cancelled_by_player_id: Optional[int] = None
    reason: Optional[str] = None


class EnrollmentApprove(BaseModel):
    approved_by: Optional[int] = None


class EnrollmentReject(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError("reason cannot be empty")
        return v.strip()


class EnrollmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sub_event_id: int
    player_id: Optional[int] = None
    status: EnrollmentStatus
    preferred_partner_id: Optional[int] = None
    confirmed_partner_id: Optional[int] = None
    is_guest: bool
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    waiting_list_position: Optional[int] = None
    notes: Optional[str] = None
    enrollment_source: EnrollmentSource
    promoted_from_waiting_list: bool
    promoted_at: Optional[datetime] = None
    original_waiting_list_position: Optional[int] = None
    requires_approval: bool
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None
    created_at: datetime


class EligibilityResponse(BaseModel):
    eligible: bool
    reasons: List[str]
    meets_level_requirement: bool
    is_already_enrolled: bool
    has_capacity: bool
    is_within_enrollment_window: bool
    error_types: List[str]


class BulkValidationRequest(BaseModel):
    player_id: int
    sub_event_ids: List[int]
    partner_preferences: Dict[int, int] = {}


class BulkValidationErrorResponse(BaseModel):
    sub_event_id: int
    sub_event_name: str
    error_type: str
    message: str


class BulkValidationResponse(BaseModel):
    valid: bool
    errors: List[BulkValidationErrorResponse]
    warnings: List[str]


# ============================================================================
# Enroll
# ============================================================================


@router.post("/sub-events/{sub_event_id}/enrollments", response_model=EnrollmentResponse, status_code=201)
def create_enrollment(sub_event_id: int, data: EnrollmentCreate, session: Session = Depends(get_session)):
    with service_errors(session):
        enrollment = enroll_player(
            session,
            sub_event_id,
            data.player_id,
            preferred_partner_id=data.preferred_partner_id,
            notes=data.notes,
            source=data.source,
        )
    commit_or_409(session)
    session.refresh(enrollment)
    return enrollment


@router.post("/sub-events/{sub_event_id}/guest-enrollments", response_model=EnrollmentResponse, status_code=201)
def create_guest_enrollment(sub_event_id: int, data: GuestEnrollmentCreate, session: Session = Depends(get_session)):
    with service_errors(session):
        enrollment = enroll_guest(
            session,
            sub_event_id,
            data.guest_name,
            guest_email=data.guest_email,
            guest_phone=data.guest_phone,
            notes=data.notes,
        )
    commit_or_409(session)
    session.refresh(enrollment)
    return enrollment


@router.get("/sub-events/{sub_event_id}/enrollments", response_model=List[EnrollmentResponse])
def get_sub_event_enrollments(
    sub_event_id: int, status: Optional[EnrollmentStatus] = None, session: Session = Depends(get_session)
):
    with service_errors(session):
        return list_enrollments(session, sub_event_id, status)


@router.get("/sub-events/{sub_event_id}/looking-for-partner", response_model=List[EnrollmentResponse])
def get_players_looking_for_partner(sub_event_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        return find_players_looking_for_partner(session, sub_event_id)


@router.get("/sub-events/{sub_event_id}/eligibility", response_model=EligibilityResponse)
def get_eligibility(sub_event_id: int, player_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        get_sub_event(session, sub_event_id)
    return check_eligibility(session, player_id, sub_event_id).to_dict()


@router.post("/enrollments/validate", response_model=BulkValidationResponse)
def validate_enrollments(data: BulkValidationRequest, session: Session = Depends(get_session)):
    """Check a set of sub-events for one player before enrolling in all of them."""
    result = validate_bulk_enrollment(session, data.player_id, data.sub_event_ids, data.partner_preferences)
    return {
        "valid": result.valid,
        "errors": [asdict(e) for e in result.errors],
        "warnings": result.warnings,
    }


# ============================================================================
# Manage
# ============================================================================


@router.get("/enrollments/{enrollment_id}", response_model=EnrollmentResponse)
def get_enrollment_detail(enrollment_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        return get_enrollment(session, enrollment_id)


@router.patch("/enrollments/{enrollment_id}", response_model=EnrollmentResponse)
def patch_enrollment(enrollment_id: int, data: EnrollmentUpdate, session: Session = Depends(get_session)):
    with service_errors(session):
        enrollment = update_enrollment(session, enrollment_id, data.model_dump(exclude_unset=True))
    commit_or_409(session)
    session.refresh(enrollment)
    return enrollment


@router.post("/enrollments/{enrollment_id}/cancel", response_model=EnrollmentResponse)
def cancel(enrollment_id: int, data: EnrollmentCancel, session: Session = Depends(get_session)):
    with service_errors(session):
        enrollment = cancel_enrollment(
            session, enrollment_id, cancelled_by_player_id=data.cancelled_by_player_id, reason=data.reason
        )
    commit_or_409(session)
    session.refresh(enrollment)
    return enrollment


@router.post("/enrollments/{enrollment_id}/promote", response_model=EnrollmentResponse)
def promote(enrollment_id: int, session: Session = Depends(get_session)):
    """Move a waiting-list enrollment into the draw, regardless of capacity."""
    with service_errors(session):
        enrollment = promote_enrollment(session, enrollment_id)
    commit_or_409(session)
    session.refresh(enrollment)
    return enrollment


@router.post("/enrollments/{enrollment_id}/approve", response_model=EnrollmentResponse)
def approve(enrollment_id: int, data: EnrollmentApprove, session: Session = Depends(get_session)):
    with service_errors(session):
        enrollment = approve_enrollment(session, enrollment_id, approved_by=data.approved_by)
    commit_or_409(session)
    session.refresh(enrollment)
    return enrollment


@router.post("/enrollments/{enrollment_id}/reject", response_model=EnrollmentResponse)
def reject(enrollment_id: int, data: EnrollmentReject, session: Session = Depends(get_session)):
    with service_errors(session):
        enrollment = reject_enrollment(session, enrollment_id, data.reason)
    commit_or_409(session)
    session.refresh(enrollment)
    return enrollment
