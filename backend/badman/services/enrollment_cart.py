"""
Enrollment cart (enrollment session).

A player, or an anonymous visitor identified by a session key, collects
sub-events of one tournament before submitting them together. Carts expire
after CART_EXPIRY_HOURS; a periodic task marks stale carts EXPIRED.
"""
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlmodel import Session, select

from badman.models.enrollment import EnrollmentSource, TournamentEnrollment
from badman.models.enrollment_session import (
    EnrollmentSession,
    EnrollmentSessionItem,
    EnrollmentSessionStatus,
    ItemValidationStatus,
)
from badman.models.sub_event import TournamentSubEvent
from badman.models.tournament import TournamentEvent
from badman.services.enrollment_errors import CartError, CartNotFound, TournamentNotFound
from badman.services.enrollment_service import enroll_player
from badman.services.enrollment_validation import BulkValidationResult, validate_bulk_enrollment
from badman.utils.dates import utcnow

logger = logging.getLogger(__name__)

CART_EXPIRY_HOURS = int(os.getenv("CART_EXPIRY_HOURS", "24"))


@dataclass
class CartItemInput:
    sub_event_id: int
    preferred_partner_id: Optional[int] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None


def _require_pending(cart: EnrollmentSession) -> None:
    if EnrollmentSessionStatus(cart.status) != EnrollmentSessionStatus.PENDING:
        raise CartError(f"Cart is {EnrollmentSessionStatus(cart.status).value.lower()} and can no longer be changed")


def get_cart(session: Session, cart_id: int) -> EnrollmentSession:
    cart = session.get(EnrollmentSession, cart_id)
    if cart is None:
        raise CartNotFound(cart_id)
    return cart


def get_cart_by_identifier(
    session: Session,
    tournament_event_id: int,
    player_id: Optional[int] = None,
    session_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[EnrollmentSession]:
    """Latest PENDING, unexpired cart for the tournament and owner (player or session key)."""
    if player_id is None and not session_key:
        return None
    now = now or utcnow()
    query = select(EnrollmentSession).where(
        EnrollmentSession.tournament_event_id == tournament_event_id,
        EnrollmentSession.status == EnrollmentSessionStatus.PENDING,
        EnrollmentSession.expires_at > now,
    )
    if player_id is not None:
        query = query.where(EnrollmentSession.player_id == player_id)
    else:
        query = query.where(EnrollmentSession.session_key == session_key)
    return session.exec(query.order_by(EnrollmentSession.created_at.desc(), EnrollmentSession.id.desc())).first()


def find_or_create_cart(
    session: Session,
    tournament_event_id: int,
    player_id: Optional[int] = None,
    session_key: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> EnrollmentSession:
    if session.get(TournamentEvent, tournament_event_id) is None:
        raise TournamentNotFound(tournament_event_id)

    existing = get_cart_by_identifier(session, tournament_event_id, player_id, session_key)
    if existing is not None:
        return existing

    now = utcnow()
    cart = EnrollmentSession(
        session_key=session_key or uuid.uuid4().hex,
        tournament_event_id=tournament_event_id,
        player_id=player_id,
        status=EnrollmentSessionStatus.PENDING,
        expires_at=now + timedelta(hours=CART_EXPIRY_HOURS),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(cart)
    session.flush()
    return cart


def add_to_cart(session: Session, cart_id: int, items: List[CartItemInput]) -> EnrollmentSession:
    """Add sub-events to a cart. Sub-events already in the cart are skipped."""
    cart = get_cart(session, cart_id)
    _require_pending(cart)

    ids = [item.sub_event_id for item in items]
    sub_events = {
        se.id: se
        for se in session.exec(select(TournamentSubEvent).where(TournamentSubEvent.id.in_(ids))).all()
    } if ids else {}

    missing = [sid for sid in ids if sid not in sub_events]
    if missing:
        raise CartError(f"Sub-events not found: {', '.join(str(sid) for sid in missing)}")
    foreign = [sid for sid in ids if sub_events[sid].event_id != cart.tournament_event_id]
    if foreign:
        raise CartError(f"Sub-events do not belong to this tournament: {', '.join(str(sid) for sid in foreign)}")

    present = {item.sub_event_id for item in cart.items}
    for item in items:
        if item.sub_event_id in present:
            continue
        session.add(
            EnrollmentSessionItem(
                session_id=cart.id,
                sub_event_id=item.sub_event_id,
                preferred_partner_id=item.preferred_partner_id,
                guest_name=item.guest_name,
                guest_email=item.guest_email,
                guest_phone=item.guest_phone,
                notes=item.notes,
            )
        )
        present.add(item.sub_event_id)

    cart.total_sub_events = len(present)
    session.add(cart)
    session.flush()
    session.refresh(cart)
    return cart


def remove_from_cart(session: Session, cart_id: int, sub_event_id: int) -> EnrollmentSession:
    cart = get_cart(session, cart_id)
    _require_pending(cart)

    item = session.exec(
        select(EnrollmentSessionItem).where(
            EnrollmentSessionItem.session_id == cart.id,
            EnrollmentSessionItem.sub_event_id == sub_event_id,
        )
    ).first()
    if item is not None:
        session.delete(item)
        session.flush()
        session.refresh(cart)
    cart.total_sub_events = len(cart.items)
    session.add(cart)
    return cart


def clear_cart(session: Session, cart_id: int) -> EnrollmentSession:
    cart = get_cart(session, cart_id)
    _require_pending(cart)
    for item in list(cart.items):
        session.delete(item)
    session.flush()
    session.refresh(cart)
    cart.total_sub_events = 0
    session.add(cart)
    return cart


def validate_cart(session: Session, cart_id: int) -> BulkValidationResult:
    """Run bulk validation for the cart owner and record the outcome on every item."""
    cart = get_cart(session, cart_id)
    if cart.player_id is None:
        raise CartError("Cart has no player; sign in before validating")

    partner_preferences = {
        item.sub_event_id: item.preferred_partner_id for item in cart.items if item.preferred_partner_id
    }
    result = validate_bulk_enrollment(
        session,
        cart.player_id,
        [item.sub_event_id for item in cart.items],
        partner_preferences,
    )

    for item in cart.items:
        errors = [e.message for e in result.errors_for(item.sub_event_id)]
        item.validation_status = ItemValidationStatus.INVALID if errors else ItemValidationStatus.VALID
        item.validation_errors = errors or None
        session.add(item)
    return result


def mark_as_submitted(session: Session, cart: EnrollmentSession) -> EnrollmentSession:
    cart.status = EnrollmentSessionStatus.COMPLETED
    cart.completed_at = utcnow()
    session.add(cart)
    return cart


def submit_cart(session: Session, cart_id: int) -> List[TournamentEnrollment]:
    """
    Turn every cart item into an enrollment.

    Each item goes through enroll_player, so phase, capacity, waiting list and
    partner matching apply exactly as for a single enrollment. Any failure
    raises and the caller rolls the whole submission back.
    """
    cart = get_cart(session, cart_id)
    _require_pending(cart)
    if cart.expires_at <= utcnow():
        raise CartError("Cart has expired")
    if not cart.items:
        raise CartError("Cart is empty")
    if cart.player_id is None:
        raise CartError("Cart has no player; sign in before submitting")

    enrollments = []
    for item in sorted(cart.items, key=lambda i: i.id):
        enrollment = enroll_player(
            session,
            item.sub_event_id,
            cart.player_id,
            preferred_partner_id=item.preferred_partner_id,
            notes=item.notes,
            source=EnrollmentSource.PUBLIC_FORM,
            session_id=cart.id,
        )
        enrollments.append(enrollment)

    mark_as_submitted(session, cart)
    logger.info(f"Cart {cart.id} submitted: {len(enrollments)} enrollment(s) for player {cart.player_id}")
    return enrollments


def cleanup_expired_carts(session: Session, now: Optional[datetime] = None) -> int:
    """Mark PENDING carts past their expiry as EXPIRED. Caller commits."""
    now = now or utcnow()
    stale = session.exec(
        select(EnrollmentSession).where(
            EnrollmentSession.status == EnrollmentSessionStatus.PENDING,
            EnrollmentSession.expires_at <= now,
        )
    ).all()
    for cart in stale:
        cart.status = EnrollmentSessionStatus.EXPIRED
        session.add(cart)
    if stale:
        logger.info(f"Expired {len(stale)} enrollment cart(s)")
    return len(stale)
