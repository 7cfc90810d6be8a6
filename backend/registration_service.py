"""Participant intake: pricing, submission, approval and re-registration."""
import logging
from typing import List, Optional, Sequence, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import generate_password, get_password_hash
from models import (
    Availability,
    CHEST_NUMBER_COUNTER,
    CORE_SETTINGS_KEY,
    Counter,
    Participant,
    ParticipantSubEvent,
    PaymentSettings,
    RegistrationStatus,
    SubEvent,
    SystemSettings,
)
from realtime import ADMIN_ROOM, Notifier, participant_room
from schemas import PaymentDetails, RegistrationSubmit
from time_utils import is_past, now_utc

logger = logging.getLogger(__name__)


def format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.2f}"


def get_system_settings(db: Session) -> SystemSettings:
    settings = db.query(SystemSettings).filter(SystemSettings.key == CORE_SETTINGS_KEY).first()
    if not settings:
        settings = SystemSettings(key=CORE_SETTINGS_KEY)
        db.add(settings)
        db.commit()
        db.refresh(settings)
    return settings


def get_payment_settings(db: Session) -> PaymentSettings:
    settings = db.query(PaymentSettings).filter(PaymentSettings.is_active == True).first()  # noqa: E712
    if not settings:
        settings = PaymentSettings(is_active=True)
        db.add(settings)
        db.commit()
        db.refresh(settings)
    return settings


def calculate_discount(subtotal: float, event_count: int, settings: Optional[PaymentSettings]) -> float:
    if settings is None:
        return 0.0
    return settings.calculate_discount(subtotal, event_count)


def quote_amount(sub_events: Sequence[SubEvent], settings: Optional[PaymentSettings]) -> dict:
    subtotal = float(sum(sub_event.registration_price for sub_event in sub_events))
    discount = calculate_discount(subtotal, len(sub_events), settings)
    return {
        "subtotal": subtotal,
        "discount": discount,
        "expected_amount": max(0.0, subtotal - discount),
        "event_count": len(sub_events),
    }


def discount_quote(settings: PaymentSettings, subtotal: float, event_count: int) -> dict:
    discount = calculate_discount(subtotal, event_count, settings)
    return {
        "total_amount": subtotal,
        "event_count": event_count,
        "discount": discount,
        "final_amount": max(0.0, subtotal - discount),
        "discount_applied": discount > 0,
        "discount_type": settings.bulk_discount_type.value,
        "discount_value": settings.bulk_discount_value,
        "min_events_required": settings.bulk_discount_min_events,
    }


def load_open_sub_events(db: Session, sub_event_ids: Sequence[int]) -> List[SubEvent]:
    sub_events = db.query(SubEvent).filter(SubEvent.id.in_(list(sub_event_ids))).all()
    open_events = [
        sub_event for sub_event in sub_events
        if sub_event.is_active_for_registration and not is_past(sub_event.registration_deadline)
    ]
    if len(open_events) != len(set(sub_event_ids)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="One or more selected sub-events are not available for registration"
        )
    for sub_event in open_events:
        if sub_event.is_full:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{sub_event.name} has reached maximum capacity")
    return open_events


def _check_paid_amount(paid_amount: float, quote: dict) -> None:
    if float(paid_amount) < quote["expected_amount"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid payment amount. Expected at least ₹{format_amount(quote['expected_amount'])}"
        )


def _ensure_identity_available(db: Session, payload: RegistrationSubmit) -> None:
    existing = db.query(Participant).filter(
        or_(
            Participant.email == payload.email,
            Participant.prn == payload.prn,
            Participant.mobile == payload.mobile,
        )
    ).first()
    if not existing:
        return
    field = "email"
    if existing.prn == payload.prn:
        field = "PRN"
    if existing.mobile == payload.mobile:
        field = "Mobile Number"
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"A participant with this {field} already exists")


def next_chest_number(db: Session) -> int:
    """Bump the chest-number counter inside the caller's transaction and return the new value."""
    updated = (
        db.query(Counter)
        .filter(Counter.name == CHEST_NUMBER_COUNTER)
        .update({Counter.count: Counter.count + 1}, synchronize_session=False)
    )
    if not updated:
        db.add(Counter(name=CHEST_NUMBER_COUNTER, count=1))
        db.flush()
        return 1
    return db.query(Counter.count).filter(Counter.name == CHEST_NUMBER_COUNTER).scalar()


def _bump_registration_totals(db: Session, sub_event_ids: Sequence[int], delta: int) -> None:
    if not sub_event_ids:
        return
    db.query(SubEvent).filter(SubEvent.id.in_(list(sub_event_ids))).update(
        {SubEvent.total_registrations: SubEvent.total_registrations + delta},
        synchronize_session=False,
    )


def recount_approved(db: Session, sub_event_ids: Sequence[int]) -> None:
    db.flush()
    for sub_event_id in set(sub_event_ids):
        approved = (
            db.query(func.count(ParticipantSubEvent.id))
            .join(Participant, Participant.id == ParticipantSubEvent.participant_id)
            .filter(
                ParticipantSubEvent.sub_event_id == sub_event_id,
                Participant.registration_status == RegistrationStatus.APPROVED,
            )
            .scalar()
        )
        db.query(SubEvent).filter(SubEvent.id == sub_event_id).update(
            {SubEvent.approved_participants: approved or 0},
            synchronize_session=False,
        )


def _commit_or_conflict(db: Session, message: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Integrity conflict: %s", exc.orig)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message) from exc


def submit_registration(db: Session, payload: RegistrationSubmit) -> Tuple[Participant, str]:
    system_settings = get_system_settings(db)
    if not system_settings.is_registration_open:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is closed")

    _ensure_identity_available(db, payload)
    sub_events = load_open_sub_events(db, payload.sub_event_ids)
    quote = quote_amount(sub_events, get_payment_settings(db))
    _check_paid_amount(payload.paid_amount, quote)

    password = generate_password()
    participant = Participant(
        full_name=payload.full_name,
        email=payload.email,
        mobile=payload.mobile,
        prn=payload.prn,
        branch=payload.branch,
        year=payload.year,
        college=payload.college,
        hashed_password=get_password_hash(password),
        transaction_id=payload.transaction_id,
        payment_proof_url=payload.payment_proof_url,
        paid_amount=payload.paid_amount,
        registration_status=RegistrationStatus.PENDING,
        current_status=Availability.REGISTERED,
        chest_number=next_chest_number(db),
    )
    for sub_event in sub_events:
        participant.register_sub_event(sub_event.id)
    db.add(participant)
    _bump_registration_totals(db, [sub_event.id for sub_event in sub_events], 1)
    _commit_or_conflict(db, "A participant with these details already exists")
    db.refresh(participant)
    logger.info("Registered participant %s (chest #%s) for %d sub-events", participant.id, participant.chest_number, len(sub_events))
    return participant, password


def _load_participant(db: Session, participant_id: int) -> Participant:
    participant = (
        db.query(Participant)
        .filter(Participant.id == participant_id)
        .populate_existing()
        .first()
    )
    if not participant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Participant not found")
    return participant


def _transition_registration(db: Session, participant_id: int, target: RegistrationStatus, values: dict) -> None:
    """Move to ``target`` only if not already there; a zero row count means nothing was written."""
    changed = (
        db.query(Participant)
        .filter(Participant.id == participant_id, Participant.registration_status != target)
        .update({Participant.registration_status: target, **values}, synchronize_session=False)
    )
    if changed:
        return
    exists = db.query(Participant.id).filter(Participant.id == participant_id).first()
    db.rollback()
    if not exists:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Participant not found")
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Participant is already {target.value}")


def approve_participant(db: Session, participant_id: int, notifier: Notifier) -> Participant:
    _transition_registration(db, participant_id, RegistrationStatus.APPROVED, {Participant.current_status: Availability.AVAILABLE})
    participant = _load_participant(db, participant_id)

    if participant.is_re_registration and participant.pending_sub_event_ids:
        for sub_event_id in participant.pending_sub_event_ids:
            participant.register_sub_event(sub_event_id)
        participant.is_re_registration = False
        participant.pending_sub_event_ids = []

    recount_approved(db, participant.registered_sub_event_ids)
    db.commit()
    db.refresh(participant)
    logger.info("Approved participant %s", participant.id)

    notifier.emit("participant:approved", {
        "participant_id": participant.id,
        "full_name": participant.full_name,
        "registration_status": participant.registration_status.value,
        "current_status": participant.current_status.value,
    }, room=ADMIN_ROOM)
    room = participant_room(participant.id)
    notifier.emit("participant:status_updated", {"message": "Your registration has been approved!", "status": "approved"}, room=room)
    notifier.emit("participant:notification", {
        "type": "approval",
        "title": "Registration Approved!",
        "message": "Congratulations! Your event registration has been approved. You can now see your assigned rounds and groups here.",
        "timestamp": now_utc(),
    }, room=room)
    notifier.emit("availability_update", {})
    return participant


def reject_participant(db: Session, participant_id: int, reason: Optional[str], notifier: Notifier) -> Participant:
    values = {Participant.current_status: Availability.REJECTED}
    if reason:
        values[Participant.admin_notes] = reason
    _transition_registration(db, participant_id, RegistrationStatus.REJECTED, values)
    participant = _load_participant(db, participant_id)
    recount_approved(db, participant.registered_sub_event_ids)
    db.commit()
    db.refresh(participant)
    logger.info("Rejected participant %s", participant.id)

    notifier.emit("participant:rejected", {"participant_id": participant.id, "full_name": participant.full_name}, room=ADMIN_ROOM)
    room = participant_room(participant.id)
    notifier.emit("participant:status_updated", {
        "message": "Your registration was not approved. Please check notes or contact admin.",
        "status": "rejected",
    }, room=room)
    notifier.emit("participant:notification", {
        "type": "rejection",
        "title": "Registration Status Update",
        "message": (
            f"Your registration was not approved. Reason: {reason}"
            if reason else "Your registration was not approved. Please contact the administrator for details."
        ),
        "timestamp": now_utc(),
    }, room=room)
    return participant


def resubmit_payment(db: Session, participant: Participant, payload: PaymentDetails, notifier: Notifier) -> Participant:
    if participant.registration_status != RegistrationStatus.REJECTED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only rejected registrations can resubmit payment")

    sub_events = load_open_sub_events(db, payload.sub_event_ids)
    quote = quote_amount(sub_events, get_payment_settings(db))
    _check_paid_amount(payload.paid_amount, quote)

    previous_ids = set(participant.registered_sub_event_ids)
    requested_ids = {sub_event.id for sub_event in sub_events}
    for sub_event_id in previous_ids - requested_ids:
        del participant.status_per_sub_event[sub_event_id]
    for sub_event_id in requested_ids - previous_ids:
        participant.register_sub_event(sub_event_id)
    _bump_registration_totals(db, list(previous_ids - requested_ids), -1)
    _bump_registration_totals(db, list(requested_ids - previous_ids), 1)

    participant.transaction_id = payload.transaction_id
    participant.payment_proof_url = payload.payment_proof_url
    participant.paid_amount = payload.paid_amount
    participant.registration_status = RegistrationStatus.PENDING
    participant.current_status = Availability.REGISTERED
    participant.is_re_registration = False
    participant.pending_sub_event_ids = []
    participant.admin_notes = None
    db.commit()
    db.refresh(participant)
    logger.info("Participant %s resubmitted payment for %d sub-events", participant.id, len(requested_ids))

    notifier.emit("participant:resubmitted", {"participant_id": participant.id, "full_name": participant.full_name}, room=ADMIN_ROOM)
    return participant


def request_additional_sub_events(db: Session, participant: Participant, payload: PaymentDetails, notifier: Notifier) -> Participant:
    if participant.registration_status != RegistrationStatus.APPROVED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only approved participants can add sub-events")

    new_ids = [sub_event_id for sub_event_id in payload.sub_event_ids if sub_event_id not in participant.status_per_sub_event]
    if not new_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already registered for the selected sub-events")

    sub_events = load_open_sub_events(db, new_ids)
    quote = quote_amount(sub_events, get_payment_settings(db))
    _check_paid_amount(payload.paid_amount, quote)

    participant.pending_sub_event_ids = new_ids
    participant.is_re_registration = True
    participant.registration_status = RegistrationStatus.PENDING
    participant.transaction_id = payload.transaction_id
    participant.payment_proof_url = payload.payment_proof_url
    participant.paid_amount = (participant.paid_amount or 0) + payload.paid_amount
    _bump_registration_totals(db, new_ids, 1)
    db.commit()
    db.refresh(participant)
    logger.info("Participant %s requested %d more sub-events", participant.id, len(new_ids))

    notifier.emit("participant:re_registration", {
        "participant_id": participant.id,
        "full_name": participant.full_name,
        "pending_sub_event_ids": new_ids,
    }, room=ADMIN_ROOM)
    return participant
