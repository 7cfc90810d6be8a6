from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from models import Participant, Round, SubEvent
from realtime import Notifier, get_notifier
from registration_service import request_additional_sub_events, resubmit_payment
from schemas import ParticipantResponse, PaymentDetails, ResubmitPaymentRequest
from security import require_participant
from utils import api_response

router = APIRouter()


def _enriched_sub_events(db: Session, participant: Participant) -> list:
    ids = participant.registered_sub_event_ids
    if not ids:
        return []
    sub_events = db.query(SubEvent).filter(SubEvent.id.in_(ids)).order_by(SubEvent.id).all()
    enriched = []
    for sub_event in sub_events:
        entry = participant.get_sub_event_status(sub_event.id)
        current_round = None
        if entry["current_round"]:
            round_row = db.query(Round).filter(Round.id == entry["current_round"]).first()
            if round_row:
                current_round = {
                    "id": round_row.id,
                    "name": round_row.name,
                    "round_number": round_row.round_number,
                    "venue": round_row.venue,
                    "instructions": round_row.instructions,
                    "status": round_row.status.value,
                }
        enriched.append({
            "id": sub_event.id,
            "name": sub_event.name,
            "description": sub_event.description,
            "type": sub_event.type.value,
            "accent_color": sub_event.accent_color,
            "status": sub_event.status.value,
            "whatsapp_group_link": sub_event.whatsapp_group_link,
            "my_status": entry["status"],
            "my_round_number": entry["round_number"],
            "current_round": current_round,
        })
    return enriched


@router.get("/participant/me")
def participant_me(participant: Participant = Depends(require_participant), db: Session = Depends(get_db)):
    return api_response(data={
        "id": participant.id,
        "full_name": participant.full_name,
        "email": participant.email,
        "mobile": participant.mobile,
        "prn": participant.prn,
        "branch": participant.branch,
        "year": participant.year,
        "college": participant.college,
        "chest_number": participant.chest_number,
        "registration_status": participant.registration_status.value,
        "current_status": participant.current_status.value,
        "admin_notes": participant.admin_notes,
        "is_re_registration": participant.is_re_registration,
        "pending_sub_event_ids": participant.pending_sub_event_ids or [],
        "registered_sub_events": _enriched_sub_events(db, participant),
    })


@router.post("/participant/resubmit-payment")
def participant_resubmit_payment(
    payload: ResubmitPaymentRequest,
    participant: Participant = Depends(require_participant),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    updated = resubmit_payment(db, participant, payload, notifier)
    return api_response(
        data=ParticipantResponse.model_validate(updated),
        message="Payment details resubmitted. Please wait for admin approval.",
    )


@router.post("/participant/add-events")
def participant_add_events(
    payload: PaymentDetails,
    participant: Participant = Depends(require_participant),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    updated = request_additional_sub_events(db, participant, payload, notifier)
    return api_response(
        data=ParticipantResponse.model_validate(updated),
        message="Additional sub-events requested. Please wait for admin approval.",
    )
