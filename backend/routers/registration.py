from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from database import get_db
from models import Participant, SubEvent
from realtime import ADMIN_ROOM, Notifier, get_notifier
from registration_service import discount_quote, get_payment_settings, get_system_settings, submit_registration
from schemas import DiscountRequest, PaymentSettingsResponse, RegistrationSubmit, SubEventResponse, SystemSettingsResponse
from time_utils import is_past
from utils import IMAGE_CONTENT_TYPES, PAYMENT_PROOF_MAX_BYTES, _upload_to_s3, api_response

router = APIRouter()


@router.post("/registration/upload-proof")
def upload_payment_proof(payment_proof: UploadFile = File(..., alias="paymentProof")):
    url = _upload_to_s3(payment_proof, "verbafest/payment-proofs", IMAGE_CONTENT_TYPES, PAYMENT_PROOF_MAX_BYTES)
    return api_response(url=url)


@router.get("/registration/settings")
def registration_settings(db: Session = Depends(get_db)):
    settings = SystemSettingsResponse.model_validate(get_system_settings(db)).model_dump()
    settings.pop("maintenance_mode", None)
    settings.pop("max_global_participants", None)
    return api_response(data=settings)


@router.get("/registration/form")
def registration_form(db: Session = Depends(get_db)):
    sub_events = (
        db.query(SubEvent)
        .filter(SubEvent.is_active_for_registration == True)  # noqa: E712
        .order_by(SubEvent.id)
        .all()
    )
    available = [
        SubEventResponse.model_validate(sub_event)
        for sub_event in sub_events
        if not is_past(sub_event.registration_deadline) and not sub_event.is_full
    ]
    return api_response(data=available, count=len(available))


@router.post("/registration/submit", status_code=status.HTTP_201_CREATED)
def submit(payload: RegistrationSubmit, db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    participant, password = submit_registration(db, payload)
    notifier.emit("participant:registered", {
        "participant_id": participant.id,
        "full_name": participant.full_name,
        "chest_number": participant.chest_number,
    }, room=ADMIN_ROOM)
    return api_response(
        data={
            "participant": {
                "id": participant.id,
                "full_name": participant.full_name,
                "email": participant.email,
                "prn": participant.prn,
                "chest_number": participant.chest_number,
                "registration_status": participant.registration_status.value,
                "password": password,
            }
        },
        message="Registration submitted successfully. Please wait for admin approval.",
    )


@router.get("/registration/status/{participant_id}")
def registration_status(participant_id: int, db: Session = Depends(get_db)):
    participant = db.query(Participant).filter(Participant.id == participant_id).first()
    if not participant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    sub_events = (
        db.query(SubEvent).filter(SubEvent.id.in_(participant.registered_sub_event_ids)).order_by(SubEvent.id).all()
        if participant.registered_sub_event_ids else []
    )
    return api_response(data={
        "full_name": participant.full_name,
        "email": participant.email,
        "prn": participant.prn,
        "registration_status": participant.registration_status.value,
        "registered_sub_events": [
            {"id": sub_event.id, "name": sub_event.name, "type": sub_event.type.value, "accent_color": sub_event.accent_color}
            for sub_event in sub_events
        ],
        "created_at": participant.created_at,
    })


@router.get("/payment-settings")
def public_payment_settings(db: Session = Depends(get_db)):
    settings = get_payment_settings(db)
    return api_response(data=PaymentSettingsResponse.model_validate(settings))


@router.post("/payment-settings/calculate-discount")
def public_calculate_discount(payload: DiscountRequest, db: Session = Depends(get_db)):
    settings = get_payment_settings(db)
    return api_response(data=discount_quote(settings, payload.subtotal, payload.event_count))
