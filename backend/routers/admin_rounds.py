from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

import round_service
from database import get_db
from models import Round, SubEvent, User
from realtime import Notifier, get_notifier
from schemas import ParticipantIdsRequest, RoundCreate, RoundResponse, RoundUpdate, WinnersRequest
from security import require_admin
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()


@router.get("/admin/rounds/subevent/{sub_event_id}")
def rounds_for_sub_event(sub_event_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    rounds = db.query(Round).filter(Round.sub_event_id == sub_event_id).order_by(Round.round_number).all()
    return api_response(data=[RoundResponse.model_validate(round_row) for round_row in rounds], count=len(rounds))


@router.get("/admin/rounds/{round_id}")
def get_round(round_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    round_row = get_or_404(db, Round, round_id, "Round")
    return api_response(data=RoundResponse.model_validate(round_row))


@router.post("/admin/rounds", status_code=status.HTTP_201_CREATED)
def create_round(payload: RoundCreate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    round_row = round_service.create_round(db, payload)
    log_admin_action(db, admin, "Create round", request.method, request.url.path, {"round_id": round_row.id, "sub_event_id": round_row.sub_event_id})
    return api_response(data=RoundResponse.model_validate(round_row), message="Round created successfully")


@router.post("/admin/rounds/{round_id}/participants")
def shortlist_participants(
    round_id: int,
    payload: ParticipantIdsRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    round_row = round_service.add_participants(db, round_id, payload.participant_ids)
    log_admin_action(db, admin, "Shortlist round participants", request.method, request.url.path, {
        "round_id": round_id,
        "participant_ids": payload.participant_ids,
    })
    return api_response(data=RoundResponse.model_validate(round_row), message="Participants added to round")


@router.put("/admin/rounds/{round_id}")
def update_round(round_id: int, payload: RoundUpdate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    round_row = round_service.update_round(db, round_id, payload)
    log_admin_action(db, admin, "Update round", request.method, request.url.path, {"round_id": round_id})
    return api_response(data=RoundResponse.model_validate(round_row), message="Round updated successfully")


@router.post("/admin/rounds/{round_id}/start")
def start_round(
    round_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    round_row = round_service.start_round(db, round_id, notifier)
    log_admin_action(db, admin, "Start round", request.method, request.url.path, {"round_id": round_id})
    return api_response(data=RoundResponse.model_validate(round_row), message="Round started")


@router.post("/admin/rounds/{round_id}/end")
def end_round(
    round_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    round_row = round_service.end_round(db, round_id, notifier)
    log_admin_action(db, admin, "End round", request.method, request.url.path, {"round_id": round_id})
    return api_response(data=RoundResponse.model_validate(round_row), message="Round ended")


@router.post("/admin/rounds/{round_id}/winners")
def set_round_winners(round_id: int, payload: WinnersRequest, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    round_row = round_service.set_winners(db, round_id, payload.winner_ids)
    log_admin_action(db, admin, "Set round winners", request.method, request.url.path, {"round_id": round_id, "winner_ids": payload.winner_ids})
    return api_response(data=RoundResponse.model_validate(round_row), message="Winners updated")


@router.post("/admin/rounds/{round_id}/promote-selected")
def promote_selected(
    round_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    next_round, promoted_ids = round_service.promote_selected(db, round_id, notifier)
    log_admin_action(db, admin, "Promote selected participants", request.method, request.url.path, {
        "round_id": round_id,
        "next_round_id": next_round.id,
        "count": len(promoted_ids),
    })
    return api_response(
        data={"next_round": RoundResponse.model_validate(next_round), "promoted_participant_ids": promoted_ids},
        message=f"Successfully promoted {len(promoted_ids)} participants to {next_round.name}",
        count=len(promoted_ids),
    )


@router.delete("/admin/rounds/{round_id}")
def delete_round(
    round_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    round_service.delete_round(db, round_id, notifier)
    log_admin_action(db, admin, "Delete round", request.method, request.url.path, {"round_id": round_id})
    return api_response(message="Round deleted successfully")
