import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from database import get_db
from exports import export_to_csv, export_to_xlsx, file_response, participant_html, participant_table, sub_event_name_map
from models import (
    Availability,
    GroupMember,
    Participant,
    ParticipantSubEvent,
    RegistrationStatus,
    Round,
    RoundStatus,
    SubEvent,
    User,
    round_participants,
)
from realtime import Notifier, get_notifier
from registration_service import approve_participant, recount_approved, reject_participant
from schemas import CurrentStatusUpdate, ParticipantResponse, RegistrationStatusUpdate, RejectRequest
from security import require_admin
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()


def _filtered_participants(db: Session, registration_status: Optional[RegistrationStatus], sub_event_ids, search: Optional[str] = None):
    query = db.query(Participant)
    if registration_status:
        query = query.filter(Participant.registration_status == registration_status)
    if sub_event_ids:
        query = query.filter(
            Participant.id.in_(
                db.query(ParticipantSubEvent.participant_id).filter(ParticipantSubEvent.sub_event_id.in_(list(sub_event_ids)))
            )
        )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Participant.full_name.ilike(pattern),
            Participant.email.ilike(pattern),
            Participant.prn.ilike(pattern),
            Participant.mobile.ilike(pattern),
        ))
    return query


def _parse_id_list(raw: Optional[str]) -> list:
    if not raw or raw == "all":
        return []
    try:
        return [int(item) for item in raw.split(",") if item.strip()]
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="sub_event_ids must be a comma-separated list of ids")


@router.get("/admin/participants")
def list_participants(
    registration_status: Optional[RegistrationStatus] = Query(None, alias="status"),
    sub_event_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(1000, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = _filtered_participants(db, registration_status, [sub_event_id] if sub_event_id else [], search)
    total = query.count()
    participants = query.order_by(Participant.created_at.desc(), Participant.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return api_response(
        data=[ParticipantResponse.model_validate(participant) for participant in participants],
        count=total,
        total_pages=math.ceil(total / limit) if total else 0,
        current_page=page,
    )


@router.get("/admin/participants/export")
def export_participants(
    registration_status: Optional[RegistrationStatus] = Query(None, alias="status"),
    sub_event_ids: Optional[str] = None,
    file_format: str = Query("csv", alias="format", pattern="^(csv|html|xlsx)$"),
    export_type: str = Query("full", alias="type", pattern="^(full|nominated)$"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    participants = (
        _filtered_participants(db, registration_status, _parse_id_list(sub_event_ids))
        .order_by(Participant.chest_number.asc(), Participant.id.asc())
        .all()
    )
    names = sub_event_name_map(db)
    if file_format == "html":
        title = "Nominated Participant List" if export_type == "nominated" else "Exported Participant List"
        content = participant_html(participants, names, title, export_type).encode("utf-8")
        return file_response(content, "html", "participants")

    headers, rows = participant_table(participants, names, export_type)
    if file_format == "xlsx":
        return file_response(export_to_xlsx(headers, rows, "Participants"), "xlsx", "participants")
    return file_response(export_to_csv(headers, rows), "csv", "participants")


@router.get("/admin/participants/pending")
def pending_participants(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    participants = (
        db.query(Participant)
        .filter(Participant.registration_status == RegistrationStatus.PENDING)
        .order_by(Participant.created_at.desc(), Participant.id.desc())
        .all()
    )
    return api_response(data=[ParticipantResponse.model_validate(participant) for participant in participants], count=len(participants))


@router.get("/admin/participants/availability")
def participant_availability(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    participants = (
        db.query(Participant)
        .filter(Participant.registration_status == RegistrationStatus.APPROVED)
        .order_by(Participant.chest_number.asc(), Participant.id.asc())
        .all()
    )
    names = sub_event_name_map(db)
    board = []
    for participant in participants:
        board.append({
            "id": participant.id,
            "full_name": participant.full_name,
            "chest_number": participant.chest_number,
            "current_status": participant.current_status.value,
            "is_busy": participant.is_busy(),
            "current_event": {"id": participant.current_event_id, "name": names.get(participant.current_event_id)} if participant.current_event_id else None,
            "registered_sub_events": [
                {"id": sub_event_id, "name": names.get(sub_event_id)} for sub_event_id in participant.registered_sub_event_ids
            ],
        })
    return api_response(data=board, count=len(board))


@router.put("/admin/participants/subevent/{sub_event_id}/make-all-available")
def make_all_available(
    sub_event_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    updated = (
        db.query(Participant)
        .filter(
            Participant.registration_status == RegistrationStatus.APPROVED,
            Participant.id.in_(db.query(ParticipantSubEvent.participant_id).filter(ParticipantSubEvent.sub_event_id == sub_event_id)),
        )
        .update({Participant.current_status: Availability.AVAILABLE, Participant.current_event_id: None}, synchronize_session=False)
    )
    db.commit()
    log_admin_action(db, admin, "Make sub-event participants available", request.method, request.url.path, {"sub_event_id": sub_event_id, "count": updated})
    notifier.emit("availability_update", {})
    return api_response(message="All participants for this event are now marked as available", count=updated)


@router.get("/admin/participants/{participant_id}")
def get_participant(participant_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    participant = get_or_404(db, Participant, participant_id, "Participant")
    data = ParticipantResponse.model_validate(participant).model_dump()
    names = sub_event_name_map(db)
    data["registered_sub_events"] = [{"id": sub_event_id, "name": names.get(sub_event_id)} for sub_event_id in participant.registered_sub_event_ids]
    return api_response(data=data)


@router.put("/admin/participants/{participant_id}/approve")
def approve(
    participant_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    participant = approve_participant(db, participant_id, notifier)
    log_admin_action(db, admin, "Approve participant", request.method, request.url.path, {"participant_id": participant_id})
    return api_response(data=ParticipantResponse.model_validate(participant), message="Participant approved successfully")


@router.put("/admin/participants/{participant_id}/reject")
def reject(
    participant_id: int,
    request: Request,
    payload: Optional[RejectRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    reason = payload.reason if payload else None
    participant = reject_participant(db, participant_id, reason, notifier)
    log_admin_action(db, admin, "Reject participant", request.method, request.url.path, {"participant_id": participant_id, "reason": reason})
    return api_response(data=ParticipantResponse.model_validate(participant), message="Participant rejected")


@router.put("/admin/participants/{participant_id}/registration-status")
def set_registration_status(
    participant_id: int,
    payload: RegistrationStatusUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    participant = get_or_404(db, Participant, participant_id, "Participant")
    participant.registration_status = payload.registration_status
    if payload.registration_status == RegistrationStatus.APPROVED:
        participant.current_status = Availability.AVAILABLE
    recount_approved(db, participant.registered_sub_event_ids)
    db.commit()
    db.refresh(participant)
    log_admin_action(db, admin, "Override registration status", request.method, request.url.path, {
        "participant_id": participant_id,
        "registration_status": payload.registration_status.value,
    })
    return api_response(
        data=ParticipantResponse.model_validate(participant),
        message=f"Registration status updated to {payload.registration_status.value}",
    )


@router.put("/admin/participants/{participant_id}/current-status")
def set_current_status(
    participant_id: int,
    payload: CurrentStatusUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    participant = get_or_404(db, Participant, participant_id, "Participant")
    participant.current_status = payload.current_status
    if payload.current_status != Availability.BUSY:
        participant.current_event_id = None
    db.commit()
    db.refresh(participant)
    log_admin_action(db, admin, "Override current status", request.method, request.url.path, {
        "participant_id": participant_id,
        "current_status": payload.current_status.value,
    })
    notifier.emit("availability_update", {})
    return api_response(
        data=ParticipantResponse.model_validate(participant),
        message=f"Current status updated to {payload.current_status.value}",
    )


@router.delete("/admin/participants/{participant_id}")
def delete_participant(
    participant_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    participant = get_or_404(db, Participant, participant_id, "Participant")
    sub_event_ids = participant.registered_sub_event_ids
    db.query(GroupMember).filter(GroupMember.participant_id == participant.id).delete(synchronize_session=False)
    if sub_event_ids:
        db.query(SubEvent).filter(SubEvent.id.in_(sub_event_ids), SubEvent.total_registrations > 0).update(
            {SubEvent.total_registrations: SubEvent.total_registrations - 1},
            synchronize_session=False,
        )
    db.delete(participant)
    recount_approved(db, sub_event_ids)
    db.commit()
    log_admin_action(db, admin, "Delete participant", request.method, request.url.path, {"participant_id": participant_id})
    notifier.emit("availability_update", {})
    return api_response(message="Participant deleted successfully")


@router.get("/admin/participants/{participant_id}/history")
def participant_history(participant_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    participant = get_or_404(db, Participant, participant_id, "Participant")
    rounds = (
        db.query(Round)
        .join(round_participants, round_participants.c.round_id == Round.id)
        .filter(round_participants.c.participant_id == participant.id)
        .order_by(Round.created_at.asc(), Round.id.asc())
        .all()
    )
    history = []
    for round_row in rounds:
        member = db.query(GroupMember).filter(
            GroupMember.round_id == round_row.id,
            GroupMember.participant_id == participant.id,
        ).first()
        outcome = "shortlisted"
        if round_row.status == RoundStatus.COMPLETED:
            if participant.id in {winner.id for winner in round_row.winners}:
                outcome = "qualified"
            else:
                outcome = "eliminated" if round_row.is_elimination else "completed"
        elif round_row.status == RoundStatus.ACTIVE:
            outcome = "active"
        history.append({
            "round_id": round_row.id,
            "round_name": round_row.name,
            "round_number": round_row.round_number,
            "sub_event_id": round_row.sub_event_id,
            "sub_event_name": round_row.sub_event.name if round_row.sub_event else None,
            "status": outcome,
            "group_name": member.group.group_name if member else None,
            "date": round_row.start_time or round_row.created_at,
        })
    return api_response(data=history)
