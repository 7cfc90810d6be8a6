from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from models import ParticipantSubEvent, SubEvent, SubEventStatus, User
from realtime import ADMIN_ROOM, Notifier, get_notifier
from round_service import approved_registrants
from schemas import ParticipantBrief, RoundResponse, SubEventCreate, SubEventResponse, SubEventUpdate
from security import require_admin
from time_utils import now_utc
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()

DUPLICATE_NAME_MESSAGE = "A sub-event with this name already exists"
REQUIRED_FIELDS = {
    "name", "description", "type", "registration_price", "group_size_min",
    "group_size_max", "panel_count", "is_active_for_registration", "accent_color",
}


def _commit_sub_event(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_NAME_MESSAGE) from exc


@router.get("/admin/subevents")
def list_sub_events(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    sub_events = db.query(SubEvent).order_by(SubEvent.created_at.desc(), SubEvent.id.desc()).all()
    return api_response(data=[SubEventResponse.model_validate(sub_event) for sub_event in sub_events], count=len(sub_events))


@router.get("/admin/subevents/{sub_event_id}")
def get_sub_event(sub_event_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    sub_event = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    data = SubEventResponse.model_validate(sub_event).model_dump()
    data["rounds"] = [RoundResponse.model_validate(round_row).model_dump() for round_row in sub_event.rounds]
    return api_response(data=data)


@router.post("/admin/subevents", status_code=status.HTTP_201_CREATED)
def create_sub_event(
    payload: SubEventCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    if db.query(SubEvent.id).filter(SubEvent.name == payload.name).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_NAME_MESSAGE)
    sub_event = SubEvent(**payload.model_dump())
    db.add(sub_event)
    _commit_sub_event(db)
    db.refresh(sub_event)
    log_admin_action(db, admin, "Create sub-event", request.method, request.url.path, {"sub_event_id": sub_event.id})
    notifier.emit("subevent:created", {"sub_event_id": sub_event.id, "name": sub_event.name}, room=ADMIN_ROOM)
    return api_response(data=SubEventResponse.model_validate(sub_event), message="Sub-event created successfully")


@router.put("/admin/subevents/{sub_event_id}")
def update_sub_event(
    sub_event_id: int,
    payload: SubEventUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    sub_event = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    data = payload.model_dump(exclude_unset=True)
    if data.get("name") and data["name"] != sub_event.name:
        clash = db.query(SubEvent.id).filter(SubEvent.name == data["name"], SubEvent.id != sub_event.id).first()
        if clash:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_NAME_MESSAGE)
    for field, value in data.items():
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(sub_event, field, value)
    if sub_event.group_size_min > sub_event.group_size_max:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="group_size_min cannot exceed group_size_max")
    _commit_sub_event(db)
    db.refresh(sub_event)
    log_admin_action(db, admin, "Update sub-event", request.method, request.url.path, {"sub_event_id": sub_event.id})
    notifier.emit("subevent:updated", {"sub_event_id": sub_event.id, "name": sub_event.name, "status": sub_event.status.value}, room=ADMIN_ROOM)
    return api_response(data=SubEventResponse.model_validate(sub_event), message="Sub-event updated successfully")


@router.delete("/admin/subevents/{sub_event_id}")
def delete_sub_event(
    sub_event_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    sub_event = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    registered = db.query(ParticipantSubEvent.id).filter(ParticipantSubEvent.sub_event_id == sub_event.id).count()
    if registered > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete sub-event. {registered} participants are registered."
        )
    name = sub_event.name
    db.delete(sub_event)
    db.commit()
    log_admin_action(db, admin, "Delete sub-event", request.method, request.url.path, {"sub_event_id": sub_event_id})
    notifier.emit("subevent:deleted", {"sub_event_id": sub_event_id, "name": name}, room=ADMIN_ROOM)
    return api_response(message="Sub-event deleted successfully")


@router.put("/admin/subevents/{sub_event_id}/toggle")
def toggle_registration(sub_event_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    sub_event = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    sub_event.is_active_for_registration = not sub_event.is_active_for_registration
    db.commit()
    db.refresh(sub_event)
    log_admin_action(db, admin, "Toggle sub-event registration", request.method, request.url.path, {
        "sub_event_id": sub_event.id,
        "is_active_for_registration": sub_event.is_active_for_registration,
    })
    state = "enabled" if sub_event.is_active_for_registration else "disabled"
    return api_response(data=SubEventResponse.model_validate(sub_event), message=f"Registration {state} for {sub_event.name}")


@router.get("/admin/subevents/{sub_event_id}/participants")
def sub_event_participants(sub_event_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    participants = approved_registrants(db, sub_event_id)
    return api_response(data=[ParticipantBrief.model_validate(participant) for participant in participants], count=len(participants))


def _transition_sub_event(db: Session, sub_event_id: int, sources, target: SubEventStatus, values: dict, refusal: str) -> SubEvent:
    changed = (
        db.query(SubEvent)
        .filter(SubEvent.id == sub_event_id, SubEvent.status.in_(list(sources)))
        .update({SubEvent.status: target, **values}, synchronize_session=False)
    )
    sub_event = db.query(SubEvent).filter(SubEvent.id == sub_event_id).populate_existing().first()
    if not sub_event:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sub-event not found")
    if not changed:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=refusal)
    db.commit()
    db.refresh(sub_event)
    return sub_event


@router.post("/admin/subevents/{sub_event_id}/start")
def start_sub_event(
    sub_event_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    current = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    refusal = "Event is already active" if current.status == SubEventStatus.ACTIVE else "Cannot start a completed event"
    sub_event = _transition_sub_event(
        db, sub_event_id, [SubEventStatus.NOT_STARTED], SubEventStatus.ACTIVE,
        {SubEvent.actual_start_time: now_utc()}, refusal,
    )
    log_admin_action(db, admin, "Start sub-event", request.method, request.url.path, {"sub_event_id": sub_event.id})
    notifier.emit("subevent:started", {
        "sub_event_id": sub_event.id,
        "name": sub_event.name,
        "actual_start_time": sub_event.actual_start_time,
    })
    return api_response(data=SubEventResponse.model_validate(sub_event), message=f"{sub_event.name} has been started")


@router.post("/admin/subevents/{sub_event_id}/stop")
def stop_sub_event(
    sub_event_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    sub_event = _transition_sub_event(
        db, sub_event_id, [SubEventStatus.ACTIVE], SubEventStatus.COMPLETED,
        {SubEvent.actual_end_time: now_utc()}, "Event is not currently active",
    )
    log_admin_action(db, admin, "Stop sub-event", request.method, request.url.path, {"sub_event_id": sub_event.id})
    notifier.emit("subevent:stopped", {
        "sub_event_id": sub_event.id,
        "name": sub_event.name,
        "actual_end_time": sub_event.actual_end_time,
    })
    return api_response(data=SubEventResponse.model_validate(sub_event), message=f"{sub_event.name} has been stopped")


@router.post("/admin/subevents/{sub_event_id}/restart")
def restart_sub_event(
    sub_event_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    sub_event = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    sub_event.status = SubEventStatus.NOT_STARTED
    sub_event.actual_start_time = None
    sub_event.actual_end_time = None
    db.commit()
    db.refresh(sub_event)
    log_admin_action(db, admin, "Restart sub-event", request.method, request.url.path, {"sub_event_id": sub_event.id})
    notifier.emit("subevent:updated", {"sub_event_id": sub_event.id, "name": sub_event.name, "status": sub_event.status.value})
    return api_response(data=SubEventResponse.model_validate(sub_event), message=f"{sub_event.name} has been reset to not started")
