from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from database import get_db
from exports import attendance_csv, attendance_html, attendance_rows, file_response, render_html_to_pdf, sub_event_name_map
from models import Participant, ParticipantSubEvent, SubEvent, User
from schemas import AttendanceMark, AttendanceRecord, BulkAttendanceMark
from security import require_admin
from time_utils import now_utc
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()


def _marker_names(db: Session) -> dict:
    return {user_id: name for user_id, name in db.query(User.id, User.name).all()}


def _search_filter(query, search: Optional[str]):
    if not search:
        return query
    pattern = f"%{search.strip()}%"
    return query.filter(or_(
        Participant.full_name.ilike(pattern),
        Participant.email.ilike(pattern),
        Participant.college.ilike(pattern),
    ))


def _sub_event_participants(db: Session, sub_event_id: int, search: Optional[str] = None):
    query = db.query(Participant).filter(
        Participant.id.in_(db.query(ParticipantSubEvent.participant_id).filter(ParticipantSubEvent.sub_event_id == sub_event_id))
    )
    return _search_filter(query, search).order_by(Participant.full_name).all()


def _records(rows: list) -> list:
    return [
        AttendanceRecord(
            id=row["participant"].id,
            full_name=row["participant"].full_name,
            email=row["participant"].email,
            mobile=row["participant"].mobile,
            college=row["participant"].college,
            branch=row["participant"].branch,
            year=row["participant"].year,
            chest_number=row["participant"].chest_number,
            sub_events=row["sub_events"],
            is_present=row["is_present"],
            marked_at=row["marked_at"],
            marked_by=row["marked_by"],
        )
        for row in rows
    ]


def _stats(rows: list) -> dict:
    present = sum(1 for row in rows if row["is_present"])
    return {"total": len(rows), "present": present, "absent": len(rows) - present}


@router.get("/admin/attendance/overall")
def overall_attendance(
    search: Optional[str] = None,
    present: Optional[bool] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = _search_filter(db.query(Participant), search)
    if present is not None:
        query = query.filter(Participant.is_present == present)
    rows = attendance_rows(query.order_by(Participant.full_name).all(), sub_event_name_map(db), _marker_names(db))

    total = db.query(Participant).count()
    present_count = db.query(Participant).filter(Participant.is_present == True).count()  # noqa: E712
    return api_response(
        data=_records(rows),
        count=len(rows),
        stats={"total": total, "present": present_count, "absent": total - present_count},
    )


@router.post("/admin/attendance/overall/mark")
def mark_overall(payload: AttendanceMark, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    updated = db.query(Participant).filter(Participant.id.in_(payload.participant_ids)).update(
        {Participant.is_present: payload.is_present, Participant.marked_at: now_utc(), Participant.marked_by_id: admin.id},
        synchronize_session=False,
    )
    db.commit()
    log_admin_action(db, admin, "Mark overall attendance", request.method, request.url.path, {
        "participant_ids": payload.participant_ids,
        "is_present": payload.is_present,
    })
    return api_response(message=f"Attendance marked for {updated} participant(s)", count=updated)


@router.get("/admin/attendance/subevent/{sub_event_id}")
def sub_event_attendance(
    sub_event_id: int,
    search: Optional[str] = None,
    present: Optional[bool] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    sub_event = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    rows = attendance_rows(_sub_event_participants(db, sub_event_id, search), sub_event_name_map(db), _marker_names(db), sub_event_id)
    stats = _stats(rows)
    if present is not None:
        rows = [row for row in rows if row["is_present"] == present]
    return api_response(
        data=_records(rows),
        count=len(rows),
        stats=stats,
        sub_event={"id": sub_event.id, "name": sub_event.name},
    )


def _mark_sub_event(db: Session, sub_event_id: int, participant_ids, is_present: bool, admin: User) -> int:
    query = db.query(ParticipantSubEvent).filter(ParticipantSubEvent.sub_event_id == sub_event_id)
    if participant_ids is not None:
        query = query.filter(ParticipantSubEvent.participant_id.in_(list(participant_ids)))
    updated = query.update(
        {
            ParticipantSubEvent.is_present: is_present,
            ParticipantSubEvent.marked_at: now_utc(),
            ParticipantSubEvent.marked_by_id: admin.id,
        },
        synchronize_session=False,
    )
    db.commit()
    return updated


@router.post("/admin/attendance/subevent/{sub_event_id}/mark")
def mark_sub_event(
    sub_event_id: int,
    payload: AttendanceMark,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    sub_event = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    updated = _mark_sub_event(db, sub_event.id, payload.participant_ids, payload.is_present, admin)
    log_admin_action(db, admin, "Mark sub-event attendance", request.method, request.url.path, {
        "sub_event_id": sub_event.id,
        "participant_ids": payload.participant_ids,
        "is_present": payload.is_present,
    })
    return api_response(message=f"Attendance marked for {updated} participant(s) in {sub_event.name}", count=updated)


@router.post("/admin/attendance/bulk")
def bulk_mark(payload: BulkAttendanceMark, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if payload.type == "overall":
        updated = db.query(Participant).update(
            {Participant.is_present: payload.is_present, Participant.marked_at: now_utc(), Participant.marked_by_id: admin.id},
            synchronize_session=False,
        )
        db.commit()
    else:
        sub_event = get_or_404(db, SubEvent, payload.sub_event_id, "Sub-event")
        updated = _mark_sub_event(db, sub_event.id, None, payload.is_present, admin)
    log_admin_action(db, admin, "Bulk mark attendance", request.method, request.url.path, {
        "type": payload.type,
        "sub_event_id": payload.sub_event_id,
        "is_present": payload.is_present,
    })
    label = "present" if payload.is_present else "absent"
    return api_response(message=f"Marked all participants as {label}", count=updated)


@router.get("/admin/attendance/export/{file_format}")
def export_attendance(
    file_format: str,
    export_type: str = Query("overall", alias="type", pattern="^(overall|subevent)$"),
    sub_event_id: Optional[int] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if file_format not in {"pdf", "csv", "html"}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid format. Use pdf, csv or html")

    names = sub_event_name_map(db)
    markers = _marker_names(db)
    sub_event = None
    if export_type == "subevent" and sub_event_id is not None:
        sub_event = get_or_404(db, SubEvent, sub_event_id, "Sub-event")
        rows = attendance_rows(_sub_event_participants(db, sub_event.id), names, markers, sub_event.id)
        title = f"Attendance Report - {sub_event.name}"
        basename = f"attendance-subevent-{sub_event.id}"
    else:
        rows = attendance_rows(db.query(Participant).order_by(Participant.full_name).all(), names, markers)
        title = "Overall Attendance Report"
        basename = "attendance-overall"

    if file_format == "csv":
        return file_response(attendance_csv(rows), "csv", basename)
    html = attendance_html(rows, title, sub_event)
    if file_format == "html":
        return file_response(html.encode("utf-8"), "html", basename)
    return file_response(render_html_to_pdf(html), "pdf", basename)
