from collections import Counter as Tally

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from models import Availability, Participant, ParticipantSubEvent, RegistrationStatus, Round, RoundStatus, SubEvent, User
from security import require_admin
from time_utils import ensure_timezone
from utils import api_response

router = APIRouter()


@router.get("/admin/analytics")
def analytics(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    total = db.query(Participant).count()
    approved = db.query(Participant).filter(Participant.registration_status == RegistrationStatus.APPROVED).count()

    trend = Tally(
        ensure_timezone(created_at).date().isoformat()
        for (created_at,) in db.query(Participant.created_at).all()
        if created_at is not None
    )
    trend_data = [{"date": date, "count": count} for date, count in sorted(trend.items())]

    availability = dict(
        db.query(Participant.current_status, func.count(Participant.id)).group_by(Participant.current_status).all()
    )
    rejected = db.query(Participant).filter(Participant.registration_status == RegistrationStatus.REJECTED).count()
    status_distribution = [
        {"name": "Available", "value": availability.get(Availability.AVAILABLE, 0)},
        {"name": "Busy", "value": availability.get(Availability.BUSY, 0)},
        {"name": "Waiting", "value": availability.get(Availability.REGISTERED, 0)},
        {"name": "Qualified", "value": availability.get(Availability.QUALIFIED, 0)},
        {"name": "Rejected", "value": rejected},
    ]

    approved_per_event = dict(
        db.query(ParticipantSubEvent.sub_event_id, func.count(ParticipantSubEvent.id))
        .join(Participant, Participant.id == ParticipantSubEvent.participant_id)
        .filter(Participant.registration_status == RegistrationStatus.APPROVED)
        .group_by(ParticipantSubEvent.sub_event_id)
        .all()
    )
    sub_events = db.query(SubEvent).all()
    popularity = sorted(
        (
            {"name": sub_event.name, "registrations": approved_per_event.get(sub_event.id, 0), "capacity": sub_event.max_participants or 0}
            for sub_event in sub_events
        ),
        key=lambda item: item["registrations"],
        reverse=True,
    )

    return api_response(data={
        "total_participants": total,
        "approved_participants": approved,
        "total_sub_events": len(sub_events),
        "active_rounds": db.query(Round).filter(Round.status == RoundStatus.ACTIVE).count(),
        "trend_data": trend_data,
        "status_distribution": status_distribution,
        "sub_event_popularity": popularity,
    })
