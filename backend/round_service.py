"""Round lifecycle: creation, start/end, shortlisting and promotion between rounds.

Every operation that touches several rows (round membership plus the
participants' availability and per-sub-event progress) writes them in one
session and commits once, so a failure leaves nothing half-applied.
Notifications go out only after the commit.
"""
import logging
from typing import List, Sequence, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import (
    Availability,
    Evaluation,
    Group,
    GroupMember,
    Panel,
    PanelJudge,
    Participant,
    ParticipantSubEvent,
    RegistrationStatus,
    Round,
    RoundStatus,
    SubEvent,
    SubEventProgress,
)
from realtime import Notifier, participant_room, round_room, subevent_room
from schemas import RoundCreate, RoundUpdate
from time_utils import now_utc
from utils import get_or_404

logger = logging.getLogger(__name__)

DUPLICATE_ROUND_MESSAGE = "Round number already exists for this event"


def approved_registrants(db: Session, sub_event_id: int, availability: Sequence[Availability] = ()) -> List[Participant]:
    query = (
        db.query(Participant)
        .join(ParticipantSubEvent, ParticipantSubEvent.participant_id == Participant.id)
        .filter(
            ParticipantSubEvent.sub_event_id == sub_event_id,
            Participant.registration_status == RegistrationStatus.APPROVED,
        )
    )
    if availability:
        query = query.filter(Participant.current_status.in_(list(availability)))
    return query.order_by(Participant.id).all()


def _load_participants(db: Session, participant_ids: Sequence[int]) -> List[Participant]:
    wanted = set(participant_ids)
    participants = db.query(Participant).filter(Participant.id.in_(list(wanted))).order_by(Participant.id).all()
    if len(participants) != len(wanted):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="One or more participants not found")
    return participants


def create_round(db: Session, payload: RoundCreate) -> Round:
    sub_event = get_or_404(db, SubEvent, payload.sub_event_id, "Sub-event")
    duplicate = db.query(Round.id).filter(
        Round.sub_event_id == sub_event.id,
        Round.round_number == payload.round_number,
    ).first()
    if duplicate:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_ROUND_MESSAGE)

    # Round 1 starts with everyone already approved for the sub-event
    seeded = approved_registrants(db, sub_event.id) if payload.round_number == 1 else []

    round_row = Round(
        sub_event_id=sub_event.id,
        round_number=payload.round_number,
        name=payload.name,
        type=sub_event.type,
        is_elimination=payload.is_elimination,
        venue=payload.venue,
        instructions=payload.instructions,
        participants=seeded,
    )
    db.add(round_row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_ROUND_MESSAGE) from exc
    db.refresh(round_row)
    logger.info("Created round %s (#%s) for sub-event %s with %d participants", round_row.id, round_row.round_number, sub_event.id, len(seeded))
    return round_row


def add_participants(db: Session, round_id: int, participant_ids: Sequence[int]) -> Round:
    round_row = get_or_404(db, Round, round_id, "Round")
    existing = {participant.id for participant in round_row.participants}
    for participant in _load_participants(db, participant_ids):
        if participant.id not in existing:
            round_row.participants.append(participant)
            existing.add(participant.id)
    db.commit()
    db.refresh(round_row)
    return round_row


def update_round(db: Session, round_id: int, payload: RoundUpdate) -> Round:
    round_row = get_or_404(db, Round, round_id, "Round")
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(round_row, field, value)
    db.commit()
    db.refresh(round_row)
    return round_row


def set_winners(db: Session, round_id: int, winner_ids: Sequence[int]) -> Round:
    round_row = get_or_404(db, Round, round_id, "Round")
    round_row.winners = _load_participants(db, winner_ids) if winner_ids else []
    db.commit()
    db.refresh(round_row)
    return round_row


def _transition_round(db: Session, round_id: int, source: RoundStatus, target: RoundStatus, stamp: dict) -> Round:
    changed = (
        db.query(Round)
        .filter(Round.id == round_id, Round.status == source)
        .update({Round.status: target, **stamp}, synchronize_session=False)
    )
    round_row = db.query(Round).filter(Round.id == round_id).populate_existing().first()
    if not round_row:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Round not found")
    if not changed:
        current = round_row.status.value
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Round is {current}; only a {source.value} round can be moved to {target.value}"
        )
    return round_row


def start_round(db: Session, round_id: int, notifier: Notifier) -> Round:
    round_row = _transition_round(db, round_id, RoundStatus.PENDING, RoundStatus.ACTIVE, {Round.start_time: now_utc()})
    for participant in round_row.participants:
        participant.current_status = Availability.BUSY
        participant.current_event_id = round_row.sub_event_id
        participant.set_sub_event_status(round_row.sub_event_id, SubEventProgress.ACTIVE, round_row.id, round_row.round_number)
    db.commit()
    db.refresh(round_row)
    logger.info("Round %s started with %d participants", round_row.id, len(round_row.participants))

    notifier.emit("availability_update", {})
    started = {"round_id": round_row.id, "name": round_row.name, "sub_event_id": round_row.sub_event_id}
    notifier.emit("round:started", started, room=subevent_room(round_row.sub_event_id))
    notifier.emit("round:started", started, room=round_room(round_row.id))
    for participant in round_row.participants:
        room = participant_room(participant.id)
        notifier.emit("participant:status_updated", {"message": f'The round "{round_row.name}" has started!', "status": "busy"}, room=room)
        notifier.emit("participant:notification", {
            "type": "round_started",
            "title": "Round Started!",
            "message": f'The round "{round_row.name}" has officially begun. Check your dashboard for venue details.',
            "timestamp": now_utc(),
        }, room=room)
    return round_row


def end_round(db: Session, round_id: int, notifier: Notifier) -> Round:
    round_row = _transition_round(db, round_id, RoundStatus.ACTIVE, RoundStatus.COMPLETED, {Round.end_time: now_utc()})
    released = []
    for participant in round_row.participants:
        # A result recorded before the round closed must survive
        if participant.current_status in (Availability.QUALIFIED, Availability.REJECTED):
            continue
        participant.current_status = Availability.AVAILABLE
        participant.current_event_id = None
        released.append(participant)
    db.commit()
    db.refresh(round_row)
    logger.info("Round %s ended; released %d participants", round_row.id, len(released))

    notifier.emit("availability_update", {})
    ended = {"round_id": round_row.id, "name": round_row.name, "sub_event_id": round_row.sub_event_id}
    notifier.emit("round:ended", ended, room=subevent_room(round_row.sub_event_id))
    notifier.emit("round:ended", ended, room=round_room(round_row.id))
    for participant in round_row.participants:
        room = participant_room(participant.id)
        notifier.emit("participant:status_updated", {"message": f'The round "{round_row.name}" has ended.', "status": "available"}, room=room)
        notifier.emit("participant:notification", {
            "type": "round_ended",
            "title": "Round Concluded",
            "message": f'The round "{round_row.name}" has finished. Results will be announced soon.',
            "timestamp": now_utc(),
        }, room=room)
    return round_row


def selected_participant_ids(evaluations: Sequence[Evaluation]) -> List[int]:
    """Participants flagged for the next round by at least one judge."""
    selected = set()
    for evaluation in evaluations:
        for rating in evaluation.participant_ratings or []:
            if rating.get("selected_for_next_round"):
                selected.add(int(rating["participant_id"]))
    return sorted(selected)


def promote_selected(db: Session, round_id: int, notifier: Notifier) -> Tuple[Round, List[int]]:
    current = get_or_404(db, Round, round_id, "Round")
    evaluations = db.query(Evaluation).filter(Evaluation.round_id == current.id).all()
    competing = {participant.id for participant in current.participants}
    competing.update(participant_id for (participant_id,) in db.query(GroupMember.participant_id).filter(GroupMember.round_id == current.id).all())
    selected_ids = [participant_id for participant_id in selected_participant_ids(evaluations) if participant_id in competing]

    next_number = current.round_number + 1
    next_round = db.query(Round).filter(
        Round.sub_event_id == current.sub_event_id,
        Round.round_number == next_number,
    ).first()
    if not next_round:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Next round (Round {next_number}) not found. Please create it first."
        )

    promoted = db.query(Participant).filter(Participant.id.in_(selected_ids)).order_by(Participant.id).all() if selected_ids else []
    promoted_ids = {participant.id for participant in promoted}

    in_next_round = {participant.id for participant in next_round.participants}
    for participant in promoted:
        if participant.id not in in_next_round:
            next_round.participants.append(participant)
        participant.current_status = Availability.QUALIFIED
        participant.set_sub_event_status(current.sub_event_id, SubEventProgress.QUALIFIED)
    current.winners = promoted

    for participant in current.participants:
        if participant.id not in promoted_ids:
            participant.set_sub_event_status(current.sub_event_id, SubEventProgress.ELIMINATED)

    db.commit()
    db.refresh(next_round)
    logger.info("Promoted %d participants from round %s to round %s", len(promoted), current.id, next_round.id)

    for participant in promoted:
        room = participant_room(participant.id)
        notifier.emit("participant:status_updated", {
            "message": f"Congratulations! You have qualified for Round {next_number}!",
            "status": "qualified",
        }, room=room)
        notifier.emit("participant:notification", {
            "type": "promotion",
            "title": "Qualified for Next Round!",
            "message": f"Great job! You have been promoted to {next_round.name}. Check your dashboard for the new schedule.",
            "timestamp": now_utc(),
        }, room=room)
    notifier.emit("availability_update", {})
    return next_round, sorted(promoted_ids)


def delete_round(db: Session, round_id: int, notifier: Notifier) -> None:
    round_row = get_or_404(db, Round, round_id, "Round")
    sub_event_id = round_row.sub_event_id

    group_ids = [group_id for (group_id,) in db.query(Group.id).filter(Group.round_id == round_row.id).all()]
    panel_ids = [panel_id for (panel_id,) in db.query(Panel.id).filter(Panel.round_id == round_row.id).all()]
    db.query(Evaluation).filter(Evaluation.round_id == round_row.id).delete(synchronize_session=False)
    if group_ids:
        db.query(GroupMember).filter(GroupMember.group_id.in_(group_ids)).delete(synchronize_session=False)
        db.query(Group).filter(Group.id.in_(group_ids)).delete(synchronize_session=False)
    if panel_ids:
        db.query(PanelJudge).filter(PanelJudge.panel_id.in_(panel_ids)).delete(synchronize_session=False)
        db.query(Panel).filter(Panel.id.in_(panel_ids)).delete(synchronize_session=False)

    if round_row.status == RoundStatus.ACTIVE:
        for participant in round_row.participants:
            if participant.current_event_id == sub_event_id:
                participant.current_status = Availability.AVAILABLE
                participant.current_event_id = None

    db.query(ParticipantSubEvent).filter(ParticipantSubEvent.current_round_id == round_row.id).update(
        {ParticipantSubEvent.current_round_id: None},
        synchronize_session=False,
    )
    db.delete(round_row)
    db.commit()
    logger.info("Deleted round %s with %d groups and %d panels", round_id, len(group_ids), len(panel_ids))
    notifier.emit("availability_update", {})
