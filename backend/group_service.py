"""Group formation for group-type sub-events."""
import logging
import random
from typing import List, Optional, Sequence, TypeVar

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import (
    Availability,
    Group,
    GroupMember,
    Panel,
    Participant,
    Round,
    SubEvent,
    SubEventProgress,
    SubEventType,
)
from realtime import Notifier, panel_room, participant_room
from round_service import approved_registrants
from schemas import AutoFormRequest, GroupCreate, GroupUpdate
from time_utils import now_utc
from utils import get_or_404

logger = logging.getLogger(__name__)

T = TypeVar("T")

ELIGIBLE_FOR_GROUPING = (Availability.AVAILABLE, Availability.QUALIFIED)
ALREADY_GROUPED_MESSAGE = "One or more participants are already assigned to another group in this round"


def default_group_size(min_size: int, max_size: int) -> int:
    return (min_size + max_size) // 2


def partition_pool(pool: Sequence[T], target_size: int, min_size: int) -> List[List[T]]:
    """Split ``pool`` into chunks of ``target_size``.

    A trailing chunk smaller than ``min_size`` is dealt round-robin into the
    chunks already formed; it only stands alone when it is the whole pool.
    """
    size = max(target_size, min_size, 1)
    groups: List[List[T]] = []
    for start in range(0, len(pool), size):
        chunk = list(pool[start:start + size])
        if len(chunk) < min_size and groups:
            for index, member in enumerate(chunk):
                groups[index % len(groups)].append(member)
            break
        groups.append(chunk)
    return groups


def next_group_number(db: Session, round_id: int) -> int:
    current = db.query(func.max(Group.group_number)).filter(Group.round_id == round_id).scalar()
    return (current or 0) + 1


def grouped_participant_ids(db: Session, round_id: int, exclude_group_id: Optional[int] = None) -> set:
    query = db.query(GroupMember.participant_id).filter(GroupMember.round_id == round_id)
    if exclude_group_id is not None:
        query = query.filter(GroupMember.group_id != exclude_group_id)
    return {participant_id for (participant_id,) in query.all()}


def resolve_pool(db: Session, sub_event: SubEvent, round_row: Round) -> List[Participant]:
    if round_row.participants:
        return [p for p in round_row.participants if p.current_status in ELIGIBLE_FOR_GROUPING]
    if round_row.round_number == 1:
        return approved_registrants(db, sub_event.id, ELIGIBLE_FOR_GROUPING)
    previous = db.query(Round).filter(
        Round.sub_event_id == sub_event.id,
        Round.round_number == round_row.round_number - 1,
    ).first()
    if not previous:
        return []
    return [p for p in previous.winners if p.current_status in ELIGIBLE_FOR_GROUPING]


def _build_group(round_row: Round, group_number: int, participant_ids: Sequence[int], group_name: Optional[str] = None) -> Group:
    group = Group(
        sub_event_id=round_row.sub_event_id,
        round_id=round_row.id,
        group_number=group_number,
        group_name=group_name or f"Group {group_number}",
    )
    group.members = [GroupMember(round_id=round_row.id, participant_id=participant_id) for participant_id in participant_ids]
    return group


def _commit_groups(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=ALREADY_GROUPED_MESSAGE) from exc


def _load_sub_event_and_round(db: Session, sub_event_id: int, round_id: int):
    sub_event = db.query(SubEvent).filter(SubEvent.id == sub_event_id).first()
    round_row = db.query(Round).filter(Round.id == round_id).first()
    if not sub_event or not round_row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="SubEvent or Round not found")
    if round_row.sub_event_id != sub_event.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Round does not belong to this sub-event")
    return sub_event, round_row


def auto_form_groups(db: Session, payload: AutoFormRequest, rng: Optional[random.Random] = None) -> List[Group]:
    sub_event, round_row = _load_sub_event_and_round(db, payload.sub_event_id, payload.round_id)
    if sub_event.type != SubEventType.GROUP:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This sub-event is not a group event")

    already_grouped = grouped_participant_ids(db, round_row.id)
    pool = [p.id for p in resolve_pool(db, sub_event, round_row) if p.id not in already_grouped]
    if not pool:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No unassigned participants available for this round")

    (rng or random).shuffle(pool)
    target = payload.group_size or default_group_size(sub_event.group_size_min, sub_event.group_size_max)
    chunks = partition_pool(pool, target, sub_event.group_size_min)

    first_number = next_group_number(db, round_row.id)
    groups = [_build_group(round_row, first_number + offset, chunk) for offset, chunk in enumerate(chunks)]
    db.add_all(groups)
    _commit_groups(db)
    for group in groups:
        db.refresh(group)
    logger.info("Formed %d groups from %d participants for round %s", len(groups), len(pool), round_row.id)
    return groups


def _ensure_not_grouped(db: Session, round_id: int, participant_ids: Sequence[int], exclude_group_id: Optional[int] = None) -> None:
    if grouped_participant_ids(db, round_id, exclude_group_id) & set(participant_ids):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ALREADY_GROUPED_MESSAGE)


def _ensure_participants_exist(db: Session, participant_ids: Sequence[int]) -> None:
    found = db.query(func.count(Participant.id)).filter(Participant.id.in_(list(participant_ids))).scalar()
    if found != len(set(participant_ids)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="One or more participants not found")


def create_group(db: Session, payload: GroupCreate) -> Group:
    _, round_row = _load_sub_event_and_round(db, payload.sub_event_id, payload.round_id)
    participant_ids = list(dict.fromkeys(payload.participant_ids))
    _ensure_participants_exist(db, participant_ids)
    _ensure_not_grouped(db, round_row.id, participant_ids)

    group = _build_group(round_row, next_group_number(db, round_row.id), participant_ids, payload.group_name)
    db.add(group)
    _commit_groups(db)
    db.refresh(group)
    return group


def update_group(db: Session, group_id: int, payload: GroupUpdate) -> Group:
    group = get_or_404(db, Group, group_id, "Group")
    fields = payload.model_fields_set

    if payload.participant_ids is not None:
        participant_ids = list(dict.fromkeys(payload.participant_ids))
        _ensure_participants_exist(db, participant_ids)
        _ensure_not_grouped(db, group.round_id, participant_ids, exclude_group_id=group.id)
        current = {member.participant_id: member for member in group.members}
        group.members = [
            current.get(participant_id) or GroupMember(round_id=group.round_id, participant_id=participant_id)
            for participant_id in participant_ids
        ]
    if "panel_id" in fields:
        if payload.panel_id is not None:
            get_or_404(db, Panel, payload.panel_id, "Panel")
        group.panel_id = payload.panel_id
    if payload.group_name:
        group.group_name = payload.group_name
    for field in ("slot_start_time", "slot_end_time"):
        if field in fields:
            setattr(group, field, getattr(payload, field))

    _commit_groups(db)
    db.refresh(group)
    return group


def delete_group(db: Session, group_id: int) -> None:
    group = get_or_404(db, Group, group_id, "Group")
    db.delete(group)
    db.commit()


def assign_panel(db: Session, group_id: int, panel_id: int, notifier: Notifier) -> Group:
    group = get_or_404(db, Group, group_id, "Group")
    panel = get_or_404(db, Panel, panel_id, "Panel")
    group.panel_id = panel.id
    db.commit()
    db.refresh(group)
    notifier.emit("group:assigned", {"panel_id": panel.id, "group_ids": [group.id]}, room=panel_room(panel.id))
    return group


def confirm_selections(db: Session, round_id: int, selected_group_ids: Sequence[int]) -> int:
    get_or_404(db, Round, round_id, "Round")
    selected = list(selected_group_ids)
    confirmed = 0
    if selected:
        confirmed = db.query(Group).filter(Group.round_id == round_id, Group.id.in_(selected)).update(
            {Group.selected_for_next_round: True, Group.admin_confirmed: True},
            synchronize_session=False,
        )
    others = db.query(Group).filter(Group.round_id == round_id)
    if selected:
        others = others.filter(~Group.id.in_(selected))
    others.update({Group.selected_for_next_round: False, Group.admin_confirmed: True}, synchronize_session=False)
    db.commit()
    return confirmed


def notify_group(db: Session, group_id: int, notifier: Notifier) -> dict:
    group = get_or_404(db, Group, group_id, "Group")
    round_row = group.round
    sub_event = group.sub_event
    sub_event_name = sub_event.name if sub_event else "Event"
    venue = (group.panel.venue if group.panel else None) or (round_row.venue if round_row else None) or "the designated venue"

    members = group.participants
    for participant in members:
        participant.set_sub_event_status(
            group.sub_event_id,
            SubEventProgress.ACTIVE,
            round_row.id if round_row else None,
            round_row.round_number if round_row else None,
        )
        participant.current_status = Availability.BUSY
        participant.current_event_id = group.sub_event_id
    db.commit()

    for participant in members:
        room = participant_room(participant.id)
        notifier.emit("participant:notification", {
            "type": "group_info",
            "title": f"Report for {sub_event_name}",
            "message": f"Hello {participant.full_name}, please reach {venue} as soon as possible; your slot starts in 2 minutes. Late arrivals will not be allowed.",
            "location": venue,
            "group_name": group.group_name,
            "round_name": round_row.name if round_row else None,
            "sub_event_name": sub_event_name,
            "timestamp": now_utc(),
        }, room=room)
        notifier.emit("participant:status_updated", {
            "message": f"Your round for {sub_event_name} is starting now!",
            "status": "busy",
        }, room=room)
    notifier.emit("availability_update", {})
    logger.info("Notified %d members of group %s", len(members), group.id)
    return {"venue": venue, "sub_event": sub_event_name, "notified": len(members)}
