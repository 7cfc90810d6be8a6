"""Panels, judge access codes and evaluation scoring."""
import logging
import secrets
import string
from typing import List, Optional, Sequence, Set, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import (
    DEFAULT_EVALUATION_PARAMETERS,
    Evaluation,
    EvaluationStatus,
    Group,
    Panel,
    PanelJudge,
    Round,
    SubEvent,
)
from realtime import ADMIN_ROOM, Notifier, panel_room
from schemas import EvaluationSubmit, JudgeInput, PanelCreate, PanelUpdate
from time_utils import now_utc
from utils import get_or_404

logger = logging.getLogger(__name__)

ACCESS_CODE_LENGTH = 8
ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_access_code(db: Session, reserved: Optional[Set[str]] = None) -> str:
    reserved = reserved if reserved is not None else set()
    while True:
        code = "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))
        if code in reserved:
            continue
        if db.query(PanelJudge.id).filter(PanelJudge.access_code == code).first():
            continue
        reserved.add(code)
        return code


def _build_judges(db: Session, judges: Sequence[JudgeInput], keep_codes: Optional[dict] = None) -> List[PanelJudge]:
    keep_codes = keep_codes or {}
    reserved: Set[str] = set(keep_codes.values())
    rows = []
    for judge in judges:
        code = keep_codes.get(judge.email) or generate_access_code(db, reserved)
        rows.append(PanelJudge(name=judge.name, email=judge.email, phone=judge.phone, access_code=code))
    return rows


def _commit_panel(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Judge access code collision; please retry") from exc


def create_panel(db: Session, payload: PanelCreate, notifier: Notifier) -> Panel:
    sub_event = get_or_404(db, SubEvent, payload.sub_event_id, "Sub-event")
    if payload.round_id is not None:
        round_row = get_or_404(db, Round, payload.round_id, "Round")
        if round_row.sub_event_id != sub_event.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Round does not belong to this sub-event")

    panel_number = payload.panel_number
    if panel_number is None:
        current = db.query(func.max(Panel.panel_number)).filter(
            Panel.sub_event_id == sub_event.id,
            Panel.round_id == payload.round_id,
        ).scalar()
        panel_number = (current or 0) + 1

    parameters = (
        [parameter.model_dump() for parameter in payload.evaluation_parameters]
        if payload.evaluation_parameters else [dict(parameter) for parameter in DEFAULT_EVALUATION_PARAMETERS]
    )
    panel = Panel(
        sub_event_id=sub_event.id,
        round_id=payload.round_id,
        panel_number=panel_number,
        panel_name=payload.panel_name or f"Panel {panel_number}",
        evaluation_parameters=parameters,
        venue=payload.venue,
        instructions=payload.instructions,
    )
    panel.judges = _build_judges(db, payload.judges)
    db.add(panel)
    _commit_panel(db)
    db.refresh(panel)
    logger.info("Created panel %s with %d judges for sub-event %s", panel.id, len(panel.judges), sub_event.id)

    notifier.emit("panel:created", {
        "panel_id": panel.id,
        "panel_name": panel.panel_name,
        "sub_event_id": panel.sub_event_id,
        "round_id": panel.round_id,
    }, room=ADMIN_ROOM)
    return panel


def update_panel(db: Session, panel_id: int, payload: PanelUpdate) -> Panel:
    panel = get_or_404(db, Panel, panel_id, "Panel")
    data = payload.model_dump(exclude_unset=True, exclude={"judges", "evaluation_parameters"})
    for field, value in data.items():
        if value is not None:
            setattr(panel, field, value)
    if payload.evaluation_parameters is not None:
        panel.evaluation_parameters = [parameter.model_dump() for parameter in payload.evaluation_parameters]
    if payload.judges is not None:
        # Judges that stay on the panel keep their access codes
        keep_codes = {judge.email: judge.access_code for judge in panel.judges}
        panel.judges = []
        db.flush()
        panel.judges = _build_judges(db, payload.judges, keep_codes)
    _commit_panel(db)
    db.refresh(panel)
    return panel


def regenerate_access_codes(db: Session, panel_id: int) -> Panel:
    panel = get_or_404(db, Panel, panel_id, "Panel")
    reserved: Set[str] = set()
    for judge in panel.judges:
        judge.access_code = generate_access_code(db, reserved)
        judge.has_accessed = False
        judge.last_accessed_at = None
    _commit_panel(db)
    db.refresh(panel)
    return panel


def delete_panel(db: Session, panel_id: int) -> None:
    panel = get_or_404(db, Panel, panel_id, "Panel")
    db.query(Group).filter(Group.panel_id == panel.id).update({Group.panel_id: None}, synchronize_session=False)
    db.query(Evaluation).filter(Evaluation.panel_id == panel.id).delete(synchronize_session=False)
    db.delete(panel)
    db.commit()


def assign_groups(db: Session, panel_id: int, group_ids: Sequence[int], notifier: Notifier) -> Panel:
    panel = get_or_404(db, Panel, panel_id, "Panel")
    wanted = list(dict.fromkeys(group_ids))
    groups = db.query(Group).filter(Group.id.in_(wanted)).all() if wanted else []
    if len(groups) != len(wanted):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="One or more groups not found")
    for group in groups:
        if group.sub_event_id != panel.sub_event_id or (panel.round_id is not None and group.round_id != panel.round_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Groups must belong to the panel's sub-event and round")

    released = db.query(Group).filter(Group.panel_id == panel.id)
    if panel.round_id is not None:
        released = released.filter(Group.round_id == panel.round_id)
    if wanted:
        released = released.filter(~Group.id.in_(wanted))
    released.update({Group.panel_id: None}, synchronize_session=False)
    for group in groups:
        group.panel_id = panel.id
    db.commit()
    db.refresh(panel)
    logger.info("Assigned %d groups to panel %s", len(groups), panel.id)

    notifier.emit("group:assigned", {"panel_id": panel.id, "group_ids": wanted}, room=panel_room(panel.id))
    return panel


def resolve_judge(db: Session, access_code: str) -> Tuple[Panel, PanelJudge]:
    code = (access_code or "").strip().upper()
    judge = db.query(PanelJudge).filter(PanelJudge.access_code == code).first() if code else None
    if not judge:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access code")
    return judge.panel, judge


def judge_login(db: Session, access_code: str, notifier: Notifier) -> Tuple[Panel, PanelJudge]:
    panel, judge = resolve_judge(db, access_code)
    judge.has_accessed = True
    judge.last_accessed_at = now_utc()
    db.commit()
    db.refresh(judge)
    logger.info("Judge %s logged in to panel %s", judge.email, panel.id)

    notifier.emit("judge:logged_in", {
        "panel_id": panel.id,
        "panel_name": panel.panel_name,
        "judge_name": judge.name,
        "judge_email": judge.email,
        "accessed_at": judge.last_accessed_at,
    }, room=ADMIN_ROOM)
    return panel, judge


def score_totals(payload: EvaluationSubmit) -> Tuple[float, float]:
    """Judge-supplied totals win when they carry a positive maximum; otherwise sum weighted parameter scores."""
    if payload.max_total_score and payload.max_total_score > 0:
        return float(payload.total_score or 0), float(payload.max_total_score)
    total = sum(entry.score * entry.weight for entry in payload.scores)
    maximum = sum(entry.max_score * entry.weight for entry in payload.scores)
    return float(total), float(maximum)


def refresh_group_progress(db: Session, group: Group, panel: Panel) -> int:
    db.flush()
    evaluations = db.query(Evaluation).filter(
        Evaluation.group_id == group.id,
        Evaluation.panel_id == panel.id,
    ).all()
    judges_done = {evaluation.judge_email for evaluation in evaluations}
    if len(judges_done) >= len(panel.judges):
        group.evaluation_status = EvaluationStatus.COMPLETED
    else:
        group.evaluation_status = EvaluationStatus.IN_PROGRESS
    percentages = [evaluation.percentage or 0 for evaluation in evaluations]
    group.average_score = sum(percentages) / len(percentages) if percentages else 0.0
    return len(judges_done)


def submit_evaluation(db: Session, payload: EvaluationSubmit, notifier: Notifier) -> Tuple[Evaluation, Group]:
    panel, judge = resolve_judge(db, payload.access_code)
    group = get_or_404(db, Group, payload.group_id, "Group")
    if group.panel_id != panel.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This group is not assigned to your panel")

    outsiders = {rating.participant_id for rating in payload.participant_ratings} - set(group.participant_ids)
    if outsiders:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ratings can only be given to members of this group")

    total, maximum = score_totals(payload)
    evaluation = db.query(Evaluation).filter(
        Evaluation.group_id == group.id,
        Evaluation.panel_id == panel.id,
        Evaluation.judge_email == judge.email,
    ).first()
    if evaluation is None:
        evaluation = Evaluation(
            group_id=group.id,
            panel_id=panel.id,
            round_id=group.round_id,
            judge_email=judge.email,
            judge_name=judge.name,
        )
        db.add(evaluation)
    evaluation.scores = [entry.model_dump() for entry in payload.scores]
    evaluation.total_score = total
    evaluation.max_total_score = maximum
    evaluation.comments = payload.comments or ""
    evaluation.recommend_for_next_round = payload.recommend_for_next_round
    evaluation.participant_ratings = [rating.model_dump() for rating in payload.participant_ratings]
    evaluation.submitted_at = now_utc()

    evaluation_count = refresh_group_progress(db, group, panel)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Evaluation was submitted concurrently; please retry") from exc
    db.refresh(evaluation)
    db.refresh(group)
    logger.info("Evaluation by %s recorded for group %s (%d/%d judges)", judge.email, group.id, evaluation_count, len(panel.judges))

    notifier.emit("evaluation:submitted", {
        "evaluation_id": evaluation.id,
        "group_id": group.id,
        "group_name": group.group_name,
        "panel_id": panel.id,
        "panel_name": panel.panel_name,
        "judge_name": judge.name,
        "percentage": evaluation.percentage,
        "evaluation_status": group.evaluation_status.value,
        "average_score": group.average_score,
    }, room=ADMIN_ROOM)
    notifier.emit("evaluation:updated", {
        "group_id": group.id,
        "evaluation_status": group.evaluation_status.value,
        "evaluation_count": evaluation_count,
        "total_judges": len(panel.judges),
    }, room=panel_room(panel.id))
    return evaluation, group


def judge_evaluation_for_group(db: Session, access_code: str, group_id: int) -> Optional[Evaluation]:
    panel, judge = resolve_judge(db, access_code)
    return db.query(Evaluation).filter(
        Evaluation.group_id == group_id,
        Evaluation.panel_id == panel.id,
        Evaluation.judge_email == judge.email,
    ).first()


def select_groups_for_next_round(db: Session, access_code: str, group_ids: Sequence[int]) -> int:
    panel, _ = resolve_judge(db, access_code)
    if not group_ids:
        return 0
    selected = db.query(Group).filter(Group.id.in_(list(group_ids)), Group.panel_id == panel.id).update(
        {Group.selected_for_next_round: True},
        synchronize_session=False,
    )
    db.commit()
    return selected
