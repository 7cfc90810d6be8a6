from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from judging_service import (
    judge_evaluation_for_group,
    judge_login,
    resolve_judge,
    select_groups_for_next_round,
    submit_evaluation,
)
from models import Evaluation
from realtime import Notifier, get_notifier
from schemas import EvaluationResponse, EvaluationSubmit, GroupResponse, JudgeLoginRequest, JudgeSelectionRequest
from utils import api_response

router = APIRouter()


@router.post("/judge/login")
def login_with_access_code(payload: JudgeLoginRequest, db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    panel, judge = judge_login(db, payload.access_code, notifier)
    return api_response(
        data={
            "panel_id": panel.id,
            "panel_name": panel.panel_name,
            "judge_name": judge.name,
            "judge_email": judge.email,
            "access_code": judge.access_code,
        },
        message="Login successful",
    )


@router.get("/judge/panel/{access_code}")
def judge_panel(access_code: str, db: Session = Depends(get_db)):
    panel, judge = resolve_judge(db, access_code)
    evaluated = {
        group_id for (group_id,) in db.query(Evaluation.group_id).filter(
            Evaluation.panel_id == panel.id,
            Evaluation.judge_email == judge.email,
        ).all()
    }
    return api_response(data={
        "panel": {
            "id": panel.id,
            "panel_name": panel.panel_name,
            "panel_number": panel.panel_number,
            "venue": panel.venue,
            "instructions": panel.instructions,
            "evaluation_parameters": panel.evaluation_parameters,
            "sub_event": {"id": panel.sub_event.id, "name": panel.sub_event.name, "type": panel.sub_event.type.value} if panel.sub_event else None,
            "round": {"id": panel.round.id, "name": panel.round.name, "round_number": panel.round.round_number} if panel.round else None,
        },
        "judge": {"name": judge.name, "email": judge.email},
        "groups": [GroupResponse.model_validate(group) for group in panel.assigned_groups],
        "evaluated_group_ids": sorted(evaluated),
    })


@router.post("/judge/evaluate")
def evaluate_group(payload: EvaluationSubmit, db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    evaluation, group = submit_evaluation(db, payload, notifier)
    return api_response(
        data={
            "evaluation": EvaluationResponse.model_validate(evaluation),
            "group_evaluation_status": group.evaluation_status.value,
            "group_average_score": group.average_score,
        },
        message="Evaluation submitted successfully",
    )


@router.get("/judge/evaluations/{access_code}/{group_id}")
def judge_evaluation(access_code: str, group_id: int, db: Session = Depends(get_db)):
    evaluation = judge_evaluation_for_group(db, access_code, group_id)
    return api_response(data=EvaluationResponse.model_validate(evaluation) if evaluation else None)


@router.post("/judge/select-for-next-round")
def judge_select_groups(payload: JudgeSelectionRequest, db: Session = Depends(get_db)):
    selected = select_groups_for_next_round(db, payload.access_code, payload.selected_group_ids)
    return api_response(message=f"Selected {selected} groups for next round", count=selected)
