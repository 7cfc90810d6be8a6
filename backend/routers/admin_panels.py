from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

import judging_service
from database import get_db
from models import Evaluation, Panel, Round, SubEvent, User
from realtime import Notifier, get_notifier
from schemas import AssignGroupsRequest, EvaluationResponse, GroupResponse, PanelCreate, PanelResponse, PanelUpdate
from security import require_admin
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()


@router.post("/admin/panels", status_code=status.HTTP_201_CREATED)
def create_panel(
    payload: PanelCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    panel = judging_service.create_panel(db, payload, notifier)
    log_admin_action(db, admin, "Create panel", request.method, request.url.path, {"panel_id": panel.id})
    return api_response(data=PanelResponse.model_validate(panel), message="Panel created successfully")


@router.get("/admin/panels/round/{round_id}/evaluations")
def round_evaluations(round_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    get_or_404(db, Round, round_id, "Round")
    evaluations = db.query(Evaluation).filter(Evaluation.round_id == round_id).order_by(Evaluation.group_id, Evaluation.id).all()
    return api_response(data=[EvaluationResponse.model_validate(evaluation) for evaluation in evaluations], count=len(evaluations))


@router.get("/admin/panels/round/{round_id}")
def panels_for_round(round_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    get_or_404(db, Round, round_id, "Round")
    panels = db.query(Panel).filter(Panel.round_id == round_id).order_by(Panel.panel_number).all()
    return api_response(data=[PanelResponse.model_validate(panel) for panel in panels], count=len(panels))


@router.get("/admin/panels/subevent/{sub_event_id}")
def panels_for_sub_event(sub_event_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    get_or_404(db, SubEvent, sub_event_id, "Sub-event")
    panels = db.query(Panel).filter(Panel.sub_event_id == sub_event_id).order_by(Panel.panel_number).all()
    return api_response(data=[PanelResponse.model_validate(panel) for panel in panels], count=len(panels))


@router.get("/admin/panels/{panel_id}")
def get_panel(panel_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    panel = get_or_404(db, Panel, panel_id, "Panel")
    data = PanelResponse.model_validate(panel).model_dump()
    data["assigned_groups"] = [GroupResponse.model_validate(group).model_dump() for group in panel.assigned_groups]
    return api_response(data=data)


@router.put("/admin/panels/{panel_id}")
def update_panel(panel_id: int, payload: PanelUpdate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    panel = judging_service.update_panel(db, panel_id, payload)
    log_admin_action(db, admin, "Update panel", request.method, request.url.path, {"panel_id": panel_id})
    return api_response(data=PanelResponse.model_validate(panel), message="Panel updated successfully")


@router.delete("/admin/panels/{panel_id}")
def delete_panel(panel_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    judging_service.delete_panel(db, panel_id)
    log_admin_action(db, admin, "Delete panel", request.method, request.url.path, {"panel_id": panel_id})
    return api_response(message="Panel deleted successfully")


@router.post("/admin/panels/{panel_id}/assign-groups")
def assign_groups(
    panel_id: int,
    payload: AssignGroupsRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    panel = judging_service.assign_groups(db, panel_id, payload.group_ids, notifier)
    log_admin_action(db, admin, "Assign groups to panel", request.method, request.url.path, {"panel_id": panel_id, "group_ids": payload.group_ids})
    return api_response(data=PanelResponse.model_validate(panel), message=f"Assigned {len(panel.assigned_group_ids)} groups to {panel.panel_name}")


@router.post("/admin/panels/{panel_id}/regenerate-codes")
def regenerate_codes(panel_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    panel = judging_service.regenerate_access_codes(db, panel_id)
    log_admin_action(db, admin, "Regenerate judge access codes", request.method, request.url.path, {"panel_id": panel_id})
    return api_response(data=PanelResponse.model_validate(panel), message="Access codes regenerated successfully")
