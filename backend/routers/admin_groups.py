from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

import group_service
from database import get_db
from exports import file_response, groups_html, render_html_to_pdf
from models import Group, Round, User
from realtime import Notifier, get_notifier
from schemas import AssignPanelRequest, AutoFormRequest, ConfirmSelectionsRequest, GroupCreate, GroupResponse, GroupUpdate
from security import require_admin
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()


@router.post("/admin/groups", status_code=status.HTTP_201_CREATED)
def create_group(payload: GroupCreate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    group = group_service.create_group(db, payload)
    log_admin_action(db, admin, "Create group", request.method, request.url.path, {"group_id": group.id, "round_id": group.round_id})
    return api_response(data=GroupResponse.model_validate(group), message="Group created successfully")


@router.post("/admin/groups/auto-form", status_code=status.HTTP_201_CREATED)
def auto_form(payload: AutoFormRequest, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    groups = group_service.auto_form_groups(db, payload)
    log_admin_action(db, admin, "Auto-form groups", request.method, request.url.path, {"round_id": payload.round_id, "count": len(groups)})
    return api_response(
        data=[GroupResponse.model_validate(group) for group in groups],
        message=f"Successfully formed {len(groups)} groups",
        count=len(groups),
    )


@router.get("/admin/groups/export/{file_format}")
def export_groups(
    file_format: str,
    round_id: Optional[int] = None,
    group_ids: Optional[str] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if file_format not in {"pdf", "html"}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid format. Use pdf or html")
    query = db.query(Group)
    if round_id is not None:
        query = query.filter(Group.round_id == round_id)
    if group_ids:
        try:
            ids = [int(item) for item in group_ids.split(",") if item.strip()]
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="group_ids must be a comma-separated list of ids")
        query = query.filter(Group.id.in_(ids))
    groups = query.order_by(Group.round_id, Group.group_number).all()
    if not groups:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No groups found for export")

    title = "Group Allocation"
    if round_id is not None:
        round_row = db.query(Round).filter(Round.id == round_id).first()
        if round_row:
            title = f"Group Allocation - {round_row.name}"
    html = groups_html(groups, title)
    if file_format == "html":
        return file_response(html.encode("utf-8"), "html", "groups")
    return file_response(render_html_to_pdf(html), "pdf", "groups")


@router.get("/admin/groups/round/{round_id}")
def groups_for_round(round_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    get_or_404(db, Round, round_id, "Round")
    groups = db.query(Group).filter(Group.round_id == round_id).order_by(Group.group_number).all()
    return api_response(data=[GroupResponse.model_validate(group) for group in groups], count=len(groups))


@router.post("/admin/groups/confirm-selections")
def confirm_selections(payload: ConfirmSelectionsRequest, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    confirmed = group_service.confirm_selections(db, payload.round_id, payload.selected_group_ids)
    log_admin_action(db, admin, "Confirm group selections", request.method, request.url.path, {
        "round_id": payload.round_id,
        "selected_group_ids": payload.selected_group_ids,
    })
    return api_response(message=f"Confirmed {confirmed} groups for next round", count=confirmed)


@router.put("/admin/groups/{group_id}")
def update_group(group_id: int, payload: GroupUpdate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    group = group_service.update_group(db, group_id, payload)
    log_admin_action(db, admin, "Update group", request.method, request.url.path, {"group_id": group_id})
    return api_response(data=GroupResponse.model_validate(group), message="Group updated successfully")


@router.delete("/admin/groups/{group_id}")
def delete_group(group_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    group_service.delete_group(db, group_id)
    log_admin_action(db, admin, "Delete group", request.method, request.url.path, {"group_id": group_id})
    return api_response(message="Group deleted successfully")


@router.post("/admin/groups/{group_id}/assign-panel")
def assign_panel(
    group_id: int,
    payload: AssignPanelRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    group = group_service.assign_panel(db, group_id, payload.panel_id, notifier)
    log_admin_action(db, admin, "Assign group to panel", request.method, request.url.path, {"group_id": group_id, "panel_id": payload.panel_id})
    return api_response(data=GroupResponse.model_validate(group), message="Group assigned to panel")


@router.post("/admin/groups/{group_id}/notify")
def notify_group(
    group_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    result = group_service.notify_group(db, group_id, notifier)
    log_admin_action(db, admin, "Notify group", request.method, request.url.path, {"group_id": group_id})
    return api_response(data=result, message=f"Notified {result['notified']} participants")
