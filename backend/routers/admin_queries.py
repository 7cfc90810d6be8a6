import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from models import Query as SupportQuery, QueryStatus, User
from schemas import QueryResponse, QueryUpdate
from security import require_admin
from time_utils import now_utc
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()


@router.get("/admin/queries")
def list_queries(
    status: Optional[QueryStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(1000, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(SupportQuery)
    if status is not None:
        query = query.filter(SupportQuery.status == status)
    total = query.count()
    rows = query.order_by(SupportQuery.created_at.desc(), SupportQuery.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return api_response(
        data=[QueryResponse.model_validate(row) for row in rows],
        count=len(rows),
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
        current_page=page,
    )


@router.get("/admin/queries/stats/summary")
def query_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    counts = dict(db.query(SupportQuery.status, func.count(SupportQuery.id)).group_by(SupportQuery.status).all())
    return api_response(data={
        "pending": counts.get(QueryStatus.PENDING, 0),
        "in_progress": counts.get(QueryStatus.IN_PROGRESS, 0),
        "resolved": counts.get(QueryStatus.RESOLVED, 0),
        "total": sum(counts.values()),
    })


@router.get("/admin/queries/{query_id}")
def get_query(query_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    row = get_or_404(db, SupportQuery, query_id, "Query")
    data = QueryResponse.model_validate(row).model_dump()
    data["resolved_by"] = {"name": row.resolved_by.name, "email": row.resolved_by.email} if row.resolved_by else None
    return api_response(data=data)


@router.put("/admin/queries/{query_id}/status")
def update_query_status(query_id: int, payload: QueryUpdate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    row = get_or_404(db, SupportQuery, query_id, "Query")
    if payload.status is not None:
        row.status = payload.status
        if payload.status == QueryStatus.RESOLVED:
            row.resolved_at = now_utc()
            row.resolved_by_id = admin.id
    if payload.admin_notes is not None:
        row.admin_notes = payload.admin_notes
    db.commit()
    db.refresh(row)
    log_admin_action(db, admin, "Update query", request.method, request.url.path, {"query_id": query_id, "status": row.status.value})
    return api_response(data=QueryResponse.model_validate(row), message="Query updated successfully")


@router.delete("/admin/queries/{query_id}")
def delete_query(query_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    row = get_or_404(db, SupportQuery, query_id, "Query")
    db.delete(row)
    db.commit()
    log_admin_action(db, admin, "Delete query", request.method, request.url.path, {"query_id": query_id})
    return api_response(message="Query deleted successfully")
