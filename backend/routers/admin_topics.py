import random
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from database import get_db
from models import Group, Panel, SubEvent, Topic, User
from schemas import IdsRequest, TopicBulkCreate, TopicDrawRequest, TopicResponse, TopicUpdate
from security import require_admin
from time_utils import now_utc
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()


@router.get("/admin/topics")
def list_topics(sub_event_id: Optional[int] = None, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    query = db.query(Topic)
    if sub_event_id is not None:
        query = query.filter(Topic.sub_event_id == sub_event_id)
    topics = query.order_by(Topic.created_at.desc(), Topic.id.desc()).all()
    return api_response(data=[TopicResponse.model_validate(topic) for topic in topics], count=len(topics))


@router.post("/admin/topics", status_code=status.HTTP_201_CREATED)
def add_topics(payload: TopicBulkCreate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    get_or_404(db, SubEvent, payload.sub_event_id, "Sub-event")
    topics = [Topic(content=content, sub_event_id=payload.sub_event_id) for content in payload.topics]
    db.add_all(topics)
    db.commit()
    for topic in topics:
        db.refresh(topic)
    log_admin_action(db, admin, "Add topics", request.method, request.url.path, {"sub_event_id": payload.sub_event_id, "count": len(topics)})
    return api_response(data=[TopicResponse.model_validate(topic) for topic in topics], count=len(topics))


@router.post("/admin/topics/draw")
def draw_topic(payload: TopicDrawRequest, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    get_or_404(db, SubEvent, payload.sub_event_id, "Sub-event")
    if payload.group_id is not None:
        get_or_404(db, Group, payload.group_id, "Group")
    if payload.panel_id is not None:
        get_or_404(db, Panel, payload.panel_id, "Panel")

    unused = [
        topic_id for (topic_id,) in db.query(Topic.id).filter(
            Topic.sub_event_id == payload.sub_event_id,
            Topic.is_used == False,  # noqa: E712
        ).all()
    ]
    random.shuffle(unused)
    for topic_id in unused:
        # Only the draw that flips is_used wins the topic
        claimed = db.query(Topic).filter(Topic.id == topic_id, Topic.is_used == False).update(  # noqa: E712
            {
                Topic.is_used: True,
                Topic.used_by_group_id: payload.group_id,
                Topic.used_by_panel_id: payload.panel_id,
                Topic.used_at: now_utc(),
            },
            synchronize_session=False,
        )
        if claimed:
            db.commit()
            topic = db.query(Topic).filter(Topic.id == topic_id).populate_existing().first()
            log_admin_action(db, admin, "Draw topic", request.method, request.url.path, {"topic_id": topic_id, "group_id": payload.group_id})
            return api_response(data=TopicResponse.model_validate(topic), message="Topic drawn")
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No unused topics left for this sub-event")


@router.post("/admin/topics/bulk-delete")
def bulk_delete_topics(payload: IdsRequest, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    deleted = db.query(Topic).filter(Topic.id.in_(payload.ids)).delete(synchronize_session=False)
    db.commit()
    log_admin_action(db, admin, "Bulk delete topics", request.method, request.url.path, {"ids": payload.ids})
    return api_response(message=f"{deleted} topics deleted successfully", count=deleted)


@router.put("/admin/topics/{topic_id}")
def update_topic(topic_id: int, payload: TopicUpdate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    topic = get_or_404(db, Topic, topic_id, "Topic")
    if payload.content is not None:
        topic.content = payload.content.strip()
    if payload.is_used is not None:
        topic.is_used = payload.is_used
        if not payload.is_used:
            topic.used_by_group_id = None
            topic.used_by_panel_id = None
            topic.used_at = None
    db.commit()
    db.refresh(topic)
    log_admin_action(db, admin, "Update topic", request.method, request.url.path, {"topic_id": topic_id})
    return api_response(data=TopicResponse.model_validate(topic))


@router.delete("/admin/topics/{topic_id}")
def delete_topic(topic_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    topic = get_or_404(db, Topic, topic_id, "Topic")
    db.delete(topic)
    db.commit()
    log_admin_action(db, admin, "Delete topic", request.method, request.url.path, {"topic_id": topic_id})
    return api_response(message="Topic deleted successfully")
