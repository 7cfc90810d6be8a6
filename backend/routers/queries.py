from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from models import Query
from realtime import ADMIN_ROOM, Notifier, get_notifier
from schemas import QueryCreate
from utils import api_response

router = APIRouter()


@router.post("/queries", status_code=status.HTTP_201_CREATED)
def submit_query(payload: QueryCreate, db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    query = Query(
        full_name=payload.full_name.strip(),
        email=payload.email.lower(),
        mobile=payload.mobile,
        subject=payload.subject.strip(),
        message=payload.message.strip(),
    )
    db.add(query)
    db.commit()
    db.refresh(query)
    notifier.emit("query:new", {"id": query.id, "subject": query.subject, "full_name": query.full_name}, room=ADMIN_ROOM)
    return api_response(
        data={"id": query.id, "created_at": query.created_at},
        message="Query submitted successfully. We will get back to you soon!",
    )
