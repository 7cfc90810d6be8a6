from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from database import get_db
from models import StaffRole, User
from schemas import UserResponse
from security import require_admin
from utils import api_response, get_or_404, log_admin_action

router = APIRouter()


@router.get("/admin/users/pending")
def pending_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    users = (
        db.query(User)
        .filter(User.is_approved == False, User.role == StaffRole.ADMIN)  # noqa: E712
        .order_by(User.created_at.asc(), User.id.asc())
        .all()
    )
    return api_response(data=[UserResponse.model_validate(user) for user in users], count=len(users))


@router.put("/admin/users/{user_id}/approve")
def approve_user(user_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_or_404(db, User, user_id, "User")
    user.is_approved = True
    user.is_active = True
    db.commit()
    db.refresh(user)
    log_admin_action(db, admin, "Approve staff user", request.method, request.url.path, {"user_id": user_id})
    return api_response(data=UserResponse.model_validate(user), message=f"{user.role.value} approved successfully")


@router.delete("/admin/users/{user_id}")
def delete_user(user_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_or_404(db, User, user_id, "User")
    if user.id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot reject yourself")
    db.delete(user)
    db.commit()
    log_admin_action(db, admin, "Delete staff user", request.method, request.url.path, {"user_id": user_id, "email": user.email})
    return api_response(message="User request rejected and deleted")


@router.get("/admin/users")
def list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    users = db.query(User).order_by(User.created_at.asc(), User.id.asc()).all()
    return api_response(data=[UserResponse.model_validate(user) for user in users], count=len(users))
