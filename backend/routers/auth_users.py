from typing import Union

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from auth import create_token_for, get_current_principal, get_password_hash, principal_role, verify_password, PARTICIPANT_ROLE
from database import get_db
from models import Participant, StaffRole, User
from realtime import ADMIN_ROOM, Notifier, get_notifier
from schemas import CompleteProfileRequest, LoginRequest, ParticipantResponse, StaffRegister, UserResponse
from security import require_staff
from utils import api_response

router = APIRouter()


def _principal_payload(principal: Union[User, Participant]) -> dict:
    if isinstance(principal, Participant):
        data = ParticipantResponse.model_validate(principal).model_dump()
        data["role"] = PARTICIPANT_ROLE
        data["name"] = principal.full_name
        return data
    return UserResponse.model_validate(principal).model_dump()


@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register_staff(payload: StaffRegister, db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    if db.query(User).filter(User.email == payload.email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists with this email")

    admin_count = db.query(User).filter(User.role == StaffRole.ADMIN).count()
    is_admin = payload.role == StaffRole.ADMIN
    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role=payload.role,
        phone=payload.phone,
        organization=payload.organization,
        department=payload.department,
        profile_complete=bool(payload.phone),
        # The very first admin bootstraps the system; judges need no approval
        is_approved=not is_admin or admin_count == 0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    if is_admin and not user.is_approved:
        notifier.emit("admin:request", {"id": user.id, "name": user.name, "email": user.email}, room=ADMIN_ROOM)
        return api_response(
            data={"user": _principal_payload(user)},
            message="Registration received. Your admin account is pending approval.",
        )
    return api_response(
        data={"user": _principal_payload(user), "token": create_token_for(user)},
        message="User registered successfully",
    )


@router.post("/auth/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    if payload.role == PARTICIPANT_ROLE:
        principal = db.query(Participant).filter(Participant.email == payload.email).first()
    else:
        principal = db.query(User).filter(User.email == payload.email).first()
    if not principal or not verify_password(payload.password, principal.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    if isinstance(principal, User):
        if not principal.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Your account has been deactivated")
        if principal.role == StaffRole.ADMIN and not principal.is_approved:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Your admin account is pending approval by another administrator."
            )

    return api_response(
        data={"user": _principal_payload(principal), "token": create_token_for(principal), "role": principal_role(principal)},
        message="Login successful",
    )


@router.get("/auth/me")
def get_me(principal: Union[User, Participant] = Depends(get_current_principal)):
    return api_response(data=_principal_payload(principal))


@router.put("/auth/complete-profile")
def complete_profile(payload: CompleteProfileRequest, user: User = Depends(require_staff), db: Session = Depends(get_db)):
    user.phone = payload.phone.strip()
    if payload.organization is not None:
        user.organization = payload.organization
    if payload.department is not None:
        user.department = payload.department
    user.profile_complete = True
    db.commit()
    db.refresh(user)
    return api_response(data=_principal_payload(user), message="Profile completed")
