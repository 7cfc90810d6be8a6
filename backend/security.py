from typing import Union
from fastapi import Depends, HTTPException, status

from auth import get_current_principal, principal_role, PARTICIPANT_ROLE
from models import Participant, StaffRole, User


def require_roles(*roles: str):
    allowed = set(roles)

    def _checker(principal: Union[User, Participant] = Depends(get_current_principal)) -> Union[User, Participant]:
        role = principal_role(principal)
        if role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role '{role}' is not authorized to access this route"
            )
        return principal

    return _checker


def require_admin(user: User = Depends(require_roles(StaffRole.ADMIN.value))) -> User:
    return user


def require_staff(user: User = Depends(require_roles(StaffRole.ADMIN.value, StaffRole.JUDGE.value))) -> User:
    return user


def require_participant(participant: Participant = Depends(require_roles(PARTICIPANT_ROLE))) -> Participant:
    return participant
