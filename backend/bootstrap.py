from __future__ import annotations

import logging
import os

from sqlalchemy.orm import Session

from auth import get_password_hash
from database import Base, engine, get_db
from models import CHEST_NUMBER_COUNTER, Counter, StaffRole, User
from registration_service import get_payment_settings, get_system_settings

logger = logging.getLogger(__name__)


def ensure_chest_counter(db: Session) -> None:
    if not db.query(Counter).filter(Counter.name == CHEST_NUMBER_COUNTER).first():
        db.add(Counter(name=CHEST_NUMBER_COUNTER, count=0))
        db.commit()


def ensure_default_admin(db: Session) -> None:
    email = (os.environ.get("DEFAULT_ADMIN_EMAIL") or "").strip().lower()
    password = os.environ.get("DEFAULT_ADMIN_PASSWORD")
    if not email or not password:
        return
    if db.query(User).filter(User.role == StaffRole.ADMIN).first():
        return
    db.add(User(
        name=os.environ.get("DEFAULT_ADMIN_NAME", "Admin"),
        email=email,
        hashed_password=get_password_hash(password),
        role=StaffRole.ADMIN,
        is_active=True,
        is_approved=True,
    ))
    db.commit()
    logger.info("Default admin created: %s", email)


def run_bootstrap() -> None:
    Base.metadata.create_all(bind=engine)
    db = next(get_db())
    try:
        get_system_settings(db)
        get_payment_settings(db)
        ensure_chest_counter(db)
        ensure_default_admin(db)
    finally:
        db.close()
