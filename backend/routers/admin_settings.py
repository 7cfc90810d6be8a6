from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy.orm import Session

from database import get_db
from models import User
from realtime import ADMIN_ROOM, Notifier, get_notifier
from registration_service import discount_quote, get_payment_settings, get_system_settings
from schemas import DiscountRequest, PaymentSettingsResponse, PaymentSettingsUpdate, SystemSettingsResponse, SystemSettingsUpdate
from security import require_admin
from utils import IMAGE_CONTENT_TYPES, SETTINGS_IMAGE_MAX_BYTES, _upload_to_s3, api_response, log_admin_action

router = APIRouter()

BULK_DISCOUNT_COLUMNS = {
    "enabled": "bulk_discount_enabled",
    "min_events": "bulk_discount_min_events",
    "discount_type": "bulk_discount_type",
    "discount_value": "bulk_discount_value",
}


@router.post("/admin/settings/upload-qr")
def upload_qr_code(qr_code: UploadFile = File(..., alias="qrCode"), admin: User = Depends(require_admin)):
    url = _upload_to_s3(qr_code, "verbafest/system", IMAGE_CONTENT_TYPES, SETTINGS_IMAGE_MAX_BYTES)
    return api_response(url=url)


@router.get("/admin/settings")
def get_settings(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return api_response(data=SystemSettingsResponse.model_validate(get_system_settings(db)))


@router.put("/admin/settings")
def update_settings(payload: SystemSettingsUpdate, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    settings = get_system_settings(db)
    updates = payload.model_dump(exclude_unset=True)
    for field, value in updates.items():
        if value is None and field in ("event_name", "is_registration_open", "maintenance_mode", "max_global_participants", "combo_price"):
            continue
        if field in ("available_streams", "available_colleges"):
            value = [item.strip() for item in value or [] if item and item.strip()]
        setattr(settings, field, value)
    db.commit()
    db.refresh(settings)
    log_admin_action(db, admin, "Update system settings", request.method, request.url.path, {"fields": sorted(updates)})
    return api_response(data=SystemSettingsResponse.model_validate(settings), message="Settings updated successfully")


@router.get("/admin/payment-settings")
def get_admin_payment_settings(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return api_response(data=PaymentSettingsResponse.model_validate(get_payment_settings(db)))


@router.put("/admin/payment-settings")
def update_payment_settings(
    payload: PaymentSettingsUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    settings = get_payment_settings(db)
    updates = payload.model_dump(exclude_unset=True, exclude={"bulk_discount"})
    for field, value in updates.items():
        if value is not None:
            setattr(settings, field, value)
    if payload.bulk_discount is not None:
        # Only the discount keys sent in the request replace stored values
        for key, value in payload.bulk_discount.model_dump(exclude_unset=True).items():
            setattr(settings, BULK_DISCOUNT_COLUMNS[key], value)
    settings.updated_by_id = admin.id
    db.commit()
    db.refresh(settings)
    log_admin_action(db, admin, "Update payment settings", request.method, request.url.path, None)

    notifier.emit("payment-settings:updated", {
        "upi_id": settings.upi_id,
        "account_name": settings.account_name,
        "discount_enabled": settings.bulk_discount_enabled,
    }, room=ADMIN_ROOM)
    return api_response(data=PaymentSettingsResponse.model_validate(settings), message="Payment settings updated successfully")


@router.post("/admin/payment-settings/calculate-discount")
def admin_calculate_discount(payload: DiscountRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return api_response(data=discount_quote(get_payment_settings(db), payload.subtotal, payload.event_count))
