from pydantic import BaseModel, BeforeValidator, EmailStr, Field, field_validator, model_validator
from typing import Annotated, Optional, List, Dict, Any, Literal
from datetime import datetime
import enum
import re

from models import (
    Availability,
    DiscountType,
    PanelStatus,
    QueryStatus,
    RegistrationStatus,
    StaffRole,
    SubEventType,
)

MOBILE_RE = re.compile(r"^[0-9]{10}$")
INDIAN_MOBILE_RE = re.compile(r"^[6-9][0-9]{9}$")


def _enum_value(value):
    if isinstance(value, enum.Enum):
        return value.value
    return value


EnumStr = Annotated[str, BeforeValidator(_enum_value)]


def _strip_required(value: str, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{field_name} is required")
    return cleaned


# ==================== AUTH ====================

class StaffRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: StaffRole = StaffRole.JUDGE
    phone: Optional[str] = None
    organization: Optional[str] = None
    department: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, value):
        return value.lower()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, value):
        return value.lower()


class CompleteProfileRequest(BaseModel):
    phone: str = Field(..., min_length=1)
    organization: Optional[str] = None
    department: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: EnumStr
    phone: Optional[str] = None
    organization: Optional[str] = None
    department: Optional[str] = None
    profile_complete: bool
    is_active: bool
    is_approved: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== REGISTRATION ====================

class PaymentDetails(BaseModel):
    sub_event_ids: List[int] = Field(..., min_length=1)
    transaction_id: str
    payment_proof_url: str
    paid_amount: float = Field(..., ge=0)

    @field_validator("transaction_id", "payment_proof_url")
    @classmethod
    def required_text(cls, value, info):
        return _strip_required(value, info.field_name)

    @field_validator("sub_event_ids")
    @classmethod
    def unique_sub_events(cls, value):
        seen = []
        for item in value:
            if item not in seen:
                seen.append(item)
        return seen


class RegistrationSubmit(PaymentDetails):
    full_name: str
    email: EmailStr
    mobile: str
    prn: str
    branch: str
    year: int = Field(..., ge=1, le=4)
    college: str

    @field_validator("full_name", "branch", "college")
    @classmethod
    def required_fields(cls, value, info):
        return _strip_required(value, info.field_name)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value):
        return value.lower()

    @field_validator("mobile")
    @classmethod
    def validate_mobile(cls, value):
        cleaned = (value or "").strip()
        if not MOBILE_RE.match(cleaned):
            raise ValueError("Please provide a valid 10-digit mobile number")
        return cleaned

    @field_validator("prn")
    @classmethod
    def upper_prn(cls, value):
        return _strip_required(value, "prn").upper()


class ResubmitPaymentRequest(PaymentDetails):
    pass


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class RegistrationStatusUpdate(BaseModel):
    registration_status: RegistrationStatus


class CurrentStatusUpdate(BaseModel):
    current_status: Availability


class SubEventStatusEntry(BaseModel):
    status: EnumStr
    current_round_id: Optional[int] = None
    round_number: int = 0

    class Config:
        from_attributes = True


class ParticipantResponse(BaseModel):
    id: int
    full_name: str
    email: str
    mobile: str
    prn: str
    branch: str
    year: int
    college: str
    chest_number: Optional[int] = None
    registration_status: EnumStr
    transaction_id: Optional[str] = None
    paid_amount: float
    payment_proof_url: Optional[str] = None
    current_status: EnumStr
    current_event_id: Optional[int] = None
    admin_notes: Optional[str] = None
    is_re_registration: bool
    pending_sub_event_ids: Optional[List[int]] = None
    registered_sub_event_ids: List[int]
    status_per_sub_event: Dict[int, SubEventStatusEntry]
    is_present: bool
    marked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ParticipantBrief(BaseModel):
    id: int
    full_name: str
    email: str
    prn: str
    chest_number: Optional[int] = None
    current_status: EnumStr
    is_present: bool = False

    class Config:
        from_attributes = True


# ==================== SUB-EVENTS ====================

class SubEventBase(BaseModel):
    description: str = ""
    type: SubEventType = SubEventType.INDIVIDUAL
    registration_price: float = Field(50, ge=0)
    group_size_min: int = Field(1, ge=1)
    group_size_max: int = Field(10, ge=1)
    panel_count: int = Field(1, ge=1)
    is_active_for_registration: bool = True
    max_participants: Optional[int] = Field(None, ge=1)
    registration_deadline: Optional[datetime] = None
    start_time: Optional[datetime] = None
    accent_color: str = "#8b5cf6"
    whatsapp_group_link: Optional[str] = None


class SubEventCreate(SubEventBase):
    name: str = Field(..., min_length=1, max_length=255)

    @model_validator(mode="after")
    def check_group_bounds(self):
        if self.group_size_min > self.group_size_max:
            raise ValueError("group_size_min cannot exceed group_size_max")
        return self


class SubEventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[SubEventType] = None
    registration_price: Optional[float] = Field(None, ge=0)
    group_size_min: Optional[int] = Field(None, ge=1)
    group_size_max: Optional[int] = Field(None, ge=1)
    panel_count: Optional[int] = Field(None, ge=1)
    is_active_for_registration: Optional[bool] = None
    max_participants: Optional[int] = Field(None, ge=1)
    registration_deadline: Optional[datetime] = None
    start_time: Optional[datetime] = None
    accent_color: Optional[str] = None
    whatsapp_group_link: Optional[str] = None


class SubEventResponse(BaseModel):
    id: int
    name: str
    description: str
    type: EnumStr
    registration_price: float
    group_size_min: int
    group_size_max: int
    panel_count: int
    is_active_for_registration: bool
    max_participants: Optional[int] = None
    registration_deadline: Optional[datetime] = None
    start_time: Optional[datetime] = None
    status: EnumStr
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    accent_color: str
    whatsapp_group_link: Optional[str] = None
    total_registrations: int
    approved_participants: int
    is_full: bool

    class Config:
        from_attributes = True


# ==================== ROUNDS ====================

class RoundCreate(BaseModel):
    sub_event_id: int
    round_number: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=255)
    is_elimination: bool = True
    venue: Optional[str] = None
    instructions: Optional[str] = None


class RoundUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    venue: Optional[str] = None
    instructions: Optional[str] = None
    is_elimination: Optional[bool] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class ParticipantIdsRequest(BaseModel):
    participant_ids: List[int] = Field(..., min_length=1)


class WinnersRequest(BaseModel):
    winner_ids: List[int]


class RoundResponse(BaseModel):
    id: int
    sub_event_id: int
    round_number: int
    name: str
    type: EnumStr
    status: EnumStr
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    venue: Optional[str] = None
    instructions: Optional[str] = None
    is_elimination: bool
    participants: List[ParticipantBrief] = []
    winners: List[ParticipantBrief] = []

    class Config:
        from_attributes = True


# ==================== GROUPS ====================

class GroupCreate(BaseModel):
    sub_event_id: int
    round_id: int
    participant_ids: List[int] = Field(..., min_length=1)
    group_name: Optional[str] = None


class AutoFormRequest(BaseModel):
    sub_event_id: int
    round_id: int
    group_size: Optional[int] = Field(None, ge=1)


class GroupUpdate(BaseModel):
    participant_ids: Optional[List[int]] = None
    panel_id: Optional[int] = None
    group_name: Optional[str] = None
    slot_start_time: Optional[datetime] = None
    slot_end_time: Optional[datetime] = None


class AssignPanelRequest(BaseModel):
    panel_id: int


class ConfirmSelectionsRequest(BaseModel):
    round_id: int
    selected_group_ids: List[int]


class PanelBrief(BaseModel):
    id: int
    panel_number: int
    panel_name: str
    venue: Optional[str] = None

    class Config:
        from_attributes = True


class GroupResponse(BaseModel):
    id: int
    sub_event_id: int
    round_id: int
    group_number: int
    group_name: str
    panel_id: Optional[int] = None
    panel: Optional[PanelBrief] = None
    evaluation_status: EnumStr
    average_score: float
    selected_for_next_round: bool
    admin_confirmed: bool
    slot_start_time: Optional[datetime] = None
    slot_end_time: Optional[datetime] = None
    participants: List[ParticipantBrief] = []

    class Config:
        from_attributes = True


# ==================== PANELS & JUDGING ====================

class EvaluationParameter(BaseModel):
    name: str = Field(..., min_length=1)
    max_score: float = Field(10, gt=0)
    weight: float = Field(1, ge=0)


class JudgeInput(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, value):
        return value.lower()


def _unique_judges(judges: Optional[List[JudgeInput]]) -> Optional[List[JudgeInput]]:
    if judges is None:
        return judges
    emails = [judge.email for judge in judges]
    if len(emails) != len(set(emails)):
        raise ValueError("Each judge on a panel must have a distinct email")
    return judges


class PanelCreate(BaseModel):
    sub_event_id: int
    round_id: Optional[int] = None
    panel_number: Optional[int] = Field(None, ge=1)
    panel_name: Optional[str] = None
    judges: List[JudgeInput] = Field(..., min_length=1)
    evaluation_parameters: Optional[List[EvaluationParameter]] = None
    venue: Optional[str] = None
    instructions: Optional[str] = None

    @field_validator("judges")
    @classmethod
    def distinct_judges(cls, value):
        return _unique_judges(value)


class PanelUpdate(BaseModel):
    panel_name: Optional[str] = None
    venue: Optional[str] = None
    instructions: Optional[str] = None
    status: Optional[PanelStatus] = None
    judges: Optional[List[JudgeInput]] = None
    evaluation_parameters: Optional[List[EvaluationParameter]] = None

    @field_validator("judges")
    @classmethod
    def distinct_judges(cls, value):
        return _unique_judges(value)


class AssignGroupsRequest(BaseModel):
    group_ids: List[int]


class JudgeResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    access_code: str
    has_accessed: bool
    last_accessed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PanelResponse(BaseModel):
    id: int
    sub_event_id: int
    round_id: Optional[int] = None
    panel_number: int
    panel_name: str
    evaluation_parameters: List[Dict[str, Any]]
    status: EnumStr
    venue: Optional[str] = None
    instructions: Optional[str] = None
    judges: List[JudgeResponse] = []
    assigned_group_ids: List[int] = []

    class Config:
        from_attributes = True


class JudgeLoginRequest(BaseModel):
    access_code: str

    @field_validator("access_code")
    @classmethod
    def normalize_code(cls, value):
        return _strip_required(value, "access_code").upper()


class ScoreEntry(BaseModel):
    parameter: str
    score: float = Field(..., ge=0)
    max_score: float = Field(..., ge=0)
    weight: float = Field(1, ge=0)


class ParticipantRating(BaseModel):
    participant_id: int
    scores: Dict[str, float] = {}
    total_score: float = 0
    max_total_score: float = 0
    rating: Optional[int] = Field(None, ge=1, le=5)
    remarks: str = ""
    selected_for_next_round: bool = False


class EvaluationSubmit(BaseModel):
    access_code: str
    group_id: int
    scores: List[ScoreEntry] = []
    comments: str = ""
    recommend_for_next_round: bool = False
    participant_ratings: List[ParticipantRating] = []
    total_score: Optional[float] = None
    max_total_score: Optional[float] = None

    @field_validator("access_code")
    @classmethod
    def normalize_code(cls, value):
        return _strip_required(value, "access_code").upper()


class JudgeSelectionRequest(BaseModel):
    access_code: str
    selected_group_ids: List[int]

    @field_validator("access_code")
    @classmethod
    def normalize_code(cls, value):
        return _strip_required(value, "access_code").upper()


class EvaluationResponse(BaseModel):
    id: int
    group_id: int
    panel_id: int
    round_id: int
    judge_email: str
    judge_name: str
    scores: List[Dict[str, Any]]
    total_score: float
    max_total_score: float
    percentage: float
    comments: str
    recommend_for_next_round: bool
    participant_ratings: List[Dict[str, Any]]
    submitted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== TOPICS ====================

class TopicBulkCreate(BaseModel):
    sub_event_id: int
    topics: List[str] = Field(..., min_length=1)

    @field_validator("topics")
    @classmethod
    def strip_topics(cls, value):
        cleaned = [item.strip() for item in value if item and item.strip()]
        if not cleaned:
            raise ValueError("At least one non-empty topic is required")
        return cleaned


class TopicUpdate(BaseModel):
    content: Optional[str] = Field(None, min_length=1)
    is_used: Optional[bool] = None


class TopicDrawRequest(BaseModel):
    sub_event_id: int
    group_id: Optional[int] = None
    panel_id: Optional[int] = None


class IdsRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)


class TopicResponse(BaseModel):
    id: int
    content: str
    sub_event_id: int
    is_used: bool
    used_by_group_id: Optional[int] = None
    used_by_panel_id: Optional[int] = None
    used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== ATTENDANCE ====================

class AttendanceMark(BaseModel):
    participant_ids: List[int] = Field(..., min_length=1)
    is_present: bool


class BulkAttendanceMark(BaseModel):
    type: Literal["overall", "subevent"]
    is_present: bool
    sub_event_id: Optional[int] = None

    @model_validator(mode="after")
    def check_sub_event(self):
        if self.type == "subevent" and self.sub_event_id is None:
            raise ValueError("Invalid bulk attendance request")
        return self


class AttendanceRecord(BaseModel):
    id: int
    full_name: str
    email: str
    mobile: str
    college: str
    branch: str
    year: int
    chest_number: Optional[int] = None
    sub_events: str
    is_present: bool
    marked_at: Optional[datetime] = None
    marked_by: str = ""


# ==================== SETTINGS ====================

class SystemSettingsUpdate(BaseModel):
    event_name: Optional[str] = Field(None, min_length=1)
    event_date: Optional[datetime] = None
    registration_deadline: Optional[datetime] = None
    is_registration_open: Optional[bool] = None
    maintenance_mode: Optional[bool] = None
    contact_email: Optional[EmailStr] = None
    max_global_participants: Optional[int] = Field(None, ge=1)
    single_event_qr_code_url: Optional[str] = None
    all_events_qr_code_url: Optional[str] = None
    available_streams: Optional[List[str]] = None
    available_colleges: Optional[List[str]] = None
    combo_price: Optional[float] = Field(None, ge=0)


class SystemSettingsResponse(BaseModel):
    event_name: str
    event_date: Optional[datetime] = None
    registration_deadline: Optional[datetime] = None
    is_registration_open: bool
    maintenance_mode: bool
    contact_email: Optional[str] = None
    max_global_participants: int
    single_event_qr_code_url: Optional[str] = None
    all_events_qr_code_url: Optional[str] = None
    available_streams: List[str] = []
    available_colleges: List[str] = []
    combo_price: float

    class Config:
        from_attributes = True


class BulkDiscount(BaseModel):
    enabled: bool = False
    min_events: int = Field(3, ge=2)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: float = Field(10, ge=0)


class PaymentSettingsUpdate(BaseModel):
    upi_id: Optional[str] = Field(None, min_length=1)
    account_name: Optional[str] = Field(None, min_length=1)
    bulk_discount: Optional[BulkDiscount] = None
    qr_code_enabled: Optional[bool] = None
    payment_instructions: Optional[str] = None


class PaymentSettingsResponse(BaseModel):
    upi_id: str
    account_name: str
    bulk_discount_enabled: bool
    bulk_discount_min_events: int
    bulk_discount_type: EnumStr
    bulk_discount_value: float
    qr_code_enabled: bool
    payment_instructions: str
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DiscountRequest(BaseModel):
    subtotal: float = Field(..., ge=0)
    event_count: int = Field(..., ge=0)


# ==================== QUERIES ====================

class QueryCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    mobile: str
    subject: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)

    @field_validator("mobile")
    @classmethod
    def validate_mobile(cls, value):
        cleaned = (value or "").strip()
        if not INDIAN_MOBILE_RE.match(cleaned):
            raise ValueError("Please provide a valid 10-digit mobile number")
        return cleaned


class QueryUpdate(BaseModel):
    status: Optional[QueryStatus] = None
    admin_notes: Optional[str] = None


class QueryResponse(BaseModel):
    id: int
    full_name: str
    email: str
    mobile: str
    subject: str
    message: str
    status: EnumStr
    admin_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
