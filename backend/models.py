from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Enum as SQLEnum, ForeignKey, Text, JSON, Table, UniqueConstraint, event
from sqlalchemy.orm import relationship
from sqlalchemy.orm.collections import attribute_keyed_dict
from sqlalchemy.sql import func
from database import Base
import enum


class RegistrationStatus(enum.Enum):
    INCOMPLETE = "incomplete"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Availability(enum.Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    REGISTERED = "registered"
    QUALIFIED = "qualified"
    REJECTED = "rejected"


class SubEventProgress(enum.Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    ELIMINATED = "eliminated"
    WINNER = "winner"
    QUALIFIED = "qualified"


class SubEventType(enum.Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class SubEventStatus(enum.Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"


class RoundStatus(enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class EvaluationStatus(enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PanelStatus(enum.Enum):
    SETUP = "setup"
    ACTIVE = "active"
    COMPLETED = "completed"


class QueryStatus(enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class StaffRole(enum.Enum):
    ADMIN = "admin"
    JUDGE = "judge"


class DiscountType(enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


CHEST_NUMBER_COUNTER = "Participant.chest_number"
CORE_SETTINGS_KEY = "core_settings"

DEFAULT_EVALUATION_PARAMETERS = [
    {"name": "Content", "max_score": 10, "weight": 1},
    {"name": "Presentation", "max_score": 10, "weight": 1},
    {"name": "Teamwork", "max_score": 10, "weight": 1},
]


round_participants = Table(
    "round_participants",
    Base.metadata,
    Column("round_id", Integer, ForeignKey("rounds.id", ondelete="CASCADE"), primary_key=True),
    Column("participant_id", Integer, ForeignKey("participants.id", ondelete="CASCADE"), primary_key=True),
)

round_winners = Table(
    "round_winners",
    Base.metadata,
    Column("round_id", Integer, ForeignKey("rounds.id", ondelete="CASCADE"), primary_key=True),
    Column("participant_id", Integer, ForeignKey("participants.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(SQLEnum(StaffRole), default=StaffRole.ADMIN, nullable=False)
    phone = Column(String(20), nullable=True)
    organization = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    profile_complete = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class SubEvent(Base):
    __tablename__ = "sub_events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(SQLEnum(SubEventType), default=SubEventType.INDIVIDUAL, nullable=False)
    registration_price = Column(Float, default=50, nullable=False)
    group_size_min = Column(Integer, default=1, nullable=False)
    group_size_max = Column(Integer, default=10, nullable=False)
    panel_count = Column(Integer, default=1, nullable=False)
    is_active_for_registration = Column(Boolean, default=True, nullable=False)
    max_participants = Column(Integer, nullable=True)
    registration_deadline = Column(DateTime(timezone=True), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    status = Column(SQLEnum(SubEventStatus), default=SubEventStatus.NOT_STARTED, nullable=False)
    actual_start_time = Column(DateTime(timezone=True), nullable=True)
    actual_end_time = Column(DateTime(timezone=True), nullable=True)
    accent_color = Column(String(20), default="#8b5cf6", nullable=False)
    whatsapp_group_link = Column(String(500), nullable=True)
    total_registrations = Column(Integer, default=0, nullable=False)
    approved_participants = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    rounds = relationship("Round", back_populates="sub_event", order_by="Round.round_number", cascade="all, delete-orphan")

    @property
    def is_full(self) -> bool:
        if not self.max_participants:
            return False
        return (self.approved_participants or 0) >= self.max_participants


class ParticipantSubEvent(Base):
    """Per-sub-event progress of one participant; a row means the participant is registered."""
    __tablename__ = "participant_sub_events"
    __table_args__ = (
        UniqueConstraint("participant_id", "sub_event_id", name="uq_participant_sub_event"),
    )

    id = Column(Integer, primary_key=True, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False, index=True)
    sub_event_id = Column(Integer, ForeignKey("sub_events.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(SQLEnum(SubEventProgress), default=SubEventProgress.NOT_STARTED, nullable=False)
    current_round_id = Column(Integer, ForeignKey("rounds.id", ondelete="SET NULL"), nullable=True)
    round_number = Column(Integer, default=0, nullable=False)
    # Attendance for this sub-event
    is_present = Column(Boolean, default=False, nullable=False)
    marked_at = Column(DateTime(timezone=True), nullable=True)
    marked_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    participant = relationship("Participant", back_populates="status_per_sub_event")
    sub_event = relationship("SubEvent")

    def as_status(self) -> dict:
        return {
            "status": self.status.value,
            "current_round": self.current_round_id,
            "round_number": self.round_number or 0,
        }


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    mobile = Column(String(10), unique=True, index=True, nullable=False)
    prn = Column(String(50), unique=True, index=True, nullable=False)
    branch = Column(String(255), nullable=False)
    year = Column(Integer, nullable=False)
    college = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=True)
    chest_number = Column(Integer, unique=True, nullable=True)
    registration_status = Column(SQLEnum(RegistrationStatus), default=RegistrationStatus.PENDING, nullable=False)
    transaction_id = Column(String(255), nullable=True)
    paid_amount = Column(Float, default=0, nullable=False)
    payment_proof_url = Column(String(500), nullable=True)
    current_status = Column(SQLEnum(Availability), default=Availability.REGISTERED, nullable=False)
    current_event_id = Column(Integer, ForeignKey("sub_events.id", ondelete="SET NULL"), nullable=True)
    admin_notes = Column(Text, nullable=True)
    is_re_registration = Column(Boolean, default=False, nullable=False)
    pending_sub_event_ids = Column(JSON, nullable=True)
    is_present = Column(Boolean, default=False, nullable=False)
    marked_at = Column(DateTime(timezone=True), nullable=True)
    marked_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    status_per_sub_event = relationship(
        "ParticipantSubEvent",
        collection_class=attribute_keyed_dict("sub_event_id"),
        back_populates="participant",
        cascade="all, delete-orphan",
    )
    current_event = relationship("SubEvent", foreign_keys=[current_event_id])

    @property
    def registered_sub_event_ids(self) -> list:
        return sorted(self.status_per_sub_event.keys())

    def get_sub_event_status(self, sub_event_id: int) -> dict:
        entry = self.status_per_sub_event.get(sub_event_id)
        if entry is None:
            return {"status": SubEventProgress.NOT_STARTED.value, "current_round": None, "round_number": 0}
        return entry.as_status()

    def register_sub_event(self, sub_event_id: int) -> ParticipantSubEvent:
        entry = self.status_per_sub_event.get(sub_event_id)
        if entry is None:
            entry = ParticipantSubEvent(sub_event_id=sub_event_id, status=SubEventProgress.NOT_STARTED, round_number=0)
            self.status_per_sub_event[sub_event_id] = entry
        return entry

    def set_sub_event_status(self, sub_event_id: int, status: SubEventProgress, round_id=None, round_number=None) -> ParticipantSubEvent:
        entry = self.register_sub_event(sub_event_id)
        entry.status = status
        if round_id is not None:
            entry.current_round_id = round_id
        if round_number is not None:
            entry.round_number = round_number
        return entry

    def is_busy(self) -> bool:
        return any(entry.status == SubEventProgress.ACTIVE for entry in self.status_per_sub_event.values())


class Round(Base):
    __tablename__ = "rounds"
    __table_args__ = (
        UniqueConstraint("sub_event_id", "round_number", name="uq_round_sub_event_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sub_event_id = Column(Integer, ForeignKey("sub_events.id", ondelete="CASCADE"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(SQLEnum(SubEventType), default=SubEventType.INDIVIDUAL, nullable=False)
    status = Column(SQLEnum(RoundStatus), default=RoundStatus.PENDING, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    venue = Column(String(255), nullable=True)
    instructions = Column(Text, nullable=True)
    is_elimination = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    sub_event = relationship("SubEvent", back_populates="rounds")
    participants = relationship("Participant", secondary=round_participants, order_by="Participant.id")
    winners = relationship("Participant", secondary=round_winners, order_by="Participant.id")


class Panel(Base):
    __tablename__ = "panels"

    id = Column(Integer, primary_key=True, index=True)
    sub_event_id = Column(Integer, ForeignKey("sub_events.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=True, index=True)
    panel_number = Column(Integer, nullable=False)
    panel_name = Column(String(255), nullable=False)
    evaluation_parameters = Column(JSON, nullable=False, default=lambda: [dict(p) for p in DEFAULT_EVALUATION_PARAMETERS])
    status = Column(SQLEnum(PanelStatus), default=PanelStatus.SETUP, nullable=False)
    venue = Column(String(255), nullable=True)
    instructions = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    judges = relationship("PanelJudge", back_populates="panel", order_by="PanelJudge.id", cascade="all, delete-orphan")
    assigned_groups = relationship("Group", back_populates="panel", order_by="Group.group_number")
    sub_event = relationship("SubEvent")
    round = relationship("Round")

    @property
    def assigned_group_ids(self) -> list:
        return [group.id for group in self.assigned_groups]


class PanelJudge(Base):
    __tablename__ = "panel_judges"

    id = Column(Integer, primary_key=True, index=True)
    panel_id = Column(Integer, ForeignKey("panels.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    access_code = Column(String(16), unique=True, index=True, nullable=False)
    has_accessed = Column(Boolean, default=False, nullable=False)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)

    panel = relationship("Panel", back_populates="judges")


class Group(Base):
    __tablename__ = "groups"
    __table_args__ = (
        UniqueConstraint("round_id", "group_number", name="uq_group_round_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sub_event_id = Column(Integer, ForeignKey("sub_events.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False, index=True)
    group_number = Column(Integer, nullable=False)
    group_name = Column(String(255), nullable=False)
    panel_id = Column(Integer, ForeignKey("panels.id", ondelete="SET NULL"), nullable=True, index=True)
    evaluation_status = Column(SQLEnum(EvaluationStatus), default=EvaluationStatus.PENDING, nullable=False)
    average_score = Column(Float, default=0, nullable=False)
    selected_for_next_round = Column(Boolean, default=False, nullable=False)
    admin_confirmed = Column(Boolean, default=False, nullable=False)
    slot_start_time = Column(DateTime(timezone=True), nullable=True)
    slot_end_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    members = relationship("GroupMember", back_populates="group", order_by="GroupMember.id", cascade="all, delete-orphan")
    panel = relationship("Panel", back_populates="assigned_groups")
    round = relationship("Round")
    sub_event = relationship("SubEvent")

    @property
    def participants(self) -> list:
        return [member.participant for member in self.members]

    @property
    def participant_ids(self) -> list:
        return [member.participant_id for member in self.members]


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("round_id", "participant_id", name="uq_group_member_round_participant"),
    )

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False, index=True)

    group = relationship("Group", back_populates="members")
    participant = relationship("Participant")


class Evaluation(Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("group_id", "panel_id", "judge_email", name="uq_evaluation_group_panel_judge"),
    )

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    panel_id = Column(Integer, ForeignKey("panels.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False, index=True)
    judge_email = Column(String(255), nullable=False)
    judge_name = Column(String(255), nullable=False)
    scores = Column(JSON, nullable=False, default=list)
    total_score = Column(Float, default=0, nullable=False)
    max_total_score = Column(Float, default=0, nullable=False)
    percentage = Column(Float, default=0, nullable=False)
    comments = Column(Text, nullable=False, default="")
    recommend_for_next_round = Column(Boolean, default=False, nullable=False)
    participant_ratings = Column(JSON, nullable=False, default=list)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def compute_percentage(self) -> float:
        max_total = self.max_total_score or 0
        if max_total <= 0:
            return 0.0
        return (self.total_score or 0) / max_total * 100


@event.listens_for(Evaluation, "before_insert")
@event.listens_for(Evaluation, "before_update")
def _evaluation_percentage(mapper, connection, target):
    target.percentage = target.compute_percentage()


class Topic(Base):
    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, index=True)
    content = Column(Text, nullable=False)
    sub_event_id = Column(Integer, ForeignKey("sub_events.id", ondelete="CASCADE"), nullable=False, index=True)
    is_used = Column(Boolean, default=False, nullable=False)
    used_by_group_id = Column(Integer, ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    used_by_panel_id = Column(Integer, ForeignKey("panels.id", ondelete="SET NULL"), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    sub_event = relationship("SubEvent")


class Query(Base):
    __tablename__ = "queries"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    mobile = Column(String(10), nullable=False)
    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(SQLEnum(QueryStatus), default=QueryStatus.PENDING, nullable=False)
    admin_notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    resolved_by = relationship("User")


class Counter(Base):
    __tablename__ = "counters"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    count = Column(Integer, default=0, nullable=False)


class SystemSettings(Base):
    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, default=CORE_SETTINGS_KEY)
    event_name = Column(String(255), default="VerbaFest 2026", nullable=False)
    event_date = Column(DateTime(timezone=True), nullable=True)
    registration_deadline = Column(DateTime(timezone=True), nullable=True)
    is_registration_open = Column(Boolean, default=True, nullable=False)
    maintenance_mode = Column(Boolean, default=False, nullable=False)
    contact_email = Column(String(255), nullable=True)
    max_global_participants = Column(Integer, default=1000, nullable=False)
    single_event_qr_code_url = Column(String(500), nullable=True)
    all_events_qr_code_url = Column(String(500), nullable=True)
    available_streams = Column(JSON, nullable=False, default=list)
    available_colleges = Column(JSON, nullable=False, default=list)
    combo_price = Column(Float, default=150, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PaymentSettings(Base):
    __tablename__ = "payment_settings"

    id = Column(Integer, primary_key=True, index=True)
    upi_id = Column(String(255), nullable=False, default="")
    account_name = Column(String(255), nullable=False, default="")
    bulk_discount_enabled = Column(Boolean, default=False, nullable=False)
    bulk_discount_min_events = Column(Integer, default=3, nullable=False)
    bulk_discount_type = Column(SQLEnum(DiscountType), default=DiscountType.PERCENTAGE, nullable=False)
    bulk_discount_value = Column(Float, default=10, nullable=False)
    qr_code_enabled = Column(Boolean, default=True, nullable=False)
    payment_instructions = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, default=True, nullable=False)
    updated_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def calculate_discount(self, subtotal: float, event_count: int) -> float:
        if not self.bulk_discount_enabled or event_count < (self.bulk_discount_min_events or 0):
            return 0.0
        if self.bulk_discount_type == DiscountType.PERCENTAGE:
            return subtotal * (self.bulk_discount_value or 0) / 100
        return float(self.bulk_discount_value or 0)


class AdminLog(Base):
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    admin_email = Column(String(255), nullable=False, default="")
    admin_name = Column(String(255), nullable=False, default="")
    action = Column(String(255), nullable=False)
    method = Column(String(10), nullable=True)
    path = Column(String(500), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
