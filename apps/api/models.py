from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Date, DateTime, ForeignKey, JSON, Text, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func, text
from core.database import Base
from enum import Enum
import uuid


class TaskStatus(str, Enum):
    NOT_STARTED = "Not Started"
    PENDING = "Pending"
    DONE = "Done"


TASK_STATUS_VALUES = tuple(s.value for s in TaskStatus)

# The six independent weekly sub-tasks tracked on every activity log.
TASK_FIELDS = (
    "formative_one_grading",
    "formative_two_grading",
    "summative_grading",
    "course_moderation",
    "intranet_sync",
    "grade_book_status",
)

# Grading sub-tasks checked by the Monday reminder.
GRADING_TASK_FIELDS = TASK_FIELDS[:3]

MIN_WEEK_NUMBER = 1
MAX_WEEK_NUMBER = 52


class User(Base):
    __tablename__ = "user_account"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=False)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    role = Column(Text, default="student", nullable=False)  # 'manager', 'facilitator', 'student'
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    manager_profile = relationship("Manager", back_populates="user", uselist=False)
    facilitator_profile = relationship("Facilitator", back_populates="user", uselist=False)

    __table_args__ = (
        CheckConstraint("role IN ('manager', 'facilitator', 'student')", name="ck_user_account_role"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Manager(Base):
    __tablename__ = "manager"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user_account.id"), unique=True, nullable=False)
    department = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="manager_profile")


class Facilitator(Base):
    __tablename__ = "facilitator"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user_account.id"), unique=True, nullable=False)
    employee_id = Column(Text, unique=True, nullable=True)
    department = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="facilitator_profile")
    course_offerings = relationship("CourseOffering", back_populates="facilitator")
    activity_logs = relationship("ActivityTracker", back_populates="facilitator")


class Module(Base):
    __tablename__ = "course_module"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Cohort(Base):
    __tablename__ = "cohort"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class CourseOffering(Base):
    """
    One scheduled instance of a module, taught by a facilitator to a cohort.

    Activity logs reference an offering through `allocation_id`.
    """
    __tablename__ = "course_offering"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Uuid, ForeignKey("course_module.id"), nullable=False)
    facilitator_id = Column(Uuid, ForeignKey("facilitator.id"), nullable=False, index=True)
    cohort_id = Column(Uuid, ForeignKey("cohort.id"), nullable=True)
    created_by = Column(Uuid, ForeignKey("manager.id"), nullable=True)
    intake_period = Column(Text, nullable=True)  # 'HT1', 'HT2', 'FT'
    status = Column(Text, default="planned", nullable=False)  # 'planned', 'active', 'completed', 'cancelled'
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    module = relationship("Module")
    cohort = relationship("Cohort")
    facilitator = relationship("Facilitator", back_populates="course_offerings")
    creator = relationship("Manager")
    activity_logs = relationship("ActivityTracker", back_populates="course_offering", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        if self.module is None:
            return "Module"
        return f"{self.module.code} {self.module.name}"


class ActivityTracker(Base):
    """
    Weekly activity log: one facilitator's task checklist for one course offering.

    Exactly one log per (allocation, week). `submitted_at` is stamped only by the
    submit action; ordinary updates leave it alone.
    """
    __tablename__ = "activity_tracker"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    allocation_id = Column(Uuid, ForeignKey("course_offering.id"), nullable=False)
    facilitator_id = Column(Uuid, ForeignKey("facilitator.id"), nullable=False)

    week_number = Column(Integer, nullable=False)  # 1-52
    week_start_date = Column(Date, nullable=False)
    week_end_date = Column(Date, nullable=False)

    # One boolean per enrolled student
    attendance = Column(JSON, nullable=False, default=list)

    formative_one_grading = Column(Text, nullable=False, default=TaskStatus.NOT_STARTED.value)
    formative_two_grading = Column(Text, nullable=False, default=TaskStatus.NOT_STARTED.value)
    summative_grading = Column(Text, nullable=False, default=TaskStatus.NOT_STARTED.value)
    course_moderation = Column(Text, nullable=False, default=TaskStatus.NOT_STARTED.value)
    intranet_sync = Column(Text, nullable=False, default=TaskStatus.NOT_STARTED.value)
    grade_book_status = Column(Text, nullable=False, default=TaskStatus.NOT_STARTED.value)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    course_offering = relationship("CourseOffering", back_populates="activity_logs")
    facilitator = relationship("Facilitator", back_populates="activity_logs")

    __table_args__ = (
        UniqueConstraint("allocation_id", "week_number", name="uq_activity_tracker_allocation_week"),
        Index("ix_activity_tracker_facilitator_week", "facilitator_id", "week_number"),
        Index("ix_activity_tracker_week_dates", "week_start_date", "week_end_date"),
        Index(
            "ix_activity_tracker_unsubmitted_week_end",
            "week_end_date",
            postgresql_where=text("submitted_at IS NULL"),
        ),
        CheckConstraint(
            f"week_number >= {MIN_WEEK_NUMBER} AND week_number <= {MAX_WEEK_NUMBER}",
            name="ck_activity_tracker_week_number",
        ),
        CheckConstraint("week_end_date > week_start_date", name="ck_activity_tracker_week_dates"),
        *[
            CheckConstraint(
                f"{field} IN ('Not Started', 'Pending', 'Done')",
                name=f"ck_activity_tracker_{field}",
            )
            for field in TASK_FIELDS
        ],
    )

    @validates("week_number")
    def _validate_week_number(self, key, value):
        if value is None or isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("week_number must be an integer")
        if not MIN_WEEK_NUMBER <= value <= MAX_WEEK_NUMBER:
            raise ValueError(f"week_number must be between {MIN_WEEK_NUMBER} and {MAX_WEEK_NUMBER}")
        return value

    @validates(*TASK_FIELDS)
    def _validate_task_status(self, key, value):
        if isinstance(value, TaskStatus):
            return value.value
        if value not in TASK_STATUS_VALUES:
            raise ValueError(f"{key} must be one of: {', '.join(TASK_STATUS_VALUES)}")
        return value

    @validates("attendance")
    def _validate_attendance(self, key, value):
        if value is None:
            return []
        if not all(isinstance(mark, bool) for mark in value):
            raise ValueError("attendance must be a list of booleans")
        return list(value)
