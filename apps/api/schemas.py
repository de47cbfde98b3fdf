from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Literal

from models import TaskStatus

StatusFilter = Literal["complete", "incomplete", "overdue"]


class ActivityLogCreate(BaseModel):
    """Schema for a facilitator logging a new week"""
    allocation_id: UUID
    week_number: int = Field(ge=1, le=52)
    week_start_date: date
    week_end_date: date
    attendance: List[bool] = Field(default_factory=list)
    formative_one_grading: TaskStatus = TaskStatus.NOT_STARTED
    formative_two_grading: TaskStatus = TaskStatus.NOT_STARTED
    summative_grading: TaskStatus = TaskStatus.NOT_STARTED
    course_moderation: TaskStatus = TaskStatus.NOT_STARTED
    intranet_sync: TaskStatus = TaskStatus.NOT_STARTED
    grade_book_status: TaskStatus = TaskStatus.NOT_STARTED
    notes: Optional[str] = None


class ActivityLogUpdate(BaseModel):
    """Partial update; submitted_at is deliberately absent (use the submit action)"""
    week_start_date: Optional[date] = None
    week_end_date: Optional[date] = None
    attendance: Optional[List[bool]] = None
    formative_one_grading: Optional[TaskStatus] = None
    formative_two_grading: Optional[TaskStatus] = None
    summative_grading: Optional[TaskStatus] = None
    course_moderation: Optional[TaskStatus] = None
    intranet_sync: Optional[TaskStatus] = None
    grade_book_status: Optional[TaskStatus] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ActivityLogResponse(BaseModel):
    id: UUID
    allocation_id: UUID
    facilitator_id: UUID
    week_number: int
    week_start_date: date
    week_end_date: date
    attendance: List[bool]
    formative_one_grading: str
    formative_two_grading: str
    summative_grading: str
    course_moderation: str
    intranet_sync: str
    grade_book_status: str
    submitted_at: Optional[datetime] = None
    notes: Optional[str] = None
    course: Optional[str] = None  # e.g. "CS101 Introduction to Computer Science"
    facilitator_name: Optional[str] = None
    # Derived on read
    completion_percentage: int
    is_complete: bool
    is_overdue: bool


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next: bool
    has_prev: bool


class ActivityLogListResponse(BaseModel):
    data: List[ActivityLogResponse]
    pagination: Pagination


class ActivityLogSubmitResponse(BaseModel):
    id: UUID
    submitted_at: datetime
    notified_managers: int


class WeeklyBreakdown(BaseModel):
    week: int
    total_tasks: int
    completed_tasks: int
    completion_percentage: int


class ActivitySummaryResponse(BaseModel):
    total_logs: int
    completed_tasks: int
    pending_tasks: int
    not_started_tasks: int
    on_time_submissions: int
    late_submissions: int
    overdue_logs: int
    awaiting_submission: int
    weekly_breakdown: List[WeeklyBreakdown]


class ReminderRequest(BaseModel):
    facilitator_id: UUID
    week_number: int = Field(ge=1, le=52)


class ReminderResponse(BaseModel):
    job_id: str


class WorkerLaneStatus(BaseModel):
    type: str
    is_active: bool


class WorkerStatusResponse(BaseModel):
    is_running: bool
    workers: List[WorkerLaneStatus]
    overdue_check_active: bool


class OverdueCheckResponse(BaseModel):
    mode: Literal["in_process", "queued"]
    overdue_count: Optional[int] = None
    task_id: Optional[str] = None


class ProcessQueueResponse(BaseModel):
    queue: str
    processed: bool
    job_id: Optional[str] = None
    status: Optional[str] = None


class DeliveryStatusResponse(BaseModel):
    job_id: str
    status: str
    error: Optional[str] = None
    recorded_at: datetime
