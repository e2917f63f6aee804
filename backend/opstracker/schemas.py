"""Pydantic schemas for API."""
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field, ConfigDict, model_validator
from typing import Literal, Optional
from datetime import date, datetime


Role = Literal["admin", "manager", "supervisor", "worker"]
ProjectStatus = Literal["active", "completed", "on_hold", "cancelled"]
TaskStatus = Literal["pending", "in_progress", "completed", "cancelled"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
TransactionType = Literal["delivery", "usage", "adjustment", "return"]
EquipmentStatus = Literal["available", "in_use", "maintenance", "broken", "retired"]
BreakdownSeverity = Literal["low", "medium", "high", "critical"]
BreakdownStatus = Literal["reported", "in_repair", "fixed", "written_off"]
AttendanceStatus = Literal["present", "absent", "late", "half_day", "leave"]
LeaveType = Literal["sick", "vacation", "personal", "emergency"]


# Users / auth
class UserBase(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=255)
    role: Role
    phone: Optional[str] = Field(default=None, max_length=20)


class UserCreate(UserBase):
    password: str = Field(min_length=6, max_length=256)


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[Role] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    is_active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=256)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    full_name: str
    role: str
    phone: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    # Username or email.
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


# Projects / sites
class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatus = "active"
    manager_id: Optional[int] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ProjectStatus] = None
    manager_id: Optional[int] = None


class ProjectResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: str
    manager_id: Optional[int] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class SiteCreate(BaseModel):
    project_id: int
    name: str = Field(min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    supervisor_id: Optional[int] = None
    status: str = Field(default="active", max_length=20)


class SiteUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    supervisor_id: Optional[int] = None
    status: Optional[str] = Field(default=None, max_length=20)


class SiteResponse(BaseModel):
    id: int
    project_id: int
    name: str
    location: Optional[str] = None
    supervisor_id: Optional[int] = None
    status: str
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class AssignWorkerRequest(BaseModel):
    worker_id: int


class SiteTeamMember(BaseModel):
    id: int
    site_id: int
    worker_id: int
    assigned_date: Optional[datetime] = None
    username: Optional[str] = None
    full_name: Optional[str] = None


# Tasks
class TaskCreate(BaseModel):
    site_id: int
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    assigned_to: int
    priority: TaskPriority = "medium"
    due_date: Optional[date] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    status: Optional[TaskStatus] = None
    assigned_to: Optional[int] = None


class TaskResponse(BaseModel):
    id: int
    site_id: int
    title: str
    description: Optional[str] = None
    assigned_to: Optional[int] = None
    assigned_by: Optional[int] = None
    status: str
    priority: str
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TaskProgressCreate(BaseModel):
    progress_percentage: int = Field(ge=0, le=100)
    notes: Optional[str] = None


class TaskUpdateResponse(BaseModel):
    id: int
    task_id: int
    updated_by: int
    progress_percentage: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TaskDetailResponse(TaskResponse):
    updates: list[TaskUpdateResponse] = []


class DailyActivityCreate(BaseModel):
    site_id: int
    activity_date: Optional[date] = None
    description: str = Field(min_length=1)
    hours_worked: Optional[Decimal] = Field(default=None, ge=0, le=24)


class DailyActivityResponse(BaseModel):
    id: int
    site_id: int
    user_id: int
    activity_date: date
    description: str
    hours_worked: Optional[float] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Materials
class MaterialCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    unit: str = Field(min_length=1, max_length=50)
    category: Optional[str] = Field(default=None, max_length=100)


class MaterialResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    unit: str
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class InventoryItemResponse(BaseModel):
    id: int
    site_id: int
    material_id: int
    material_name: str
    unit: str
    category: Optional[str] = None
    quantity: float
    min_threshold: float
    low_stock: bool
    last_updated: Optional[datetime] = None


class ThresholdUpdate(BaseModel):
    min_threshold: Decimal = Field(ge=0)


class MaterialTransactionCreate(BaseModel):
    site_id: int
    material_id: int
    transaction_type: TransactionType
    quantity: Decimal = Field(gt=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    supplier: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None


class MaterialTransactionResponse(BaseModel):
    id: int
    site_id: int
    material_id: int
    transaction_type: str
    quantity: float
    unit_price: Optional[float] = None
    supplier: Optional[str] = None
    notes: Optional[str] = None
    created_by: int
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class MaterialTransactionResult(BaseModel):
    transaction: MaterialTransactionResponse
    quantity: float
    min_threshold: float
    low_stock: bool


class RequisitionCreate(BaseModel):
    site_id: int
    material_id: int
    quantity: Decimal = Field(gt=0)
    notes: Optional[str] = None


class RequisitionResponse(BaseModel):
    id: int
    site_id: int
    material_id: int
    quantity: float
    requested_by: int
    status: str
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class DecisionRequest(BaseModel):
    status: Literal["approved", "rejected"]
    notes: Optional[str] = None


# Equipment
class EquipmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=100)
    model: Optional[str] = Field(default=None, max_length=100)
    serial_number: Optional[str] = Field(default=None, max_length=100)
    purchase_date: Optional[date] = None
    status: EquipmentStatus = "available"
    last_maintenance_date: Optional[date] = None
    next_maintenance_date: Optional[date] = None


class EquipmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    model: Optional[str] = Field(default=None, max_length=100)
    serial_number: Optional[str] = Field(default=None, max_length=100)
    purchase_date: Optional[date] = None
    status: Optional[EquipmentStatus] = None
    last_maintenance_date: Optional[date] = None
    next_maintenance_date: Optional[date] = None


class EquipmentResponse(BaseModel):
    id: int
    name: str
    type: str
    model: Optional[str] = None
    serial_number: Optional[str] = None
    purchase_date: Optional[date] = None
    status: str
    last_maintenance_date: Optional[date] = None
    next_maintenance_date: Optional[date] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class UsageStart(BaseModel):
    site_id: int
    start_date: Optional[datetime] = None
    notes: Optional[str] = None


class UsageResponse(BaseModel):
    id: int
    equipment_id: int
    site_id: int
    user_id: int
    start_date: datetime
    end_date: Optional[datetime] = None
    status: str
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class BreakdownCreate(BaseModel):
    description: str = Field(min_length=1)
    severity: BreakdownSeverity = "medium"


class BreakdownUpdate(BaseModel):
    status: Optional[BreakdownStatus] = None
    repair_cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class BreakdownResponse(BaseModel):
    id: int
    equipment_id: int
    reported_by: int
    breakdown_date: Optional[datetime] = None
    description: str
    severity: str
    status: str
    fixed_at: Optional[datetime] = None
    repair_cost: Optional[float] = None
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# Attendance
class ClockRequest(BaseModel):
    site_id: int
    notes: Optional[str] = None


class AttendanceMark(BaseModel):
    user_id: int
    site_id: int
    attendance_date: date
    status: AttendanceStatus
    clock_in: Optional[datetime] = None
    clock_out: Optional[datetime] = None
    hours_worked: Optional[Decimal] = Field(default=None, ge=0, le=24)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_clock_order(self):
        if self.clock_out is not None:
            if self.clock_in is None:
                raise ValueError("clock_out requires clock_in")
            if self.clock_out <= self.clock_in:
                raise ValueError("clock_out must be later than clock_in")
        return self


class AttendanceResponse(BaseModel):
    id: int
    user_id: int
    site_id: int
    attendance_date: date
    clock_in: Optional[datetime] = None
    clock_out: Optional[datetime] = None
    hours_worked: Optional[float] = None
    status: str
    notes: Optional[str] = None
    marked_by: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class LeaveRequestCreate(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class LeaveRequestResponse(BaseModel):
    id: int
    user_id: int
    leave_type: str
    start_date: date
    end_date: date
    reason: Optional[str] = None
    status: str
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Documents / notifications
class DocumentResponse(BaseModel):
    id: int
    site_id: Optional[int] = None
    project_id: Optional[int] = None
    name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    category: Optional[str] = None
    uploaded_by: int
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: str
    related_id: Optional[int] = None
    related_type: Optional[str] = None
    is_read: bool
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class UnreadCountResponse(BaseModel):
    count: int


# Reports
class DashboardOverview(BaseModel):
    active_projects: int
    pending_tasks: int
    low_stock_materials: int
    equipment_issues: int
    present_today: int


class DashboardActivity(DailyActivityResponse):
    site_name: Optional[str] = None
    user_name: Optional[str] = None


class DashboardResponse(BaseModel):
    overview: DashboardOverview
    recent_activities: list[DashboardActivity]


class TaskProgressRow(BaseModel):
    status: str
    count: int
    urgent_count: int
    high_count: int


class MaterialUsageRow(BaseModel):
    material_id: int
    name: str
    unit: str
    delivered: float
    used: float
    current_stock: float


class AttendanceSummaryRow(BaseModel):
    user_id: int
    full_name: str
    present_days: int
    absent_days: int
    late_days: int
    total_hours: float


class EquipmentStatusRow(BaseModel):
    status: str
    count: int
