from typing import Optional, List, Annotated
from datetime import datetime, timezone
from pydantic import BaseModel, EmailStr, Field, AfterValidator, field_validator
from pydantic.alias_generators import to_camel

from .models import Accessory, ReturnCondition


def to_naive_utc(value: datetime) -> datetime:
    """Offset-aware input is converted to UTC; every stored timestamp is naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]

# Upper-case accessory names still sent by older clients as `accessoriesIssued`
LEGACY_ACCESSORY_NAMES = {a.name: a.value for a in Accessory}


def map_legacy_accessories(items: Optional[List[str]]) -> Optional[List[str]]:
    if items is None:
        return None
    mapped = []
    for item in items:
        if item not in LEGACY_ACCESSORY_NAMES:
            raise ValueError(f"Unknown accessory '{item}'")
        mapped.append(LEGACY_ACCESSORY_NAMES[item])
    return mapped


def merge_accessories(current: Optional[List[Accessory]], legacy: Optional[List[str]]) -> Optional[List[str]]:
    if current is None and legacy is None:
        return None
    return [a.value for a in (current or [])] + (legacy or [])


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# =============================================================================
# AUTH & USERS
# =============================================================================

class LoginIn(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class RefreshIn(ApiModel):
    refresh_token: str


class ChangePasswordIn(ApiModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class UpdateEmailIn(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UpdateProfileIn(ApiModel):
    name: str = Field(..., min_length=2, max_length=60)


class UserSummary(ApiModel):
    id: int
    email: str
    name: Optional[str] = None
    role: str


class UserOut(UserSummary):
    status: str
    created_at: Optional[datetime] = None


class TokenPair(ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


# =============================================================================
# EMPLOYEES
# =============================================================================

class EmployeeCreate(ApiModel):
    employee_id: Optional[str] = None
    company: Optional[str] = None
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    position: str = Field(..., min_length=1)
    hire_date: UTCDateTime
    status: Optional[str] = None
    exit_date: Optional[UTCDateTime] = None
    user_id: Optional[int] = None


class EmployeeUpdate(ApiModel):
    employee_id: Optional[str] = None
    company: Optional[str] = None
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    hire_date: Optional[UTCDateTime] = None
    status: Optional[str] = None
    exit_date: Optional[UTCDateTime] = None
    user_id: Optional[int] = None


class EmployeeStatusIn(ApiModel):
    status: str


class EmployeeSummary(ApiModel):
    id: int
    employee_id: str
    name: str
    email: str
    department: str


class EmployeeOut(EmployeeSummary):
    company: Optional[str] = None
    phone: str
    position: str
    status: str
    hire_date: datetime
    exit_date: Optional[datetime] = None
    user_id: Optional[int] = None
    active_asset_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# ASSETS
# =============================================================================

class AssetCreate(ApiModel):
    asset_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    serial_number: str = Field(..., min_length=1)
    purchase_date: UTCDateTime
    warranty_expiration: Optional[UTCDateTime] = None
    department: Optional[str] = None
    status: Optional[str] = None


class AssetUpdate(ApiModel):
    asset_id: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    serial_number: Optional[str] = None
    purchase_date: Optional[UTCDateTime] = None
    warranty_expiration: Optional[UTCDateTime] = None
    department: Optional[str] = None
    status: Optional[str] = None


class MaintenanceIn(ApiModel):
    date: UTCDateTime
    type: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    cost: float = Field(0.0, ge=0)
    performed_by: str = Field(..., min_length=1)


class MaintenanceOut(ApiModel):
    id: int
    date: datetime
    type: str
    description: str
    cost: float
    performed_by: str


class AssetSummary(ApiModel):
    id: int
    asset_id: str
    name: str
    category: str
    serial_number: str
    status: str


class AssetOut(AssetSummary):
    purchase_date: datetime
    warranty_expiration: Optional[datetime] = None
    department: Optional[str] = None
    current_holder: Optional[EmployeeSummary] = None
    maintenance_history: List[MaintenanceOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


# =============================================================================
# ASSIGNMENTS
# =============================================================================

class AssignmentCreate(ApiModel):
    asset_id: int
    employee_id: int
    assigned_date: Optional[UTCDateTime] = None
    due_date: Optional[UTCDateTime] = None
    notes: Optional[str] = None
    accessories: Optional[List[Accessory]] = None
    accessories_issued: Optional[List[str]] = None

    @field_validator("accessories_issued")
    @classmethod
    def map_legacy(cls, v):
        return map_legacy_accessories(v)

    def to_service(self) -> dict:
        return {
            "asset_id": self.asset_id,
            "employee_id": self.employee_id,
            "assigned_date": self.assigned_date,
            "due_date": self.due_date,
            "notes": self.notes,
            "accessories": merge_accessories(self.accessories, self.accessories_issued) or [],
        }


class ReturnIn(ApiModel):
    """Legacy return payload, identifies the assignment in the body."""
    assignment_id: int
    return_date: Optional[UTCDateTime] = None
    notes: Optional[str] = None


class ReturnAssetIn(ApiModel):
    condition: ReturnCondition
    remarks: Optional[str] = None
    returned_accessories: Optional[List[Accessory]] = None


class AssignmentUpdate(ApiModel):
    due_date: Optional[UTCDateTime] = None
    notes: Optional[str] = None
    accessories: Optional[List[Accessory]] = None
    accessories_issued: Optional[List[str]] = None
    condition: Optional[ReturnCondition] = None
    returned_accessories: Optional[List[Accessory]] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "forbid"

    @field_validator("accessories_issued")
    @classmethod
    def map_legacy(cls, v):
        return map_legacy_accessories(v)

    def to_service(self) -> dict:
        changes = {}
        # an explicit null clears these two
        for field in ("due_date", "notes"):
            if field in self.model_fields_set:
                changes[field] = getattr(self, field)
        if self.condition is not None:
            changes["condition"] = self.condition
        accessories = merge_accessories(self.accessories, self.accessories_issued)
        if accessories is not None:
            changes["accessories"] = accessories
        if self.returned_accessories is not None:
            changes["returned_accessories"] = [a.value for a in self.returned_accessories]
        return changes


class AssignmentOut(ApiModel):
    id: int
    asset: Optional[AssetSummary] = None
    employee: Optional[EmployeeSummary] = None
    assigned_by: Optional[UserSummary] = None
    assigned_date: datetime
    assigned_at: datetime
    due_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    status: str
    notes: Optional[str] = None
    condition: Optional[str] = None
    remarks: Optional[str] = None
    issued_accessories: List[str] = []
    returned_accessories: List[str] = []
    pending_accessories: List[str] = []
    is_overdue: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# DASHBOARD & NOTIFICATIONS
# =============================================================================

class DashboardStatsOut(ApiModel):
    total_assets: int
    available_assets: int
    assigned_assets: int
    assets_in_repair: int
    total_employees: int
    active_assignments: int
    overdue_assets: int
    recent_assignments: List[AssignmentOut] = []


class NotificationAsset(ApiModel):
    id: int
    name: str
    asset_id: str


class NotificationEmployee(ApiModel):
    id: int
    employee_id: str
    name: str
    department: str


class PendingAccessoryOut(ApiModel):
    assignment_id: int
    asset: Optional[NotificationAsset] = None
    employee: Optional[NotificationEmployee] = None
    accessory: str
    returned_at: datetime
