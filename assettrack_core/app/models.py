"""
Asset Tracking Data Models
==========================
Relational model for the asset lifecycle and assignment ledger.

- Assets and their maintenance history
- Employees (with company-scoped identifiers)
- Assignments: the ledger linking one asset to one employee over time
- Sequence counters backing human-readable identifiers
- Login users and the audit log
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Float, JSON,
    Enum as SQLEnum, Index, text
)
from sqlalchemy.orm import relationship
from .db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_column(enum_cls, **kwargs):
    # store the enum value ("In Repair"), not the member name ("IN_REPAIR")
    return Column(
        SQLEnum(enum_cls, values_callable=lambda e: [m.value for m in e],
                native_enum=False, length=20, validate_strings=True),
        **kwargs
    )


# =============================================================================
# ENUMS
# =============================================================================

class AssetStatus(str, Enum):
    AVAILABLE = "Available"
    ASSIGNED = "Assigned"
    IN_REPAIR = "In Repair"
    RETIRED = "Retired"


class EmployeeStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    RELIEVED = "Relieved"


class Company(str, Enum):
    V_ACCEL = "V-Accel"
    AXESS_TECHNOLOGY = "Axess Technology"


class AssignmentStatus(str, Enum):
    ACTIVE = "Active"
    RETURNED = "Returned"


class ReturnCondition(str, Enum):
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"


class Accessory(str, Enum):
    """Accessories that can be issued alongside an asset."""
    CHARGER = "Charger"
    MOUSE = "Mouse"
    HEADPHONES = "Headphones"
    MONITOR = "Monitor"


class UserRole(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    EMPLOYEE = "Employee"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# Canonical ordering used whenever an accessory list is stored or reported
ACCESSORY_ORDER = [a.value for a in Accessory]


def canonical_accessories(items) -> list:
    """Deduplicate accessory labels and return them in canonical order."""
    wanted = {Accessory(i).value for i in (items or [])}
    return [a for a in ACCESSORY_ORDER if a in wanted]


# =============================================================================
# USERS
# =============================================================================

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(120), nullable=True)
    password_hash = Column(String, nullable=False)
    role = _enum_column(UserRole, nullable=False, default=UserRole.EMPLOYEE)
    status = _enum_column(UserStatus, nullable=False, default=UserStatus.ACTIVE)
    refresh_token = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# =============================================================================
# ASSETS
# =============================================================================

class Asset(Base):
    """
    A trackable physical item.

    `status` is owned by the assignment ledger while the asset is out:
    status == Assigned exactly when one Active assignment references it,
    and `current_holder_id` then points at that assignment's employee.
    """
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(String(30), unique=True, nullable=False, index=True)  # AST-001
    name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False)
    serial_number = Column(String(100), unique=True, nullable=False, index=True)
    status = _enum_column(AssetStatus, nullable=False, default=AssetStatus.AVAILABLE)
    purchase_date = Column(DateTime, nullable=False)
    warranty_expiration = Column(DateTime, nullable=True)
    department = Column(String(100), nullable=True)

    # Relation only, the holder is not owned by the asset
    current_holder_id = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    current_holder = relationship("Employee", foreign_keys=[current_holder_id])
    maintenance_history = relationship(
        "MaintenanceRecord",
        back_populates="asset",
        cascade="all, delete-orphan",
        order_by=lambda: [MaintenanceRecord.date, MaintenanceRecord.id],
    )

    __table_args__ = (
        Index('ix_asset_status_category', 'status', 'category'),
    )


class MaintenanceRecord(Base):
    __tablename__ = "maintenance_records"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime, nullable=False)
    type = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    cost = Column(Float, nullable=False, default=0.0)
    performed_by = Column(String(120), nullable=False)

    asset = relationship("Asset", back_populates="maintenance_history")


# =============================================================================
# EMPLOYEES
# =============================================================================

class Employee(Base):
    """
    Employee record.

    exit_date is set if and only if status == Relieved.
    """
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String(30), unique=True, nullable=False, index=True)  # EMP-001 / VA1000
    company = _enum_column(Company, nullable=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), nullable=False)
    department = Column(String(100), nullable=False)
    position = Column(String(100), nullable=False)
    status = _enum_column(EmployeeStatus, nullable=False, default=EmployeeStatus.ACTIVE)
    hire_date = Column(DateTime, nullable=False)
    exit_date = Column(DateTime, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User")

    # Derived, filled in by the registry on list/get; never persisted
    active_asset_count = 0


# =============================================================================
# ASSIGNMENT LEDGER
# =============================================================================

class Assignment(Base):
    """
    One asset lent to one employee for a span of time.

    Active -> Returned is the only transition. After return the record is
    frozen except for `returned_accessories`, which may keep growing until
    every issued accessory has come back.
    """
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    # Hard-deleting an asset leaves its ledger rows pointing at nothing
    asset_id = Column(Integer, ForeignKey("assets.id", ondelete="SET NULL"), nullable=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)

    assigned_date = Column(DateTime, nullable=False, default=utcnow)
    assigned_at = Column(DateTime, nullable=False, default=utcnow)  # system timestamp
    due_date = Column(DateTime, nullable=True)
    return_date = Column(DateTime, nullable=True)
    returned_at = Column(DateTime, nullable=True)

    status = _enum_column(AssignmentStatus, nullable=False, default=AssignmentStatus.ACTIVE)
    assigned_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    notes = Column(Text, nullable=True)
    condition = _enum_column(ReturnCondition, nullable=True)
    remarks = Column(Text, nullable=True)

    # Canonical accessory labels; lists are always reassigned, never mutated in place
    issued_accessories = Column(JSON, nullable=False, default=list)
    returned_accessories = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    asset = relationship("Asset", foreign_keys=[asset_id])
    employee = relationship("Employee", foreign_keys=[employee_id])
    assigned_by = relationship("User", foreign_keys=[assigned_by_id])

    __table_args__ = (
        Index('ix_assignment_asset_status', 'asset_id', 'status'),
        # At most one Active assignment per asset
        Index(
            'uq_assignment_active_asset', 'asset_id', unique=True,
            sqlite_where=text("status = 'Active'"),
            postgresql_where=text("status = 'Active'"),
        ),
    )

    @property
    def is_overdue(self) -> bool:
        if self.status != AssignmentStatus.ACTIVE:
            return False
        if self.returned_at is not None or self.return_date is not None:
            return False
        if self.due_date is None:
            return False
        return self.due_date < utcnow()

    @property
    def pending_accessories(self) -> list:
        """Issued accessories that have not been confirmed returned yet."""
        returned = set(self.returned_accessories or [])
        return [a for a in (self.issued_accessories or []) if a not in returned]


# =============================================================================
# SYSTEM TABLES
# =============================================================================

class SequenceCounter(Base):
    """
    Monotonic counters for human-readable identifiers.
    One row per logical sequence ("asset", "employee", "VA", "AT").
    """
    __tablename__ = "sequence_counters"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    seq = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class AuditLog(Base):
    """
    General audit log for sensitive changes.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # What changed
    entity_type = Column(String(50), nullable=False)  # Table name
    entity_id = Column(Integer, nullable=False)
    action = Column(String(30), nullable=False)  # create, update, delete, return

    # Change details (JSON stored as text)
    new_values = Column(Text, nullable=True)

    # Who and when
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    ip_address = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_audit_entity', 'entity_type', 'entity_id'),
        Index('ix_audit_user_date', 'user_id', 'created_at'),
    )
