"""
Employee Registry
=================
Employee records, their status lifecycle and company-scoped identifiers.

Status rules:
- ACTIVE / INACTIVE are the working states
- Relieved is the departure state and always carries an exit date;
  any other status forces the exit date back to None
- nobody becomes Relieved while still holding an Active assignment

Status changes are mirrored onto the linked login account in the same
transaction (Relieved maps to INACTIVE).
"""

import logging
from typing import Optional, List, Tuple, Dict

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import (
    Employee, EmployeeStatus, Assignment, AssignmentStatus, User, UserStatus, utcnow
)
from .exceptions import (
    ValidationError, EmployeeNotFound, DuplicateId, DuplicateEmail, UserNotFound,
    HasActiveAssets, ExitDateRequired, InvalidCompany, duplicate_from_integrity_error
)
from .validation import coerce_enum, clamp_page, like_pattern, missing_fields
from .sequences import (
    EMPLOYEE_ID_PATTERN, COMPANY_ID_PATTERN, COMPANY_PREFIXES,
    next_employee_id, next_company_employee_id,
    preview_next_employee_id, preview_next_company_employee_id, reserve_identifier
)

logger = logging.getLogger(__name__)

EMPLOYEE_FIELDS = (
    "employee_id", "company", "name", "email", "phone", "department",
    "position", "status", "hire_date", "exit_date", "user_id",
)
REQUIRED_EMPLOYEE_FIELDS = ("name", "email", "phone", "department", "position", "hire_date")

# Login account status mirrored from the employee status
USER_STATUS_FOR_EMPLOYEE = {
    EmployeeStatus.ACTIVE: UserStatus.ACTIVE,
    EmployeeStatus.INACTIVE: UserStatus.INACTIVE,
    EmployeeStatus.RELIEVED: UserStatus.INACTIVE,
}


def normalize_status(value) -> EmployeeStatus:
    """Uppercase the status, except Relieved which keeps its own spelling."""
    if isinstance(value, EmployeeStatus):
        return value
    text = str(value).strip()
    if text.lower() == EmployeeStatus.RELIEVED.value.lower():
        return EmployeeStatus.RELIEVED
    return coerce_enum(EmployeeStatus, text.upper(), "status")


def validate_company(company: Optional[str]) -> Optional[str]:
    if company is None:
        return None
    if company not in COMPANY_PREFIXES:
        raise InvalidCompany(f"Company '{company}' is not recognized")
    return company


def normalize_employee_id(value: str, company: Optional[str] = None) -> str:
    """
    Trim and uppercase a supplied employee ID and check it against the
    legacy (EMP-001) or company-scoped (VA1000 / AT1000) format.
    """
    normalized = str(value).strip().upper()
    if EMPLOYEE_ID_PATTERN.match(normalized):
        return normalized
    match = COMPANY_ID_PATTERN.match(normalized)
    if match:
        expected = COMPANY_PREFIXES.get(company) if company else None
        if expected and match.group(1) != expected:
            raise ValidationError.single(
                "employee_id", f"Employee ID for {company} must start with {expected}"
            )
        return normalized
    raise ValidationError.single(
        "employee_id", "Employee ID must match format EMP-001, VA1000 or AT1000"
    )


def normalize_email(value: str) -> str:
    return str(value).strip().lower()


class EmployeeService:
    """Service class for employee records"""

    # -------------------------------------------------------------------------
    # active assignment counts
    # -------------------------------------------------------------------------

    @staticmethod
    def active_assignment_count(db: Session, employee_pk: int) -> int:
        """Number of Active assignments held by the employee."""
        return db.query(func.count(Assignment.id)).filter(
            Assignment.employee_id == employee_pk,
            Assignment.status == AssignmentStatus.ACTIVE
        ).scalar() or 0

    @staticmethod
    def active_counts(db: Session, employee_pks: List[int]) -> Dict[int, int]:
        if not employee_pks:
            return {}
        rows = db.query(
            Assignment.employee_id, func.count(Assignment.id)
        ).filter(
            Assignment.status == AssignmentStatus.ACTIVE,
            Assignment.employee_id.in_(employee_pks)
        ).group_by(Assignment.employee_id).all()
        return {employee_pk: count for employee_pk, count in rows}

    @staticmethod
    def _attach_counts(db: Session, employees: List[Employee]) -> List[Employee]:
        counts = EmployeeService.active_counts(db, [e.id for e in employees])
        for employee in employees:
            employee.active_asset_count = counts.get(employee.id, 0)
        return employees

    # -------------------------------------------------------------------------
    # helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _exit_date_for(status: EmployeeStatus, exit_date):
        if status == EmployeeStatus.RELIEVED:
            if exit_date is None:
                raise ExitDateRequired()
            return exit_date
        return None

    @staticmethod
    def _cascade_to_user(db: Session, employee: Employee):
        """Mirror the employee status onto the linked login account."""
        if not employee.user_id:
            return
        user = db.query(User).filter(User.id == employee.user_id).first()
        if user is None:
            logger.warning("Employee %s links to missing user %s", employee.employee_id, employee.user_id)
            return
        user.status = USER_STATUS_FOR_EMPLOYEE[employee.status]

    @staticmethod
    def _ensure_unique(db: Session, employee_id: Optional[str], email: Optional[str], exclude_id: Optional[int] = None):
        if employee_id:
            q = db.query(Employee.id).filter(Employee.employee_id == employee_id)
            if exclude_id:
                q = q.filter(Employee.id != exclude_id)
            if q.first():
                raise DuplicateId("Employee ID already exists")
        if email:
            q = db.query(Employee.id).filter(Employee.email == email)
            if exclude_id:
                q = q.filter(Employee.id != exclude_id)
            if q.first():
                raise DuplicateEmail("Employee with this email already exists")

    @staticmethod
    def _check_user(db: Session, user_id: Optional[int]):
        if user_id is not None and not db.query(User.id).filter(User.id == user_id).first():
            raise UserNotFound()

    @staticmethod
    def _flush(db: Session):
        try:
            db.flush()
        except IntegrityError as e:
            raise duplicate_from_integrity_error(e) from e

    # -------------------------------------------------------------------------
    # commands
    # -------------------------------------------------------------------------

    @staticmethod
    def create_employee(db: Session, data: dict) -> Employee:
        """
        Register an employee.

        Without an explicit employee_id the ID comes from the company's
        sequence (VA1000...) or, when no company is given, from the legacy
        EMP-001 sequence.
        """
        data = {k: v for k, v in data.items() if k in EMPLOYEE_FIELDS}
        errors = missing_fields(data, REQUIRED_EMPLOYEE_FIELDS, creating=True)
        if errors:
            raise ValidationError(errors)

        company = validate_company(data.get("company"))
        status = normalize_status(data["status"]) if data.get("status") else EmployeeStatus.ACTIVE
        exit_date = EmployeeService._exit_date_for(status, data.get("exit_date"))

        email = normalize_email(data["email"])
        supplied_id = data.get("employee_id")
        employee_id = normalize_employee_id(supplied_id, company) if supplied_id else None
        EmployeeService._ensure_unique(db, employee_id, email)
        EmployeeService._check_user(db, data.get("user_id"))

        if employee_id is None:
            employee_id = next_company_employee_id(db, company) if company else next_employee_id(db)
        else:
            reserve_identifier(db, employee_id)

        employee = Employee(
            employee_id=employee_id,
            company=company,
            name=str(data["name"]).strip(),
            email=email,
            phone=data["phone"],
            department=data["department"],
            position=data["position"],
            status=status,
            hire_date=data["hire_date"],
            exit_date=exit_date,
            user_id=data.get("user_id"),
        )
        db.add(employee)
        EmployeeService._flush(db)
        EmployeeService._cascade_to_user(db, employee)

        logger.info("Employee %s created (%s)", employee.employee_id, employee.status.value)
        employee.active_asset_count = 0
        return employee

    @staticmethod
    def update_employee(db: Session, employee_pk: int, data: dict) -> Employee:
        """
        Partial update. The employee_id itself cannot be changed here.
        Moving to Relieved requires an exit date and no Active assignments.
        """
        employee = EmployeeService.get_employee(db, employee_pk)
        data = {k: v for k, v in data.items() if k in EMPLOYEE_FIELDS}

        if "employee_id" in data and data["employee_id"] is not None \
                and str(data["employee_id"]).strip().upper() != employee.employee_id:
            raise ValidationError.single("employee_id", "Employee ID cannot be changed")
        data.pop("employee_id", None)

        errors = missing_fields(data, REQUIRED_EMPLOYEE_FIELDS, creating=False)
        if errors:
            raise ValidationError(errors)

        if "company" in data:
            data["company"] = validate_company(data["company"])
        if "email" in data:
            data["email"] = normalize_email(data["email"])
            if data["email"] != employee.email:
                EmployeeService._ensure_unique(db, None, data["email"], exclude_id=employee.id)
        if "user_id" in data:
            EmployeeService._check_user(db, data["user_id"])

        previous_status = employee.status
        status = normalize_status(data["status"]) if data.get("status") else previous_status
        exit_date = data["exit_date"] if "exit_date" in data else employee.exit_date

        if status == EmployeeStatus.RELIEVED and previous_status != EmployeeStatus.RELIEVED:
            active = EmployeeService.active_assignment_count(db, employee.id)
            if active:
                logger.warning("Refusing to relieve %s: %d active assignment(s)", employee.employee_id, active)
                raise HasActiveAssets(f"Employee still holds {active} asset(s)")

        data["status"] = status
        data["exit_date"] = EmployeeService._exit_date_for(status, exit_date)

        for field, value in data.items():
            setattr(employee, field, value)

        EmployeeService._flush(db)
        if status != previous_status or "user_id" in data:
            EmployeeService._cascade_to_user(db, employee)

        logger.info("Employee %s updated: %s", employee.employee_id, ", ".join(sorted(data)))
        employee.active_asset_count = EmployeeService.active_assignment_count(db, employee.id)
        return employee

    @staticmethod
    def deactivate_employee(db: Session, employee_pk: int) -> Employee:
        """Mark the employee Relieved as of now. Rejected while they hold assets."""
        employee = EmployeeService.get_employee(db, employee_pk)

        active = EmployeeService.active_assignment_count(db, employee.id)
        if active:
            logger.warning("Refusing to deactivate %s: %d active assignment(s)", employee.employee_id, active)
            raise HasActiveAssets(f"Employee still holds {active} asset(s)")

        if employee.status != EmployeeStatus.RELIEVED:
            employee.status = EmployeeStatus.RELIEVED
            employee.exit_date = utcnow()
        EmployeeService._cascade_to_user(db, employee)
        db.flush()

        logger.info("Employee %s relieved on %s", employee.employee_id, employee.exit_date)
        employee.active_asset_count = 0
        return employee

    @staticmethod
    def update_status(db: Session, employee_pk: int, status) -> Employee:
        """Directly set ACTIVE or INACTIVE (use deactivate_employee for Relieved)."""
        status = normalize_status(status)
        if status == EmployeeStatus.RELIEVED:
            raise ValidationError.single("status", "status must be ACTIVE or INACTIVE")

        employee = EmployeeService.get_employee(db, employee_pk)
        employee.status = status
        employee.exit_date = None
        EmployeeService._cascade_to_user(db, employee)
        db.flush()

        logger.info("Employee %s status set to %s", employee.employee_id, status.value)
        return employee

    # -------------------------------------------------------------------------
    # queries
    # -------------------------------------------------------------------------

    @staticmethod
    def _filtered_query(db: Session, status: Optional[str] = None, department: Optional[str] = None):
        query = db.query(Employee)
        if status:
            query = query.filter(Employee.status == normalize_status(status))
        if department:
            query = query.filter(Employee.department == department)
        return query

    @staticmethod
    def get_employee(db: Session, employee_pk: int) -> Employee:
        employee = db.query(Employee).filter(Employee.id == employee_pk).first()
        if not employee:
            raise EmployeeNotFound()
        employee.active_asset_count = EmployeeService.active_assignment_count(db, employee.id)
        return employee

    @staticmethod
    def list_employees(db: Session, status: Optional[str] = None, department: Optional[str] = None) -> List[Employee]:
        employees = EmployeeService._filtered_query(db, status, department) \
            .order_by(Employee.created_at.desc(), Employee.id.desc()).all()
        return EmployeeService._attach_counts(db, employees)

    @staticmethod
    def list_employees_paginated(
        db: Session,
        status: Optional[str] = None,
        department: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Employee], int]:
        """One page of employees (search over ID, name, email, department) plus the total."""
        page, limit = clamp_page(page, limit)
        query = EmployeeService._filtered_query(db, status, department)

        term = (search or "").strip()
        if term:
            pattern = like_pattern(term)
            query = query.filter(or_(
                Employee.employee_id.ilike(pattern, escape="\\"),
                Employee.name.ilike(pattern, escape="\\"),
                Employee.email.ilike(pattern, escape="\\"),
                Employee.department.ilike(pattern, escape="\\"),
            ))

        total = query.count()
        employees = query.order_by(Employee.created_at.desc(), Employee.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()
        return EmployeeService._attach_counts(db, employees), total

    @staticmethod
    def preview_next_employee_id(db: Session, company: Optional[str] = None) -> str:
        if company:
            return preview_next_company_employee_id(db, company)
        return preview_next_employee_id(db)
