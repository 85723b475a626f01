"""
Employee API Router
===================
Employee registry endpoints: listing, next-ID preview, create/update,
status changes and relieving (deactivation).
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..models import UserRole
from ..security import (
    get_db, get_current_user, require_role, SecurityAuditLog, http_error
)
from ..services.employee_service import EmployeeService
from ..services.assignment_service import AssignmentService
from ..services.exceptions import AssetTrackError
from ..services.validation import clamp_page

router = APIRouter(prefix="/api/v1/employees", tags=["Employees"])

WRITE_ROLES = (UserRole.ADMIN, UserRole.MANAGER)


def employee_out(employee) -> schemas.EmployeeOut:
    return schemas.EmployeeOut.model_validate(employee)


@router.get("")
def list_employees(
    status_filter: Optional[str] = Query(None, alias="status"),
    department: Optional[str] = None,
    search: Optional[str] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    try:
        if search or page is not None or limit is not None:
            page, limit = clamp_page(page, limit)
            items, total = EmployeeService.list_employees_paginated(
                db, status=status_filter, department=department, search=search, page=page, limit=limit
            )
            total_pages = math.ceil(total / limit)
            return {
                "employees": [employee_out(e) for e in items],
                "pagination": schemas.Pagination(
                    page=page, limit=limit, total=total,
                    total_pages=total_pages, has_more=page < total_pages
                ),
            }
        employees = EmployeeService.list_employees(db, status=status_filter, department=department)
        return {"employees": [employee_out(e) for e in employees]}
    except AssetTrackError as e:
        raise http_error(e)


@router.get("/next-id")
def next_employee_id(
    company: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Preview of the next generated employee ID (company-scoped when `company` is given)."""
    try:
        return {"nextEmployeeId": EmployeeService.preview_next_employee_id(db, company)}
    except AssetTrackError as e:
        raise http_error(e)


@router.get("/{employee_pk}")
def get_employee(employee_pk: int, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    try:
        return {"employee": employee_out(EmployeeService.get_employee(db, employee_pk))}
    except AssetTrackError as e:
        raise http_error(e)


@router.get("/{employee_pk}/active-assignments")
def active_assignments(employee_pk: int, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    try:
        assignments = AssignmentService.active_for_employee(db, employee_pk)
    except AssetTrackError as e:
        raise http_error(e)
    return {
        "assignments": [schemas.AssignmentOut.model_validate(a) for a in assignments],
        "count": len(assignments),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: schemas.EmployeeCreate,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    try:
        employee = EmployeeService.create_employee(db, payload.model_dump(exclude_unset=True))
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(
        db, current_user.id, "create", "employees", employee.id,
        {"employee_id": employee.employee_id, "company": employee.company}
    )
    return {"message": "Employee created successfully", "employee": employee_out(employee)}


@router.put("/{employee_pk}")
def update_employee(
    employee_pk: int,
    payload: schemas.EmployeeUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        employee = EmployeeService.update_employee(db, employee_pk, changes)
        count = employee.active_asset_count
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(db, current_user.id, "update", "employees", employee.id, changes)
    employee.active_asset_count = count
    return {"message": "Employee updated successfully", "employee": employee_out(employee)}


@router.patch("/{employee_pk}/status")
def update_employee_status(
    employee_pk: int,
    payload: schemas.EmployeeStatusIn,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    try:
        employee = EmployeeService.update_status(db, employee_pk, payload.status)
        count = EmployeeService.active_assignment_count(db, employee.id)
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(
        db, current_user.id, "status", "employees", employee.id, {"status": payload.status}
    )
    employee.active_asset_count = count
    return {"message": "Employee status updated successfully", "employee": employee_out(employee)}


@router.patch("/{employee_pk}/deactivate")
def deactivate_employee(
    employee_pk: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    """Relieve the employee. Rejected with 409 while they still hold assets."""
    try:
        employee = EmployeeService.deactivate_employee(db, employee_pk)
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(
        db, current_user.id, "deactivate", "employees", employee.id, {"exit_date": employee.exit_date}
    )
    return {"message": "Employee deactivated successfully", "employee": employee_out(employee)}
