"""
Assignment API Router
=====================
Ledger endpoints:
- assign an asset to an employee
- return (legacy body-addressed form and the per-assignment form)
- edit an active assignment / record late accessory returns
- listing and history
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..models import UserRole
from ..security import (
    get_db, get_current_user, require_role, SecurityAuditLog, http_error
)
from ..services.assignment_service import AssignmentService
from ..services.exceptions import AssetTrackError

router = APIRouter(prefix="/api/v1/assignments", tags=["Assignments"])

WRITE_ROLES = (UserRole.ADMIN, UserRole.MANAGER)


def assignment_out(assignment) -> schemas.AssignmentOut:
    return schemas.AssignmentOut.model_validate(assignment)


def _audit_return(db: Session, user_id: int, assignment):
    SecurityAuditLog.log_sensitive_action(
        db, user_id, "return", "assignments", assignment.id,
        {
            "asset_id": assignment.asset_id,
            "condition": assignment.condition,
            "returned_accessories": assignment.returned_accessories,
        }
    )


# =============================================================================
# QUERIES
# =============================================================================

@router.get("")
def list_assignments(
    employee_id: Optional[int] = Query(None, alias="employeeId"),
    asset_id: Optional[int] = Query(None, alias="assetId"),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    try:
        assignments = AssignmentService.list_assignments(
            db, employee_id=employee_id, asset_id=asset_id, status=status_filter
        )
    except AssetTrackError as e:
        raise http_error(e)
    return {"assignments": [assignment_out(a) for a in assignments]}


@router.get("/history")
def assignment_history(
    asset_id: Optional[int] = Query(None, alias="assetId"),
    employee_id: Optional[int] = Query(None, alias="employeeId"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    history = AssignmentService.assignment_history(db, asset_id=asset_id, employee_id=employee_id)
    return {"history": [assignment_out(a) for a in history]}


@router.get("/{assignment_pk}")
def get_assignment(assignment_pk: int, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    try:
        return {"assignment": assignment_out(AssignmentService.get_assignment(db, assignment_pk))}
    except AssetTrackError as e:
        raise http_error(e)


# =============================================================================
# COMMANDS
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_assignment(
    payload: schemas.AssignmentCreate,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    """
    Assign an asset.

    409 when the asset already has an active assignment, is not Available,
    or the employee has been relieved.
    """
    try:
        assignment = AssignmentService.create_assignment(db, payload.to_service(), assigned_by_id=current_user.id)
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(
        db, current_user.id, "assign", "assignments", assignment.id,
        {
            "asset_id": assignment.asset_id,
            "employee_id": assignment.employee_id,
            "accessories": assignment.issued_accessories,
        }
    )
    return {"message": "Asset assigned successfully", "assignment": assignment_out(assignment)}


@router.patch("/return")
def return_assignment(
    payload: schemas.ReturnIn,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    """Legacy return addressed by `assignmentId` in the body."""
    try:
        assignment = AssignmentService.return_assignment(
            db, payload.assignment_id, return_date=payload.return_date, notes=payload.notes
        )
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    _audit_return(db, current_user.id, assignment)
    return {"message": "Asset returned successfully", "assignment": assignment_out(assignment)}


@router.post("/{assignment_pk}/return")
def return_asset(
    assignment_pk: int,
    payload: schemas.ReturnAssetIn,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    """Return with a condition. DAMAGED sends the asset to In Repair."""
    returned = [a.value for a in payload.returned_accessories] if payload.returned_accessories is not None else None
    try:
        assignment = AssignmentService.return_asset(
            db, assignment_pk, payload.condition,
            remarks=payload.remarks, returned_accessories=returned
        )
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    _audit_return(db, current_user.id, assignment)
    return {"message": "Asset returned successfully", "assignment": assignment_out(assignment)}


@router.patch("/{assignment_pk}")
def update_assignment(
    assignment_pk: int,
    payload: schemas.AssignmentUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    """
    Edit an active assignment (dueDate, notes, accessories, condition), or,
    for a returned one, record accessories handed back later
    (returnedAccessories on its own).
    """
    changes = payload.to_service()
    try:
        assignment = AssignmentService.update_assignment(db, assignment_pk, changes)
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(db, current_user.id, "update", "assignments", assignment.id, changes)
    return {"message": "Assignment updated successfully", "assignment": assignment_out(assignment)}
