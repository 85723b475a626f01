"""
Assignment Ledger
=================
The state machine that lends an asset to an employee and takes it back.

    Active ──return──> Returned (terminal)

Every transition touches the assignment row and its asset together and is
flushed as one unit; the caller commits. Claiming the asset and closing the
assignment are both conditional UPDATEs, so two writers racing on the same
asset or the same assignment cannot both win.

Accessories issued with an asset may come back later than the asset
itself: a Returned assignment keeps accepting additions to
`returned_accessories` until nothing is pending.
"""

import logging
from typing import Optional, List, Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..models import (
    Asset, AssetStatus, Employee, EmployeeStatus, Assignment, AssignmentStatus,
    ReturnCondition, canonical_accessories, utcnow
)
from .exceptions import (
    ValidationError, AssetNotFound, EmployeeNotFound, AssignmentNotFound,
    AssetNotAvailable, AlreadyAssigned, EmployeeNotAssignable, AlreadyReturned,
    NotActive, CannotUpdateActive, duplicate_from_integrity_error
)
from .validation import coerce_enum

logger = logging.getLogger(__name__)

# Fields an Active assignment may still change
ACTIVE_UPDATE_FIELDS = ("due_date", "notes", "accessories", "condition")
# Fields an explicit None clears instead of leaving untouched
CLEARABLE_FIELDS = ("due_date", "notes")


def accessory_list(items: Optional[Iterable[str]], field: str) -> List[str]:
    """Canonical accessory list, reporting unknown labels as a ValidationError."""
    try:
        return canonical_accessories(items)
    except ValueError as e:
        raise ValidationError.single(field, f"Unknown accessory in {field}") from e


def _check_subset(returned: List[str], issued: List[str], field: str):
    extra = [a for a in returned if a not in issued]
    if extra:
        raise ValidationError.single(
            field, f"Accessories were not issued with this assignment: {', '.join(extra)}"
        )


class AssignmentService:
    """Service class for the assignment ledger"""

    @staticmethod
    def _query(db: Session):
        return db.query(Assignment).options(
            joinedload(Assignment.asset),
            joinedload(Assignment.employee),
            joinedload(Assignment.assigned_by),
        )

    @staticmethod
    def _newest_first(query):
        return query.order_by(Assignment.assigned_at.desc(), Assignment.id.desc())

    # =========================================================================
    # CREATE
    # =========================================================================

    @staticmethod
    def create_assignment(db: Session, data: dict, assigned_by_id: Optional[int] = None) -> Assignment:
        """
        Lend an asset to an employee.

        Checks, in order: the asset exists, the employee exists and has not
        been relieved, the asset has no Active assignment, the asset is
        Available. The asset row is then claimed with
        UPDATE ... WHERE status = 'Available'; losing that race is reported
        as AssetNotAvailable.
        """
        asset = db.query(Asset).filter(Asset.id == data.get("asset_id")).first()
        if not asset:
            raise AssetNotFound()

        employee = db.query(Employee).filter(Employee.id == data.get("employee_id")).first()
        if not employee:
            raise EmployeeNotFound()
        if employee.status == EmployeeStatus.RELIEVED:
            raise EmployeeNotAssignable()

        existing = db.query(Assignment.id).filter(
            Assignment.asset_id == asset.id,
            Assignment.status == AssignmentStatus.ACTIVE
        ).first()
        if existing:
            logger.warning("Asset %s already has active assignment %s", asset.asset_id, existing.id)
            raise AlreadyAssigned()

        if asset.status != AssetStatus.AVAILABLE:
            logger.warning("Asset %s is %s, cannot assign", asset.asset_id, asset.status.value)
            raise AssetNotAvailable(f"Asset is not available for assignment (status: {asset.status.value})")

        issued = accessory_list(data.get("accessories"), "accessories")

        claimed = db.execute(
            update(Asset)
            .where(Asset.id == asset.id, Asset.status == AssetStatus.AVAILABLE)
            .values(status=AssetStatus.ASSIGNED, current_holder_id=employee.id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if not claimed:
            raise AssetNotAvailable()
        db.expire(asset)

        now = utcnow()
        assignment = Assignment(
            asset_id=asset.id,
            employee_id=employee.id,
            assigned_date=data.get("assigned_date") or now,
            assigned_at=now,
            due_date=data.get("due_date"),
            status=AssignmentStatus.ACTIVE,
            assigned_by_id=assigned_by_id,
            notes=data.get("notes"),
            issued_accessories=issued,
            returned_accessories=[],
        )
        db.add(assignment)
        try:
            db.flush()
        except IntegrityError as e:
            raise duplicate_from_integrity_error(e) from e

        logger.info(
            "Assignment %s: asset %s -> employee %s (accessories: %s)",
            assignment.id, asset.asset_id, employee.employee_id, ", ".join(issued) or "none"
        )
        return assignment

    # =========================================================================
    # RETURN
    # =========================================================================

    @staticmethod
    def _load_active(db: Session, assignment_pk: int):
        assignment = db.query(Assignment).filter(Assignment.id == assignment_pk).first()
        if not assignment:
            raise AssignmentNotFound()
        if assignment.status == AssignmentStatus.RETURNED:
            raise AlreadyReturned()
        asset = db.query(Asset).filter(Asset.id == assignment.asset_id).first() \
            if assignment.asset_id is not None else None
        if not asset:
            raise AssetNotFound("Asset for this assignment no longer exists")
        return assignment, asset

    @staticmethod
    def _close(
        db: Session,
        assignment: Assignment,
        asset: Asset,
        condition: ReturnCondition,
        return_date=None,
        returned_accessories: Optional[List[str]] = None,
        **extra
    ) -> Assignment:
        """Apply the Active -> Returned transition to the assignment and its asset."""
        returned = accessory_list(returned_accessories, "returned_accessories")
        _check_subset(returned, assignment.issued_accessories or [], "returned_accessories")

        now = utcnow()
        values = dict(
            status=AssignmentStatus.RETURNED,
            returned_at=now,
            return_date=return_date or now,
            condition=condition,
            returned_accessories=returned,
            updated_at=now,
        )
        values.update(extra)

        closed = db.execute(
            update(Assignment)
            .where(Assignment.id == assignment.id, Assignment.status == AssignmentStatus.ACTIVE)
            .values(**values)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not closed:
            raise AlreadyReturned()
        db.expire(assignment)

        asset.status = AssetStatus.AVAILABLE if condition == ReturnCondition.GOOD else AssetStatus.IN_REPAIR
        asset.current_holder_id = None
        db.flush()

        logger.info(
            "Assignment %s returned (%s); asset %s is now %s",
            assignment.id, condition.value, asset.asset_id, asset.status.value
        )
        if assignment.pending_accessories:
            logger.info(
                "Assignment %s still has pending accessories: %s",
                assignment.id, ", ".join(assignment.pending_accessories)
            )
        return assignment

    @staticmethod
    def return_assignment(db: Session, assignment_pk: int, return_date=None, notes: Optional[str] = None) -> Assignment:
        """Legacy return: condition is whatever was staged on the assignment, else GOOD."""
        assignment, asset = AssignmentService._load_active(db, assignment_pk)
        condition = assignment.condition or ReturnCondition.GOOD
        extra = {"notes": notes} if notes is not None else {}
        return AssignmentService._close(db, assignment, asset, condition, return_date=return_date, **extra)

    @staticmethod
    def return_asset(
        db: Session,
        assignment_pk: int,
        condition,
        remarks: Optional[str] = None,
        returned_accessories: Optional[List[str]] = None
    ) -> Assignment:
        """Return with an explicit condition and the accessories handed back."""
        if condition is None:
            raise ValidationError.single("condition", "condition is required")
        condition = coerce_enum(ReturnCondition, condition, "condition")
        assignment, asset = AssignmentService._load_active(db, assignment_pk)
        return AssignmentService._close(
            db, assignment, asset, condition,
            returned_accessories=returned_accessories, remarks=remarks
        )

    # =========================================================================
    # UPDATE
    # =========================================================================

    @staticmethod
    def update_assignment(db: Session, assignment_pk: int, updates: dict) -> Assignment:
        """
        Dispatch a partial update.

        A payload carrying `returned_accessories` is a late accessory return
        and must carry nothing else. Anything else edits an Active assignment;
        due_date and notes given as None are cleared.
        """
        provided = {k: v for k, v in updates.items() if v is not None or k in CLEARABLE_FIELDS}

        if "returned_accessories" in provided:
            others = sorted(k for k in provided if k != "returned_accessories")
            if others:
                raise ValidationError.single(
                    "returned_accessories",
                    f"returned_accessories cannot be combined with: {', '.join(others)}"
                )
            return AssignmentService.update_returned_accessories(
                db, assignment_pk, provided["returned_accessories"]
            )

        unknown = sorted(k for k in provided if k not in ACTIVE_UPDATE_FIELDS)
        if unknown:
            raise ValidationError([(k, f"{k} cannot be updated") for k in unknown])

        assignment = AssignmentService.get_assignment(db, assignment_pk)
        if assignment.status != AssignmentStatus.ACTIVE:
            raise NotActive("Only active assignments can be updated")

        if "due_date" in provided:
            assignment.due_date = provided["due_date"]
        if "notes" in provided:
            assignment.notes = provided["notes"]
        if "condition" in provided:
            assignment.condition = coerce_enum(ReturnCondition, provided["condition"], "condition")
        if "accessories" in provided:
            issued = accessory_list(provided["accessories"], "accessories")
            _check_subset(assignment.returned_accessories or [], issued, "accessories")
            assignment.issued_accessories = issued

        db.flush()
        logger.info("Assignment %s updated: %s", assignment.id, ", ".join(sorted(provided)) or "no changes")
        return assignment

    @staticmethod
    def update_returned_accessories(db: Session, assignment_pk: int, items: Iterable[str]) -> Assignment:
        """
        Record accessories handed back after the asset itself was returned.

        Adds to what is already recorded; never removes. Repeating a call
        with the same items changes nothing.
        """
        assignment = AssignmentService.get_assignment(db, assignment_pk)
        if assignment.status != AssignmentStatus.RETURNED:
            raise CannotUpdateActive()

        incoming = accessory_list(items, "returned_accessories")
        _check_subset(incoming, assignment.issued_accessories or [], "returned_accessories")

        merged = canonical_accessories(list(assignment.returned_accessories or []) + incoming)
        if merged != list(assignment.returned_accessories or []):
            assignment.returned_accessories = merged
            db.flush()
            logger.info(
                "Assignment %s accessories returned: %s (pending: %s)",
                assignment.id, ", ".join(merged), ", ".join(assignment.pending_accessories) or "none"
            )
        return assignment

    # =========================================================================
    # QUERIES
    # =========================================================================

    @staticmethod
    def get_assignment(db: Session, assignment_pk: int) -> Assignment:
        assignment = AssignmentService._query(db).filter(Assignment.id == assignment_pk).first()
        if not assignment:
            raise AssignmentNotFound()
        return assignment

    @staticmethod
    def list_assignments(
        db: Session,
        employee_id: Optional[int] = None,
        asset_id: Optional[int] = None,
        status: Optional[str] = None
    ) -> List[Assignment]:
        query = AssignmentService._query(db)
        if employee_id is not None:
            query = query.filter(Assignment.employee_id == employee_id)
        if asset_id is not None:
            query = query.filter(Assignment.asset_id == asset_id)
        if status:
            query = query.filter(Assignment.status == coerce_enum(AssignmentStatus, status, "status"))
        return AssignmentService._newest_first(query).all()

    @staticmethod
    def assignment_history(db: Session, asset_id: Optional[int] = None, employee_id: Optional[int] = None) -> List[Assignment]:
        """Every assignment, Active and Returned, for an asset and/or employee."""
        return AssignmentService.list_assignments(db, employee_id=employee_id, asset_id=asset_id)

    @staticmethod
    def active_for_employee(db: Session, employee_pk: int) -> List[Assignment]:
        if not db.query(Employee.id).filter(Employee.id == employee_pk).first():
            raise EmployeeNotFound()
        return AssignmentService.list_assignments(db, employee_id=employee_pk, status=AssignmentStatus.ACTIVE)
