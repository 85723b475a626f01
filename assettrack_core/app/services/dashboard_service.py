"""
Dashboard Aggregator
====================
Headline counts over assets, employees and the ledger. Nothing is cached;
every call reflects committed state at that moment.
"""

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..models import (
    Asset, AssetStatus, Employee, EmployeeStatus, Assignment, AssignmentStatus, utcnow
)

RECENT_ASSIGNMENTS_LIMIT = 10


class DashboardService:

    @staticmethod
    def _asset_counts(db: Session) -> dict:
        rows = db.query(Asset.status, func.count(Asset.id)).group_by(Asset.status).all()
        return {status: count for status, count in rows}

    @staticmethod
    def stats(db: Session) -> dict:
        by_status = DashboardService._asset_counts(db)

        total_employees = db.query(func.count(Employee.id)).filter(
            Employee.status == EmployeeStatus.ACTIVE
        ).scalar() or 0

        active_assignments = db.query(func.count(Assignment.id)).filter(
            Assignment.status == AssignmentStatus.ACTIVE
        ).scalar() or 0

        overdue = db.query(func.count(Assignment.id)).filter(
            Assignment.status == AssignmentStatus.ACTIVE,
            Assignment.returned_at.is_(None),
            Assignment.due_date.isnot(None),
            Assignment.due_date < utcnow()
        ).scalar() or 0

        recent = db.query(Assignment).options(
            joinedload(Assignment.asset),
            joinedload(Assignment.employee),
            joinedload(Assignment.assigned_by),
        ).filter(
            Assignment.status == AssignmentStatus.ACTIVE
        ).order_by(
            Assignment.assigned_at.desc(), Assignment.id.desc()
        ).limit(RECENT_ASSIGNMENTS_LIMIT).all()

        return {
            "totalAssets": sum(by_status.values()),
            "availableAssets": by_status.get(AssetStatus.AVAILABLE, 0),
            "assignedAssets": by_status.get(AssetStatus.ASSIGNED, 0),
            "assetsInRepair": by_status.get(AssetStatus.IN_REPAIR, 0),
            "totalEmployees": total_employees,
            "activeAssignments": active_assignments,
            "overdueAssets": overdue,
            "recentAssignments": recent,
        }
