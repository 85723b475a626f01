"""
Pending accessory notifications, derived from the ledger on every call.
"""

from typing import List

from sqlalchemy.orm import Session, joinedload

from ..models import Assignment, AssignmentStatus


class NotificationService:

    @staticmethod
    def pending_accessory_notifications(db: Session) -> List[dict]:
        """
        One record per accessory that is still out on a Returned assignment,
        newest return first.
        """
        assignments = db.query(Assignment).options(
            joinedload(Assignment.asset),
            joinedload(Assignment.employee),
        ).filter(
            Assignment.status == AssignmentStatus.RETURNED,
            Assignment.returned_at.isnot(None)
        ).order_by(Assignment.returned_at.desc(), Assignment.id.desc()).all()

        notifications = []
        for assignment in assignments:
            asset = assignment.asset
            employee = assignment.employee
            for accessory in assignment.pending_accessories:
                notifications.append({
                    "assignmentId": assignment.id,
                    "asset": {
                        "id": asset.id,
                        "name": asset.name,
                        "assetId": asset.asset_id,
                    } if asset else None,
                    "employee": {
                        "id": employee.id,
                        "employeeId": employee.employee_id,
                        "name": employee.name,
                        "department": employee.department,
                    } if employee else None,
                    "accessory": accessory,
                    "returnedAt": assignment.returned_at,
                })
        return notifications
