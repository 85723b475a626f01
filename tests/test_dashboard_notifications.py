from datetime import timedelta

from assettrack_core.app.models import utcnow
from assettrack_core.app.services.asset_service import AssetService
from assettrack_core.app.services.assignment_service import AssignmentService
from assettrack_core.app.services.dashboard_service import DashboardService
from assettrack_core.app.services.notification_service import NotificationService

from conftest import make_asset, make_employee, make_assignment


def test_empty_dashboard(db):
    stats = DashboardService.stats(db)
    assert stats == {
        "totalAssets": 0,
        "availableAssets": 0,
        "assignedAssets": 0,
        "assetsInRepair": 0,
        "totalEmployees": 0,
        "activeAssignments": 0,
        "overdueAssets": 0,
        "recentAssignments": [],
    }


def test_dashboard_counts(db):
    make_asset(db)
    make_asset(db, status="In Repair")
    make_asset(db, status="Retired")
    lent = make_asset(db)
    late = make_asset(db)

    worker = make_employee(db)
    make_employee(db, status="INACTIVE")
    make_employee(db, status="Relieved", exit_date=utcnow())

    make_assignment(db, lent, worker, due_date=utcnow() + timedelta(days=7))
    overdue = make_assignment(db, late, worker, due_date=utcnow() - timedelta(days=2))

    stats = DashboardService.stats(db)
    assert stats["totalAssets"] == 5
    assert stats["availableAssets"] == 1
    assert stats["assignedAssets"] == 2
    assert stats["assetsInRepair"] == 1
    assert stats["totalEmployees"] == 1
    assert stats["activeAssignments"] == 2
    assert stats["overdueAssets"] == 1
    assert stats["recentAssignments"][0].id == overdue.id


def test_recent_assignments_limited_to_ten_active(db):
    employee = make_employee(db)
    assignments = [make_assignment(db, make_asset(db), employee) for _ in range(12)]
    AssignmentService.return_asset(db, assignments[-1].id, "GOOD")
    db.commit()

    recent = DashboardService.stats(db)["recentAssignments"]
    assert len(recent) == 10
    assert assignments[-1].id not in [a.id for a in recent]
    assert recent[0].id == assignments[-2].id


def test_one_notification_per_pending_accessory(db):
    employee = make_employee(db, name="Ravi", department="Finance")
    asset = make_asset(db, name="MacBook Air")
    assignment = make_assignment(db, asset, employee, accessories=["Charger", "Mouse", "Monitor"])
    # Active assignments never notify
    assert NotificationService.pending_accessory_notifications(db) == []

    AssignmentService.return_asset(db, assignment.id, "GOOD", returned_accessories=["Mouse"])
    db.commit()

    notes = NotificationService.pending_accessory_notifications(db)
    assert [n["accessory"] for n in notes] == ["Charger", "Monitor"]
    first = notes[0]
    assert first["assignmentId"] == assignment.id
    assert first["asset"] == {"id": asset.id, "name": "MacBook Air", "assetId": asset.asset_id}
    assert first["employee"]["name"] == "Ravi"
    assert first["employee"]["department"] == "Finance"
    assert first["returnedAt"] == assignment.returned_at

    AssignmentService.update_returned_accessories(db, assignment.id, ["Charger", "Monitor"])
    db.commit()
    assert NotificationService.pending_accessory_notifications(db) == []


def test_notifications_newest_return_first(db):
    employee = make_employee(db)
    older = make_assignment(db, make_asset(db), employee, accessories=["Mouse"])
    newer = make_assignment(db, make_asset(db), employee, accessories=["Charger"])
    AssignmentService.return_asset(db, older.id, "GOOD")
    AssignmentService.return_asset(db, newer.id, "GOOD")
    db.commit()
    older.returned_at = newer.returned_at - timedelta(minutes=5)
    db.commit()

    notes = NotificationService.pending_accessory_notifications(db)
    assert [n["assignmentId"] for n in notes] == [newer.id, older.id]


def test_deleted_asset_still_notifies(db):
    asset = make_asset(db)
    assignment = make_assignment(db, asset, make_employee(db), accessories=["Headphones"])
    AssignmentService.return_asset(db, assignment.id, "GOOD")
    db.commit()
    AssetService.delete_asset(db, asset.id)
    db.commit()

    notes = NotificationService.pending_accessory_notifications(db)
    assert len(notes) == 1
    assert notes[0]["asset"] is None
