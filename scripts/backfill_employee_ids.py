"""One-off maintenance script: give every employee an ID.

Raises the legacy "employee" sequence to the highest EMP-### already on
file, then assigns the next EMP-### to each employee whose ID is blank,
oldest first.

Usage:
  python scripts/backfill_employee_ids.py
"""
import re

from sqlalchemy import or_
from sqlalchemy.orm import Session

from assettrack_core.app.db import SessionLocal, create_db_and_tables
from assettrack_core.app.models import Employee
from assettrack_core.app.services.sequences import (
    EMPLOYEE_SEQUENCE_NAME, seed_counter, next_employee_id
)

LEGACY_ID = re.compile(r"^EMP-(\d+)$", re.IGNORECASE)


def highest_legacy_seq(db: Session) -> int:
    highest = 0
    for (employee_id,) in db.query(Employee.employee_id).all():
        match = LEGACY_ID.match(employee_id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def backfill_employee_ids(db: Session) -> int:
    """Returns the number of employees that received an ID. Caller commits."""
    highest = highest_legacy_seq(db)
    if highest:
        seed_counter(db, EMPLOYEE_SEQUENCE_NAME, highest)
        print(f"Employee sequence set to at least {highest}")

    missing = db.query(Employee).filter(
        or_(Employee.employee_id.is_(None), Employee.employee_id == "")
    ).order_by(Employee.created_at, Employee.id).all()
    print(f"Employees missing employee_id: {len(missing)}")

    for count, employee in enumerate(missing, start=1):
        employee.employee_id = next_employee_id(db)
        db.flush()
        if count % 25 == 0:
            print(f"... backfilled {count}/{len(missing)}")
    return len(missing)


def main():
    create_db_and_tables()
    db = SessionLocal()
    try:
        updated = backfill_employee_ids(db)
        db.commit()
        print(f"Backfill complete. Updated {updated} employees.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    main()
