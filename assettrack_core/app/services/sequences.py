"""
Identifier Sequencer
====================
Human-readable identifiers backed by persisted monotonic counters.

- AST-001 style asset IDs (sequence "asset")
- EMP-001 style legacy employee IDs (sequence "employee")
- VA1000 / AT1000 company-scoped employee IDs (one sequence per prefix,
  seeded from the highest existing ID the first time it is used)

Manually supplied IDs raise their counter (reserve_identifier), and the
automatic path skips any number that is already on file.

The increment is a single UPDATE ... SET seq = seq + 1, so concurrent
callers inside separate transactions serialize on the counter row and can
never read the same value.
"""

import logging
import re
from typing import Optional

from sqlalchemy import select, update, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import SequenceCounter, Asset, Employee, Company, utcnow
from .exceptions import InvalidCompany, ConflictError

logger = logging.getLogger(__name__)

ASSET_SEQUENCE_NAME = "asset"
EMPLOYEE_SEQUENCE_NAME = "employee"

ASSET_ID_PATTERN = re.compile(r"^AST-\d{3,}$")
EMPLOYEE_ID_PATTERN = re.compile(r"^EMP-\d{3,}$")

COMPANY_PREFIXES = {
    Company.V_ACCEL.value: "VA",
    Company.AXESS_TECHNOLOGY.value: "AT",
}
COMPANY_ID_PATTERN = re.compile(r"^(VA|AT)\d+$")
RESERVABLE_ID_PATTERN = re.compile(r"^(AST-|EMP-|VA|AT)(\d+)$")

# Company-scoped numbering starts at 1000
COMPANY_SEQUENCE_FLOOR = 999


def format_asset_id(seq: int) -> str:
    return f"AST-{seq:03d}"


def format_employee_id(seq: int) -> str:
    return f"EMP-{seq:03d}"


def format_company_employee_id(prefix: str, seq: int) -> str:
    return f"{prefix}{seq}"


def company_prefix(company: Optional[str]) -> str:
    """Map a company name to its ID prefix, raising InvalidCompany if unknown."""
    prefix = COMPANY_PREFIXES.get(company or "")
    if not prefix:
        raise InvalidCompany(f"Company '{company}' is not recognized for employee ID generation")
    return prefix


# =============================================================================
# COUNTER PRIMITIVES
# =============================================================================

def _ensure_counter(db: Session, name: str, start: int) -> None:
    """Create the counter row at `start` unless it already exists."""
    dialect = db.get_bind().dialect.name
    values = dict(name=name, seq=start, updated_at=utcnow())

    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    else:
        dialect_insert = None

    if dialect_insert is not None:
        db.execute(
            dialect_insert(SequenceCounter).values(**values).on_conflict_do_nothing(index_elements=["name"])
        )
        return

    try:
        db.execute(insert(SequenceCounter).values(**values))
    except IntegrityError as e:
        # Without an upsert the losing transaction is unusable; the caller retries the request
        raise ConflictError(f"Sequence '{name}' was initialised concurrently, please retry") from e


def _increment(db: Session, name: str) -> int:
    result = db.execute(
        update(SequenceCounter)
        .where(SequenceCounter.name == name)
        .values(seq=SequenceCounter.seq + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _current(db: Session, name: str) -> Optional[int]:
    return db.execute(
        select(SequenceCounter.seq).where(SequenceCounter.name == name)
    ).scalar_one_or_none()


def next_value(db: Session, name: str, start: int = 0) -> int:
    """
    Atomically increment the counter `name` and return the new value.

    A missing counter is created at `start`, so the first value is start + 1.
    """
    if not _increment(db, name):
        _ensure_counter(db, name, start)
        _increment(db, name)
    return _current(db, name)


def peek_value(db: Session, name: str, start: int = 0) -> int:
    """Value the next call to next_value() would return, without consuming it."""
    current = _current(db, name)
    return (start if current is None else current) + 1


def seed_counter(db: Session, name: str, floor: int) -> int:
    """Raise counter `name` to at least `floor`. Never lowers it."""
    _ensure_counter(db, name, floor)
    db.execute(
        update(SequenceCounter)
        .where(SequenceCounter.name == name, SequenceCounter.seq < floor)
        .values(seq=floor, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return _current(db, name)


# =============================================================================
# IDENTIFIER FORMATS
# =============================================================================

def _first_unused(db: Session, column, draw) -> str:
    """Draw identifiers until one is not already on file."""
    candidate = draw()
    while db.execute(select(column).where(column == candidate)).first() is not None:
        logger.warning("Generated identifier %s is already taken, drawing the next one", candidate)
        candidate = draw()
    return candidate


def _preview_unused(db: Session, column, fmt, start: int) -> str:
    value = start
    while db.execute(select(column).where(column == fmt(value))).first() is not None:
        value += 1
    return fmt(value)


def next_asset_id(db: Session) -> str:
    return _first_unused(
        db, Asset.asset_id, lambda: format_asset_id(next_value(db, ASSET_SEQUENCE_NAME))
    )


def preview_next_asset_id(db: Session) -> str:
    return _preview_unused(db, Asset.asset_id, format_asset_id, peek_value(db, ASSET_SEQUENCE_NAME))


def next_employee_id(db: Session) -> str:
    return _first_unused(
        db, Employee.employee_id, lambda: format_employee_id(next_value(db, EMPLOYEE_SEQUENCE_NAME))
    )


def preview_next_employee_id(db: Session) -> str:
    return _preview_unused(
        db, Employee.employee_id, format_employee_id, peek_value(db, EMPLOYEE_SEQUENCE_NAME)
    )


def _highest_company_suffix(db: Session, prefix: str) -> int:
    """Highest numeric suffix among existing employee IDs that use `prefix`."""
    rows = db.execute(
        select(Employee.employee_id).where(Employee.employee_id.like(f"{prefix}%"))
    ).scalars()
    pattern = re.compile(rf"^{prefix}(\d+)$")
    highest = COMPANY_SEQUENCE_FLOOR
    for employee_id in rows:
        match = pattern.match(employee_id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def _ensure_company_counter(db: Session, prefix: str) -> None:
    """Create the per-company counter from the IDs already on file, once."""
    if _current(db, prefix) is None:
        seed = _highest_company_suffix(db, prefix)
        logger.info("Seeding employee sequence %s at %s", prefix, seed)
        _ensure_counter(db, prefix, seed)


def _draw_company_value(db: Session, prefix: str) -> int:
    if not _increment(db, prefix):
        _ensure_company_counter(db, prefix)
        _increment(db, prefix)
    return _current(db, prefix)


def next_company_employee_id(db: Session, company: str) -> str:
    """
    Next company-scoped employee ID (VA1000, VA1001, ...).

    The per-company counter is seeded from the IDs already on file the first
    time it is used; afterwards it is a plain atomic counter.
    """
    prefix = company_prefix(company)
    return _first_unused(
        db, Employee.employee_id,
        lambda: format_company_employee_id(prefix, _draw_company_value(db, prefix))
    )


def preview_next_company_employee_id(db: Session, company: str) -> str:
    prefix = company_prefix(company)
    current = _current(db, prefix)
    if current is None:
        current = _highest_company_suffix(db, prefix)
    return _preview_unused(
        db, Employee.employee_id, lambda seq: format_company_employee_id(prefix, seq), current + 1
    )


def reserve_identifier(db: Session, identifier: str) -> None:
    """
    Raise the counter that generates `identifier` to at least its number, so
    a manually supplied ID is never drawn again by the automatic path.
    """
    match = RESERVABLE_ID_PATTERN.match(identifier or "")
    if not match:
        return
    prefix, number = match.group(1), int(match.group(2))
    if prefix == "AST-":
        seed_counter(db, ASSET_SEQUENCE_NAME, number)
    elif prefix == "EMP-":
        seed_counter(db, EMPLOYEE_SEQUENCE_NAME, number)
    else:
        _ensure_company_counter(db, prefix)
        seed_counter(db, prefix, number)
