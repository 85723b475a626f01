from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from assettrack_core.app.db import Base
from assettrack_core.app.models import Asset, AssetStatus, Employee, SequenceCounter
from assettrack_core.app.services.exceptions import InvalidCompany
from assettrack_core.app.services.sequences import (
    next_value, peek_value, seed_counter, format_asset_id, format_employee_id,
    next_asset_id, preview_next_asset_id, next_company_employee_id,
    preview_next_company_employee_id, company_prefix
)

from conftest import make_asset, make_employee


def test_sequential_values_start_at_one(db):
    values = [next_value(db, "asset") for _ in range(5)]
    assert values == [1, 2, 3, 4, 5]


def test_counters_are_independent(db):
    next_value(db, "asset")
    next_value(db, "asset")
    assert next_value(db, "employee") == 1


def test_format_pads_to_three_digits():
    assert format_asset_id(1) == "AST-001"
    assert format_asset_id(42) == "AST-042"
    assert format_asset_id(1234) == "AST-1234"
    assert format_employee_id(7) == "EMP-007"


def test_preview_does_not_consume(db):
    assert preview_next_asset_id(db) == "AST-001"
    assert preview_next_asset_id(db) == "AST-001"
    assert next_asset_id(db) == "AST-001"
    assert peek_value(db, "asset") == 2
    assert next_asset_id(db) == "AST-002"


def test_seed_counter_never_lowers(db):
    seed_counter(db, "employee", 10)
    assert next_value(db, "employee") == 11
    seed_counter(db, "employee", 3)
    assert db.query(SequenceCounter).filter_by(name="employee").one().seq == 11


def test_company_ids_start_at_1000(db):
    assert next_company_employee_id(db, "V-Accel") == "VA1000"
    assert next_company_employee_id(db, "V-Accel") == "VA1001"
    assert next_company_employee_id(db, "Axess Technology") == "AT1000"


def test_company_sequence_seeded_from_existing_ids(db):
    make_employee(db, employee_id="VA1500", company="V-Accel")
    assert preview_next_company_employee_id(db, "V-Accel") == "VA1501"
    assert next_company_employee_id(db, "V-Accel") == "VA1501"
    # A row written outside the registry is skipped instead of reissued
    db.add(Employee(
        employee_id="VA1502", company="V-Accel", name="x", email="late@example.com",
        phone="1", department="d", position="p", hire_date=datetime(2024, 1, 1),
    ))
    db.flush()
    assert preview_next_company_employee_id(db, "V-Accel") == "VA1503"
    assert next_company_employee_id(db, "V-Accel") == "VA1503"


def test_company_ids_continue_after_supplied_id(db):
    assert make_employee(db, company="V-Accel").employee_id == "VA1000"
    make_employee(db, company="V-Accel", employee_id="VA1002")
    generated = [make_employee(db, company="V-Accel").employee_id for _ in range(3)]
    assert generated == ["VA1003", "VA1004", "VA1005"]

    make_employee(db, company="V-Accel", employee_id="VA9000")
    assert make_employee(db, company="V-Accel").employee_id == "VA9001"


def test_supplied_legacy_ids_are_not_reissued(db):
    assert make_asset(db).asset_id == "AST-001"
    make_asset(db, asset_id="AST-002")
    assert [make_asset(db).asset_id for _ in range(2)] == ["AST-003", "AST-004"]

    assert make_employee(db).employee_id == "EMP-001"
    make_employee(db, employee_id="EMP-005")
    assert make_employee(db).employee_id == "EMP-006"


def test_lower_supplied_id_leaves_counter_alone(db):
    make_asset(db, asset_id="AST-010")
    make_asset(db, asset_id="AST-004")
    assert make_asset(db).asset_id == "AST-011"


def test_asset_generator_skips_ids_already_on_file(db):
    assert make_asset(db).asset_id == "AST-001"
    db.add(Asset(
        asset_id="AST-002", name="Imported", category="Laptop", serial_number="RAW-1",
        status=AssetStatus.AVAILABLE, purchase_date=datetime(2024, 1, 1),
    ))
    db.commit()
    assert preview_next_asset_id(db) == "AST-003"
    assert make_asset(db).asset_id == "AST-003"


def test_concurrent_callers_get_consecutive_values(tmp_path):
    engine = create_engine(
        f"sqlite:///{(tmp_path / 'counters.db').as_posix()}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    make_session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def draw(_):
        session = make_session()
        try:
            value = next_value(session, "asset")
            session.commit()
            return value
        finally:
            session.close()

    try:
        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(draw, range(40)))
    finally:
        engine.dispose()

    assert sorted(values) == list(range(1, 41))


def test_unknown_company_rejected(db):
    with pytest.raises(InvalidCompany):
        company_prefix("Globex")
    with pytest.raises(InvalidCompany):
        next_company_employee_id(db, "Globex")
