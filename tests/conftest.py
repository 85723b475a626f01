import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ASSETTRACK_SECRET_KEY", "test-only-secret-key-0123456789abcdef0123456789")

from datetime import datetime

import bcrypt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from assettrack_core.app.db import Base
from assettrack_core.app.main import create_app
from assettrack_core.app.models import User, UserRole, UserStatus
from assettrack_core.app.security import get_db, create_access_token
from assettrack_core.app.services.asset_service import AssetService
from assettrack_core.app.services.employee_service import EmployeeService
from assettrack_core.app.services.assignment_service import AssignmentService

PASSWORD = "password123"
# Low cost factor keeps the suite fast; verify_password accepts any cost
PASSWORD_HASH = bcrypt.hashpw(PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def client(db):
    app = create_app(create_tables=False)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def make_user(db, email, role=UserRole.ADMIN, status=UserStatus.ACTIVE, name=None):
    user = User(email=email, name=name or email.split("@")[0], password_hash=PASSWORD_HASH, role=role, status=status)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", UserRole.ADMIN)


@pytest.fixture
def manager(db):
    return make_user(db, "manager@example.com", UserRole.MANAGER)


@pytest.fixture
def staff(db):
    return make_user(db, "staff@example.com", UserRole.EMPLOYEE)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def manager_headers(manager):
    return auth_headers(manager)


@pytest.fixture
def staff_headers(staff):
    return auth_headers(staff)


# =============================================================================
# DOMAIN FACTORIES
# =============================================================================

_serials = iter(range(1, 100000))
_emails = iter(range(1, 100000))


def make_asset(db, **overrides):
    data = {
        "name": "ThinkPad T14",
        "category": "Laptop",
        "serial_number": f"SN-{next(_serials):05d}",
        "purchase_date": datetime(2024, 1, 15),
    }
    data.update(overrides)
    asset = AssetService.create_asset(db, data)
    db.commit()
    return asset


def make_employee(db, **overrides):
    data = {
        "name": "Asha Rao",
        "email": f"employee{next(_emails)}@example.com",
        "phone": "555-0100",
        "department": "Engineering",
        "position": "Developer",
        "hire_date": datetime(2023, 6, 1),
    }
    data.update(overrides)
    employee = EmployeeService.create_employee(db, data)
    db.commit()
    return employee


def make_assignment(db, asset, employee, accessories=None, **overrides):
    data = {"asset_id": asset.id, "employee_id": employee.id, "accessories": accessories or []}
    data.update(overrides)
    assignment = AssignmentService.create_assignment(db, data)
    db.commit()
    return assignment
