from datetime import datetime

from assettrack_core.app.models import User, UserRole, UserStatus, AuditLog

from conftest import PASSWORD, make_user, make_asset, make_employee, make_assignment


def create_asset(client, headers, **overrides):
    body = {
        "name": "Latitude 7440",
        "category": "Laptop",
        "serialNumber": overrides.pop("serialNumber", "DL-7440-01"),
        "purchaseDate": "2024-02-01T00:00:00Z",
    }
    body.update(overrides)
    return client.post("/api/v1/assets", json=body, headers=headers)


def create_employee(client, headers, **overrides):
    body = {
        "name": "Meera Iyer",
        "email": overrides.pop("email", "meera@example.com"),
        "phone": "555-0199",
        "department": "Design",
        "position": "Designer",
        "hireDate": "2023-04-01T00:00:00+05:30",
    }
    body.update(overrides)
    return client.post("/api/v1/employees", json=body, headers=headers)


# =============================================================================
# AUTH
# =============================================================================

def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_login_and_me(client, db, admin):
    resp = client.post("/api/v1/auth/login", json={"email": "ADMIN@example.com", "password": PASSWORD})
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["email"] == "admin@example.com"
    assert body["user"]["role"] == "Admin"
    token = body["tokens"]["accessToken"]

    me = client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "admin@example.com"
    assert db.query(AuditLog).filter(AuditLog.action == "login_attempt").count() == 1


def test_login_failures(client, db, admin):
    bad = client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": "wrong-pass"})
    assert bad.status_code == 401
    assert bad.json()["detail"]["message"] == "Invalid credentials"

    make_user(db, "gone@example.com", UserRole.MANAGER, status=UserStatus.INACTIVE)
    inactive = client.post("/api/v1/auth/login", json={"email": "gone@example.com", "password": PASSWORD})
    assert inactive.status_code == 401
    assert inactive.json()["detail"]["message"] == "User is inactive"


def test_refresh_rotates_tokens(client, admin):
    tokens = client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": PASSWORD}).json()["tokens"]

    resp = client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert resp.status_code == 200
    rotated = resp.json()["tokens"]
    assert rotated["refreshToken"] != tokens["refreshToken"]

    # The superseded refresh token is no longer accepted
    reused = client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert reused.status_code == 401
    garbage = client.post("/api/v1/auth/refresh", json={"refreshToken": "not-a-token"})
    assert garbage.status_code == 401


def test_logout_clears_refresh_token(client, db, admin):
    tokens = client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": PASSWORD}).json()["tokens"]
    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}
    assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200
    db.expire_all()
    assert db.get(User, admin.id).refresh_token is None
    assert client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]}).status_code == 401


def test_change_password(client, admin, admin_headers):
    wrong = client.post("/api/v1/auth/change-password", headers=admin_headers,
                        json={"currentPassword": "nope", "newPassword": "another-pass"})
    assert wrong.status_code == 400

    ok = client.post("/api/v1/auth/change-password", headers=admin_headers,
                     json={"currentPassword": PASSWORD, "newPassword": "another-pass"})
    assert ok.status_code == 200
    login = client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": "another-pass"})
    assert login.status_code == 200


def test_update_email(client, admin, manager, admin_headers):
    taken = client.post("/api/v1/auth/update-email", headers=admin_headers,
                        json={"email": "manager@example.com", "password": PASSWORD})
    assert taken.status_code == 409

    resp = client.post("/api/v1/auth/update-email", headers=admin_headers,
                       json={"email": "Boss@Example.com", "password": PASSWORD})
    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "boss@example.com"
    assert resp.json()["tokens"]["accessToken"]


def test_update_profile_name(client, staff_headers):
    resp = client.patch("/api/v1/users/profile", headers=staff_headers, json={"name": "  Kiran  "})
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "Kiran"


def test_requires_authentication(client):
    assert client.get("/api/v1/assets").status_code == 401
    assert client.get("/api/v1/assets", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_role_gating(client, staff_headers, manager_headers, db):
    assert client.get("/api/v1/assets", headers=staff_headers).status_code == 200
    assert create_asset(client, staff_headers).status_code == 403

    asset = make_asset(db)
    assert client.delete(f"/api/v1/assets/{asset.id}", headers=manager_headers).status_code == 403


# =============================================================================
# ASSETS & EMPLOYEES
# =============================================================================

def test_asset_crud(client, admin_headers):
    preview = client.get("/api/v1/assets/next-id", headers=admin_headers).json()
    assert preview == {"nextAssetId": "AST-001"}

    created = create_asset(client, admin_headers)
    assert created.status_code == 201
    asset = created.json()["asset"]
    assert asset["assetId"] == "AST-001"
    assert asset["status"] == "Available"
    assert asset["purchaseDate"].startswith("2024-02-01T00:00:00")

    updated = client.put(f"/api/v1/assets/{asset['id']}", headers=admin_headers, json={"department": "IT"})
    assert updated.json()["asset"]["department"] == "IT"

    maint = client.post(f"/api/v1/assets/{asset['id']}/maintenance", headers=admin_headers, json={
        "date": "2024-06-01T00:00:00", "type": "Battery", "description": "Replaced", "cost": 80,
        "performedBy": "Vendor",
    })
    assert maint.status_code == 201
    assert len(maint.json()["asset"]["maintenanceHistory"]) == 1

    assert client.delete(f"/api/v1/assets/{asset['id']}", headers=admin_headers).status_code == 200
    missing = client.get(f"/api/v1/assets/{asset['id']}", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "AssetNotFound"


def test_asset_errors_map_to_status_codes(client, admin_headers):
    assert create_asset(client, admin_headers, serialNumber="S-1").status_code == 201

    dup = create_asset(client, admin_headers, serialNumber="S-1")
    assert dup.status_code == 409
    assert dup.json()["detail"]["code"] == "DuplicateSerial"

    bad_id = create_asset(client, admin_headers, serialNumber="S-2", assetId="A-1")
    assert bad_id.status_code == 400
    assert bad_id.json()["detail"]["errors"][0]["field"] == "asset_id"

    locked = create_asset(client, admin_headers, serialNumber="S-3", status="Assigned")
    assert locked.status_code == 409


def test_asset_pagination(client, admin_headers, db):
    for i in range(7):
        make_asset(db, name=f"Monitor {i}")
    resp = client.get("/api/v1/assets", params={"page": 2, "limit": 3}, headers=admin_headers).json()
    assert len(resp["assets"]) == 3
    assert resp["pagination"] == {"page": 2, "limit": 3, "total": 7, "totalPages": 3, "hasMore": True}

    plain = client.get("/api/v1/assets", headers=admin_headers).json()
    assert "pagination" not in plain
    assert len(plain["assets"]) == 7


def test_zero_page_and_limit_are_clamped(client, admin_headers, db):
    for _ in range(3):
        make_asset(db)
    resp = client.get("/api/v1/assets", params={"page": 0, "limit": 0}, headers=admin_headers).json()
    assert resp["pagination"] == {"page": 1, "limit": 1, "total": 3, "totalPages": 3, "hasMore": True}
    assert len(resp["assets"]) == 1

    make_employee(db)
    employees = client.get("/api/v1/employees", params={"limit": 0}, headers=admin_headers).json()
    assert employees["pagination"]["limit"] == 1


def test_generated_ids_skip_past_supplied_ones(client, admin_headers):
    assert create_asset(client, admin_headers, serialNumber="G-0").json()["asset"]["assetId"] == "AST-001"
    manual = create_asset(client, admin_headers, serialNumber="G-1", assetId="AST-002")
    assert manual.status_code == 201

    generated = []
    for i in range(2, 5):
        resp = create_asset(client, admin_headers, serialNumber=f"G-{i}")
        assert resp.status_code == 201
        generated.append(resp.json()["asset"]["assetId"])
    assert generated == ["AST-003", "AST-004", "AST-005"]


def test_employee_endpoints(client, admin_headers):
    assert client.get("/api/v1/employees/next-id", params={"company": "V-Accel"},
                      headers=admin_headers).json() == {"nextEmployeeId": "VA1000"}
    bad_company = client.get("/api/v1/employees/next-id", params={"company": "Acme"}, headers=admin_headers)
    assert bad_company.status_code == 422

    created = create_employee(client, admin_headers, company="V-Accel")
    assert created.status_code == 201
    employee = created.json()["employee"]
    assert employee["employeeId"] == "VA1000"
    assert employee["hireDate"].startswith("2023-03-31T18:30:00")
    assert employee["activeAssetCount"] == 0

    dup = create_employee(client, admin_headers, email="MEERA@example.com")
    assert dup.status_code == 409

    no_exit = client.put(f"/api/v1/employees/{employee['id']}", headers=admin_headers, json={"status": "Relieved"})
    assert no_exit.status_code == 422
    assert no_exit.json()["detail"]["code"] == "ExitDateRequired"

    status = client.patch(f"/api/v1/employees/{employee['id']}/status", headers=admin_headers,
                          json={"status": "inactive"})
    assert status.json()["employee"]["status"] == "INACTIVE"

    listed = client.get("/api/v1/employees", params={"search": "meera"}, headers=admin_headers).json()
    assert listed["pagination"]["total"] == 1


def test_deactivate_blocked_by_active_assignment(client, admin_headers, db):
    employee = make_employee(db)
    make_assignment(db, make_asset(db), employee)

    resp = client.patch(f"/api/v1/employees/{employee.id}/deactivate", headers=admin_headers)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "HasActiveAssets"

    active = client.get(f"/api/v1/employees/{employee.id}/active-assignments", headers=admin_headers).json()
    assert active["count"] == 1


# =============================================================================
# ASSIGNMENTS
# =============================================================================

def test_assignment_lifecycle(client, admin, admin_headers, db):
    asset = make_asset(db)
    employee = make_employee(db)

    created = client.post("/api/v1/assignments", headers=admin_headers, json={
        "assetId": asset.id, "employeeId": employee.id,
        "accessories": ["Mouse"], "accessoriesIssued": ["CHARGER"],
    })
    assert created.status_code == 201
    assignment = created.json()["assignment"]
    assert assignment["issuedAccessories"] == ["Charger", "Mouse"]
    assert assignment["asset"]["status"] == "Assigned"
    assert assignment["assignedBy"]["email"] == admin.email

    again = client.post("/api/v1/assignments", headers=admin_headers, json={
        "assetId": asset.id, "employeeId": employee.id,
    })
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "AlreadyAssigned"

    returned = client.post(f"/api/v1/assignments/{assignment['id']}/return", headers=admin_headers, json={
        "condition": "GOOD", "returnedAccessories": ["Charger"],
    })
    assert returned.status_code == 200
    body = returned.json()["assignment"]
    assert body["status"] == "Returned"
    assert body["pendingAccessories"] == ["Mouse"]

    pending = client.get("/api/v1/notifications/pending-accessories", headers=admin_headers).json()
    assert pending["count"] == 1
    assert pending["notifications"][0]["accessory"] == "Mouse"
    assert pending["notifications"][0]["asset"]["assetId"] == asset.asset_id

    mixed = client.patch(f"/api/v1/assignments/{assignment['id']}", headers=admin_headers,
                         json={"returnedAccessories": ["Mouse"], "notes": "x"})
    assert mixed.status_code == 400

    late = client.patch(f"/api/v1/assignments/{assignment['id']}", headers=admin_headers,
                        json={"returnedAccessories": ["Mouse"]})
    assert late.status_code == 200
    assert late.json()["assignment"]["returnedAccessories"] == ["Charger", "Mouse"]

    twice = client.post(f"/api/v1/assignments/{assignment['id']}/return", headers=admin_headers,
                        json={"condition": "GOOD"})
    assert twice.status_code == 409
    assert twice.json()["detail"]["code"] == "AlreadyReturned"

    history = client.get("/api/v1/assignments/history", params={"assetId": asset.id}, headers=admin_headers).json()
    assert [h["id"] for h in history["history"]] == [assignment["id"]]
    assert db.query(AuditLog).filter(AuditLog.entity_type == "assignments").count() >= 3


def test_legacy_return_endpoint(client, admin_headers, db):
    asset = make_asset(db)
    assignment = make_assignment(db, asset, make_employee(db))
    resp = client.patch("/api/v1/assignments/return", headers=admin_headers, json={
        "assignmentId": assignment.id, "returnDate": "2024-10-01T09:00:00Z",
    })
    assert resp.status_code == 200
    body = resp.json()["assignment"]
    assert body["condition"] == "GOOD"
    assert body["returnDate"].startswith("2024-10-01T09:00:00")


def test_update_rejects_unknown_fields(client, admin_headers, db):
    assignment = make_assignment(db, make_asset(db), make_employee(db))
    resp = client.patch(f"/api/v1/assignments/{assignment.id}", headers=admin_headers, json={"status": "Returned"})
    assert resp.status_code == 422


def test_clearing_due_date_and_notes(client, admin_headers, db):
    assignment = make_assignment(
        db, make_asset(db), make_employee(db), due_date=datetime(2030, 1, 1), notes="loan",
    )
    resp = client.patch(f"/api/v1/assignments/{assignment.id}", headers=admin_headers,
                        json={"dueDate": None, "notes": None})
    assert resp.status_code == 200
    body = resp.json()["assignment"]
    assert body["dueDate"] is None
    assert body["notes"] is None

    # Omitted fields are left untouched
    resp = client.patch(f"/api/v1/assignments/{assignment.id}", headers=admin_headers,
                        json={"notes": "extended"})
    assert resp.json()["assignment"]["notes"] == "extended"
    assert resp.json()["assignment"]["dueDate"] is None


def test_assign_to_relieved_employee(client, admin_headers, db):
    asset = make_asset(db)
    employee = make_employee(db, status="Relieved", exit_date=datetime(2024, 1, 1))
    resp = client.post("/api/v1/assignments", headers=admin_headers, json={
        "assetId": asset.id, "employeeId": employee.id,
    })
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "EmployeeNotAssignable"


def test_dashboard_endpoint(client, staff_headers, db):
    make_assignment(db, make_asset(db), make_employee(db))
    stats = client.get("/api/v1/dashboard/stats", headers=staff_headers).json()["stats"]
    assert stats["totalAssets"] == 1
    assert stats["assignedAssets"] == 1
    assert stats["activeAssignments"] == 1
    assert len(stats["recentAssignments"]) == 1
