from datetime import datetime

import pytest

from app.models import AuditEvent, Doctor, Role, Specialty, User
from app.seed import ROLE_ADMIN, ROLE_DOCTOR, ROLE_RECEPTION
from tests.conftest import DEFAULT_PASSWORD, auth_headers


@pytest.fixture()
def roles(db):
    return {r.name: r for r in db.query(Role).all()}


@pytest.fixture()
def specialty(db):
    return db.query(Specialty).filter(Specialty.name == "Cardiología").one()


def new_user(**overrides):
    body = {
        "username": "drperez",
        "email": "perez@clinic.test",
        "password": "Cardio-2026!",
        "firstName": "Juan",
        "lastName": "Pérez",
    }
    body.update(overrides)
    return body


def test_create_doctor_account_makes_it_bookable(
    client, admin_headers, roles, specialty, patient, book, db
):
    response = client.post(
        "/api/admin/users",
        json=new_user(roleId=roles[ROLE_DOCTOR].id, specialtyId=specialty.id, licenseNumber="MED-900"),
        headers=admin_headers,
    )
    assert response.status_code == 201
    created = response.json()
    assert created["role"]["name"] == ROLE_DOCTOR
    assert created["doctor"]["specialty_id"] == specialty.id
    assert "password_hash" not in created

    doctor_id = created["doctor"]["id"]
    schedule = client.put(
        f"/api/doctors/{doctor_id}/schedules/1",
        json={"startTime": "08:00", "endTime": "12:00", "slotDuration": 30},
        headers=admin_headers,
    )
    assert schedule.status_code == 200
    assert book(patient.id, doctor_id, "2026-10-19T09:00:00").status_code == 201

    login = client.post("/api/auth/login", json={"username": "drperez", "password": "Cardio-2026!"})
    assert login.json()["user"]["doctor"]["specialty"] == "Cardiología"

    db.expire_all()
    event = db.query(AuditEvent).filter(AuditEvent.action == "CREATE_USER").one()
    assert event.module == "admin"
    assert "password_hash" not in event.after


def test_create_user_without_specialty_has_no_doctor_profile(client, admin_headers, roles, db):
    response = client.post("/api/admin/users", json=new_user(roleId=roles[ROLE_RECEPTION].id), headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["doctor"] is None
    assert db.query(Doctor).count() == 0


def test_create_user_validation(client, admin_headers, roles):
    role_id = roles[ROLE_RECEPTION].id

    short = client.post("/api/admin/users", json=new_user(roleId=role_id, password="short"), headers=admin_headers)
    assert short.status_code == 400
    assert short.json()["error"] == "ValidationFailed"

    unknown_role = client.post("/api/admin/users", json=new_user(roleId=9999), headers=admin_headers)
    assert unknown_role.status_code == 404

    unknown_specialty = client.post(
        "/api/admin/users", json=new_user(roleId=role_id, specialtyId=9999), headers=admin_headers
    )
    assert unknown_specialty.status_code == 404

    bad_email = client.post("/api/admin/users", json=new_user(roleId=role_id, email="nope"), headers=admin_headers)
    assert bad_email.status_code == 422


def test_duplicate_username_or_email_conflicts(client, admin_headers, roles):
    role_id = roles[ROLE_RECEPTION].id
    assert client.post("/api/admin/users", json=new_user(roleId=role_id), headers=admin_headers).status_code == 201

    same_name = client.post(
        "/api/admin/users", json=new_user(roleId=role_id, email="other@clinic.test"), headers=admin_headers
    )
    assert same_name.status_code == 409

    same_email = client.post(
        "/api/admin/users", json=new_user(roleId=role_id, username="otro", email="PEREZ@clinic.test"),
        headers=admin_headers,
    )
    assert same_email.status_code == 409


def test_update_user_role_and_deactivate_doctor(client, admin_headers, doctor, roles, db):
    url = f"/api/admin/users/{doctor.user.id}"

    renamed = client.put(url, json={"firstName": "Ana", "roleId": roles[ROLE_ADMIN].id}, headers=admin_headers)
    assert renamed.status_code == 200
    assert renamed.json()["first_name"] == "Ana"
    assert renamed.json()["role"]["name"] == ROLE_ADMIN

    deactivated = client.put(url, json={"isActive": False}, headers=admin_headers).json()
    assert deactivated["is_active"] is False
    assert deactivated["doctor"]["is_active"] is False

    db.expire_all()
    assert db.get(Doctor, doctor.id).is_active is False
    assert client.get("/api/auth/me", headers=auth_headers(doctor.user)).status_code == 401


def test_update_user_email_conflict_and_missing_user(client, admin_headers, make_user):
    make_user(username="maria")
    other = make_user(username="jose")

    taken = client.put(f"/api/admin/users/{other.id}", json={"email": "maria@clinic.test"}, headers=admin_headers)
    assert taken.status_code == 409
    assert client.put("/api/admin/users/9999", json={"firstName": "X"}, headers=admin_headers).status_code == 404


def test_reset_password_unlocks_the_account(client, admin_headers, make_user, db):
    user = make_user(username="maria")
    user.failed_attempts = 5
    user.locked_until = datetime(2026, 10, 18, 10, 0)
    db.commit()

    response = client.put(
        f"/api/admin/users/{user.id}/reset-password", json={"newPassword": "Nueva-Clave-1"}, headers=admin_headers
    )
    assert response.status_code == 200

    login = client.post("/api/auth/login", json={"username": "maria", "password": "Nueva-Clave-1"})
    assert login.status_code == 200

    weak = client.put(
        f"/api/admin/users/{user.id}/reset-password", json={"newPassword": "1234"}, headers=admin_headers
    )
    assert weak.status_code == 400


def test_delete_user_is_soft_and_not_for_yourself(client, make_user, db):
    admin = make_user(ROLE_ADMIN, username="root")
    target = make_user(username="maria")
    headers = auth_headers(admin)

    own = client.delete(f"/api/admin/users/{admin.id}", headers=headers)
    assert own.status_code == 400

    assert client.delete(f"/api/admin/users/{target.id}", headers=headers).status_code == 200

    db.expire_all()
    deleted = db.get(User, target.id)
    assert deleted.deleted_at is not None
    assert deleted.is_active is False

    listed = client.get("/api/admin/users", headers=headers).json()
    assert target.id not in [u["id"] for u in listed]
    login = client.post("/api/auth/login", json={"username": "maria", "password": DEFAULT_PASSWORD})
    assert login.status_code == 401
    assert client.delete(f"/api/admin/users/{target.id}", headers=headers).status_code == 404


def test_roles_list_capabilities_and_user_counts(client, admin_headers, make_user):
    make_user(ROLE_RECEPTION)
    roles = {r["name"]: r for r in client.get("/api/admin/roles", headers=admin_headers).json()}

    assert roles[ROLE_RECEPTION]["userCount"] == 1
    assert roles[ROLE_ADMIN]["userCount"] == 1
    assert {"module": "patients", "action": "create"} in roles[ROLE_RECEPTION]["permissions"]
    assert {"module": "admin", "action": "read"} not in roles[ROLE_RECEPTION]["permissions"]


def test_specialties(client, admin_headers, reception_headers):
    names = [s["name"] for s in client.get("/api/admin/specialties", headers=reception_headers).json()]
    assert names == sorted(names)
    assert "Medicina General" in names

    created = client.post(
        "/api/admin/specialties", json={"name": "Neurología", "description": "Neurology"}, headers=admin_headers
    )
    assert created.status_code == 201
    assert created.json()["is_active"] is True

    duplicate = client.post("/api/admin/specialties", json={"name": "neurología"}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert client.post("/api/admin/specialties", json={"name": "X"}, headers=reception_headers).status_code == 403


def test_system_parameters_upsert(client, admin_headers, clock):
    created = client.put(
        "/api/admin/parameters/clinic_name",
        json={"value": "Clínica Central", "description": "Name on printed invoices"},
        headers=admin_headers,
    )
    assert created.status_code == 200
    assert created.json()["updated_at"] == clock.now().isoformat()

    updated = client.put("/api/admin/parameters/clinic_name", json={"value": "Clínica Norte"}, headers=admin_headers)
    assert updated.json()["value"] == "Clínica Norte"
    assert updated.json()["description"] == "Name on printed invoices"

    listed = client.get("/api/admin/parameters", headers=admin_headers).json()
    assert [(p["key"], p["value"]) for p in listed] == [("clinic_name", "Clínica Norte")]


def test_admin_endpoints_require_admin_capabilities(client, reception_headers, management_headers):
    assert client.get("/api/admin/users", headers=reception_headers).status_code == 403
    assert client.get("/api/admin/parameters", headers=management_headers).status_code == 403
    response = client.post("/api/admin/users", json=new_user(roleId=1), headers=reception_headers)
    assert response.status_code == 403
    assert response.json()["required"] == {"module": "admin", "action": "create"}
