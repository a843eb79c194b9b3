from datetime import timedelta

from app.models import AuditEvent, User
from app.seed import ROLE_DOCTOR, ROLE_RECEPTION
from tests.conftest import DEFAULT_PASSWORD, auth_headers


def login(client, username, password=DEFAULT_PASSWORD):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def test_login_returns_token_and_profile(client, make_user, db):
    user = make_user(ROLE_RECEPTION, username="recepcion")
    response = login(client, "recepcion")
    assert response.status_code == 200
    body = response.json()
    assert body["token"]
    assert body["user"]["role"] == ROLE_RECEPTION
    assert {"module": "patients", "action": "create"} in body["user"]["permissions"]
    assert {"module": "billing", "action": "create"} not in body["user"]["permissions"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"}).json()
    assert me["id"] == user.id
    assert me["doctor"] is None

    db.expire_all()
    event = db.query(AuditEvent).filter(AuditEvent.action == "LOGIN").one()
    assert event.user_id == user.id
    assert event.module == "auth"


def test_me_includes_doctor_profile(client, doctor):
    me = client.get("/api/auth/me", headers=auth_headers(doctor.user)).json()
    assert me["role"] == ROLE_DOCTOR
    assert me["doctor"]["id"] == doctor.id
    assert me["doctor"]["specialty"] == "Medicina General"


def test_unknown_user_and_wrong_password_look_the_same(client, make_user):
    make_user(username="maria")
    unknown = login(client, "nobody")
    wrong = login(client, "maria", "wrong-password")
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["detail"] == wrong.json()["detail"]


def test_account_locks_after_repeated_failures(client, make_user):
    make_user(username="maria")
    for _ in range(5):
        assert login(client, "maria", "wrong-password").status_code == 401

    locked = login(client, "maria")
    assert locked.status_code == 423
    assert locked.json()["error"] == "AccountLocked"
    assert locked.json()["lockedUntil"] == "2026-10-18T09:15:00"


def test_lock_expires_with_the_clock(client, make_user, clock, db):
    user = make_user(username="maria")
    for _ in range(5):
        login(client, "maria", "wrong-password")

    clock.advance(timedelta(minutes=15))
    response = login(client, "maria")
    assert response.status_code == 200

    db.expire_all()
    refreshed = db.get(User, user.id)
    assert refreshed.failed_attempts == 0
    assert refreshed.locked_until is None
    assert refreshed.last_login == clock.now()


def test_successful_login_resets_the_failure_count(client, make_user, db):
    user = make_user(username="maria")
    for _ in range(4):
        login(client, "maria", "wrong-password")
    assert login(client, "maria").status_code == 200
    # A fresh run of failures is needed to lock again
    for _ in range(4):
        login(client, "maria", "wrong-password")
    assert login(client, "maria").status_code == 200

    db.expire_all()
    assert db.get(User, user.id).failed_attempts == 0


def test_inactive_user_cannot_log_in(client, make_user, db):
    user = make_user(username="maria")
    user.is_active = False
    db.commit()
    assert login(client, "maria").status_code == 401


def test_inactive_user_token_is_rejected(client, make_user, db):
    user = make_user(username="maria")
    headers = auth_headers(user)
    user.is_active = False
    db.commit()
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_missing_and_garbage_tokens(client):
    assert client.get("/api/auth/me").status_code == 401
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_blank_credentials_are_rejected(client):
    response = client.post("/api/auth/login", json={"username": "  ", "password": ""})
    assert response.status_code == 422


def test_audit_log_requires_audit_read(client, management_headers, reception_headers, billing_headers, patient):
    client.post(
        "/api/billing/invoices",
        json={"patientId": patient.id, "items": [{"description": "Consulta", "unitPrice": 35}]},
        headers=billing_headers,
    )

    assert client.get("/api/audit", headers=reception_headers).status_code == 403

    page = client.get("/api/audit", params={"module": "billing"}, headers=management_headers).json()
    assert [(e["module"], e["action"]) for e in page["data"]] == [("billing", "CREATE")]
    assert page["data"][0]["after"]["invoice_number"] == "FAC-2026-000001"
    assert page["data"][0]["user"]["username"]

    modules = client.get("/api/audit/modules", headers=management_headers).json()
    assert "billing" in modules


def test_health_endpoints_are_public(client):
    assert client.get("/api/health").json() == {"status": "ok", "service": "clinic-api"}
    assert client.get("/health").status_code == 200


def test_api_responses_carry_security_headers(client):
    response = client.get("/api/health")
    assert response.headers["x-frame-options"] == "DENY"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["cache-control"] == "no-store"
    assert "strict-transport-security" not in response.headers

    assert "x-frame-options" not in client.get("/health").headers


def test_logout_revokes_only_that_token(client, make_user, db):
    user = make_user(username="maria")
    first = login(client, "maria").json()["token"]
    second = login(client, "maria").json()["token"]

    response = client.post("/api/auth/logout", headers={"Authorization": f"Bearer {first}"})
    assert response.status_code == 200

    revoked = client.get("/api/auth/me", headers={"Authorization": f"Bearer {first}"})
    assert revoked.status_code == 401
    assert revoked.json()["detail"] == "Token has been revoked"
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {second}"}).status_code == 200

    db.expire_all()
    event = db.query(AuditEvent).filter(AuditEvent.action == "LOGOUT").one()
    assert event.user_id == user.id


def test_logout_requires_a_token(client):
    assert client.post("/api/auth/logout").status_code == 401


def test_change_password(client, make_user, db):
    user = make_user(username="maria")
    headers = auth_headers(user)

    response = client.put(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "Otra-Clave-2026"},
        headers=headers,
    )
    assert response.status_code == 200

    assert login(client, "maria").status_code == 401
    assert login(client, "maria", "Otra-Clave-2026").status_code == 200

    db.expire_all()
    assert db.query(AuditEvent).filter(AuditEvent.action == "CHANGE_PASSWORD").count() == 1


def test_change_password_checks_current_and_policy(client, make_user):
    headers = auth_headers(make_user(username="maria"))

    wrong = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "not-my-password", "newPassword": "Otra-Clave-2026"},
        headers=headers,
    )
    assert wrong.status_code == 400
    assert wrong.json()["detail"] == "Current password is incorrect"

    short = client.put(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "short"},
        headers=headers,
    )
    assert short.status_code == 400
    assert short.json()["feedback"] == ["Password must be at least 8 characters long"]

    common = client.put(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "password"},
        headers=headers,
    )
    assert common.status_code == 400

    # Nothing changed
    assert login(client, "maria").status_code == 200
