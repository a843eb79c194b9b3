import os

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SEED_ON_STARTUP"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from datetime import date, datetime  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.clock import FixedClock, get_clock  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Doctor, DoctorSchedule, Patient, Role, Specialty, User  # noqa: E402
from app.security_utils import create_jwt_token, hash_password_bcrypt  # noqa: E402
from app.seed import ROLE_ADMIN, ROLE_BILLING, ROLE_DOCTOR, ROLE_MANAGEMENT, ROLE_RECEPTION, seed_database  # noqa: E402

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Sunday 2026-10-18, the day before the Monday used in most scenarios
NOW = datetime(2026, 10, 18, 9, 0)
MONDAY = date(2026, 10, 19)

DEFAULT_PASSWORD = "Secret123!"


@pytest.fixture()
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    seed_database(session, admin_password=None)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def client(db, clock):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make_user(role_name: str = ROLE_ADMIN, username: str = None, password: str = DEFAULT_PASSWORD) -> User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        role = db.query(Role).filter(Role.name == role_name).one()
        user = User(
            username=username,
            email=f"{username}@clinic.test",
            password_hash=hash_password_bcrypt(password),
            first_name="Test",
            last_name=username.title(),
            role_id=role.id,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_jwt_token({'sub': str(user.id)})}"}


@pytest.fixture()
def headers_for(make_user):
    def _headers_for(role_name: str) -> dict:
        return auth_headers(make_user(role_name))

    return _headers_for


@pytest.fixture()
def admin_headers(headers_for):
    return headers_for(ROLE_ADMIN)


@pytest.fixture()
def reception_headers(headers_for):
    return headers_for(ROLE_RECEPTION)


@pytest.fixture()
def billing_headers(headers_for):
    return headers_for(ROLE_BILLING)


@pytest.fixture()
def management_headers(headers_for):
    return headers_for(ROLE_MANAGEMENT)


@pytest.fixture()
def make_patient(db):
    counter = {"n": 0}

    def _make_patient(**overrides) -> Patient:
        counter["n"] += 1
        data = {
            "medical_record_number": f"HC-T{counter['n']:05d}",
            "id_number": f"17{counter['n']:08d}",
            "first_name": "Maria",
            "last_name": f"Paciente{counter['n']}",
            "date_of_birth": date(1990, 5, 17),
            "gender": "F",
        }
        data.update(overrides)
        patient = Patient(**data)
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make_patient


@pytest.fixture()
def make_doctor(db, make_user):
    def _make_doctor(username: str = None, weekdays=(1, 2, 3, 4, 5), opens="08:00", closes="17:00", slot=30):
        user = make_user(ROLE_DOCTOR, username=username)
        specialty = db.query(Specialty).filter(Specialty.name == "Medicina General").one()
        doctor = Doctor(user_id=user.id, specialty_id=specialty.id, license_number=f"MED-{user.id:03d}")
        db.add(doctor)
        db.flush()
        for day in weekdays:
            db.add(
                DoctorSchedule(
                    doctor_id=doctor.id, day_of_week=day, start_time=opens, end_time=closes, slot_duration=slot
                )
            )
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make_doctor


@pytest.fixture()
def patient(make_patient):
    return make_patient()


@pytest.fixture()
def doctor(make_doctor):
    return make_doctor()


@pytest.fixture()
def book(client, admin_headers):
    """POST an appointment and return the response"""

    def _book(patient_id: int, doctor_id: int, start: str, duration: int = None, headers: dict = None):
        body = {"patientId": patient_id, "doctorId": doctor_id, "dateTime": start}
        if duration is not None:
            body["duration"] = duration
        return client.post("/api/appointments", json=body, headers=headers or admin_headers)

    return _book
