import logging
from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.database import Base, build_engine, log_slow_queries
from app.models import ScheduleBlock


def test_sqlite_engine_enforces_foreign_keys():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    try:
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

        session.add(
            ScheduleBlock(
                doctor_id=999,
                start_date=datetime(2026, 10, 19, 8, 0),
                end_date=datetime(2026, 10, 19, 10, 0),
                reason="Orphan",
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()
    finally:
        session.close()
        engine.dispose()


def test_slow_queries_are_logged(caplog):
    engine = build_engine("sqlite://")
    log_slow_queries(engine, -1.0)
    try:
        with caplog.at_level(logging.WARNING, logger="app.database"):
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        assert "Slow query" in caplog.text
        assert "SELECT 1" in caplog.text
    finally:
        engine.dispose()
