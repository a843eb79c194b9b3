"""
Transactional counters for human readable sequence numbers.

A counter row is locked FOR UPDATE and incremented inside the caller's
transaction, so two concurrent invoices (or patients) can never read the
same value. The row is created on first use; a concurrent first insert
loses on the primary key and retries against the row the winner created.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import SequenceCounter

logger = logging.getLogger(__name__)

MAX_INSERT_RETRIES = 3


def next_value(db: Session, name: str) -> int:
    """Increment counter `name` and return the new value (not committed)"""
    for _attempt in range(MAX_INSERT_RETRIES):
        counter = (
            db.query(SequenceCounter)
            .filter(SequenceCounter.name == name)
            .with_for_update()
            .first()
        )
        if counter is not None:
            counter.value += 1
            db.flush()
            return counter.value

        try:
            with db.begin_nested():
                db.add(SequenceCounter(name=name, value=1))
            return 1
        except IntegrityError:
            logger.info(f"Counter {name} created concurrently, retrying")

    raise RuntimeError(f"Could not allocate a value from sequence {name}")


def invoice_counter_name(year: int) -> str:
    return f"invoice:{year}"


MRN_COUNTER = "patient_mrn"


def format_mrn(value: int) -> str:
    return f"HC-{value:06d}"
