"""Per-scope monotonic counters used for human-readable numbering."""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Counter
from .errors import StorageError


def next_counter_value(db: Session, scope: str) -> int:
    """
    Atomically increment the counter for `scope` and return the new value.

    The increment is one conditional UPDATE, so two concurrent callers on
    the same scope never observe the same value. A scope seen for the first
    time is inserted inside a SAVEPOINT; losing that insert race falls back
    to the UPDATE path.
    """
    for _ in range(3):
        result = db.execute(
            update(Counter)
            .where(Counter.scope == scope)
            .values(value=Counter.value + 1, updated_at=datetime.utcnow())
        )
        if result.rowcount:
            return db.execute(
                select(Counter.value).where(Counter.scope == scope)
            ).scalar_one()

        try:
            with db.begin_nested():
                db.add(Counter(scope=scope, value=1))
            return 1
        except IntegrityError:
            # another request created the scope first
            continue

    raise StorageError(f"Could not allocate a value for counter scope {scope!r}")


def next_sequence(db: Session, scope: str, prefix: str, padding: int = 4) -> str:
    """Format: PREFIX/NUMBER, e.g. MV/0007"""
    number = next_counter_value(db, scope)
    return f"{prefix}/{str(number).zfill(padding)}"
