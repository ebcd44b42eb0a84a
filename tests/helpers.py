from datetime import date, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mediconnect.services.persistence import BackingStoreAdapter, PersistenceError, PersistenceResult

ADMIN = ("admin", "Admin123!")
DOCTOR = ("doctor", "Doctor123!")
DOCTOR2 = ("doctor2", "Doctor123!")
PATIENT = ("patient", "Patient123!")

def future(days: int) -> date:
    return date.today() + timedelta(days=days)

class FailingAdapter:
    """Backing store stand-in whose every call reports an outage."""

    enabled = True

    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            self.calls.append(name)
            return PersistenceResult.failure(PersistenceError.UNAVAILABLE, "forced outage")
        return fail

def sqlite_adapter(path) -> BackingStoreAdapter:
    engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
    return BackingStoreAdapter(sessionmaker(bind=engine, expire_on_commit=False))
