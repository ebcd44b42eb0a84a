from dataclasses import dataclass
from typing import Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from ..core.config import Settings
from ..core.database import build_session_factory
from .account_service import AccountService
from .appointment_service import AppointmentService
from .clinical_service import ClinicalRecordService
from .persistence import BackingStoreAdapter
from .report_service import ReportService
from .scheduling import SchedulingService
from .store import ClinicStore

logger = logging.getLogger(__name__)

@dataclass
class ClinicContext:
    """Everything a request handler needs, built once per application."""

    settings: Settings
    store: ClinicStore
    scheduling: SchedulingService
    appointments: AppointmentService
    accounts: AccountService
    clinical: ClinicalRecordService
    reports: ReportService

    def bootstrap(self) -> None:
        """Create tables, hydrate memory from the backing store, then seed."""
        adapter = self.store.adapter
        if adapter is not None and adapter.enabled:
            schema = adapter.create_schema()
            if schema:
                self.store.load_from_backing_store()
            else:
                logger.warning(
                    f"Backing store unavailable ({schema.message}); running with in-memory data only"
                )
        if self.settings.SEED_DEFAULTS:
            self.store.seed_defaults()

def build_adapter(settings: Settings) -> Optional[BackingStoreAdapter]:
    if not settings.USE_DATABASE:
        logger.info("Backing store disabled by configuration")
        return None
    try:
        session_factory = build_session_factory(settings)
    except (SQLAlchemyError, ImportError) as e:
        # Bad URL or missing driver: the store still works from memory
        logger.warning(f"Could not configure backing store: {e}")
        return None
    return BackingStoreAdapter(session_factory, settings.DEFAULT_TIME_SLOTS)

def build_context(
    settings: Settings,
    adapter: Optional[BackingStoreAdapter] = None,
) -> ClinicContext:
    """Wire the store and services; pass ``adapter`` to override the configured one."""
    if adapter is None:
        adapter = build_adapter(settings)
    store = ClinicStore(adapter=adapter, settings=settings)
    scheduling = SchedulingService(store)
    return ClinicContext(
        settings=settings,
        store=store,
        scheduling=scheduling,
        appointments=AppointmentService(store, scheduling, settings),
        accounts=AccountService(store),
        clinical=ClinicalRecordService(store),
        reports=ReportService(store),
    )
