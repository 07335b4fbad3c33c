"""
Shared fixtures.

Everything runs against the in-memory store or a temporary SQLite file;
no test touches a real database.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from recurring_ledger.config import EngineSettings
from recurring_ledger.models.template import (
    PaymentMethod,
    RecurringTemplate,
    TemplateKind,
)
from recurring_ledger.orchestrator import RecurringJobOrchestrator
from recurring_ledger.services.clock import FixedClock
from recurring_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)
from recurring_ledger.audit import AuditLogger


def make_template(
    frequency: Optional[str] = "monthly",
    start_date: Optional[date] = date(2024, 1, 15),
    user_id: str = "user-1",
    amount: str = "50.00",
    **overrides,
) -> RecurringTemplate:
    return RecurringTemplate(
        user_id=user_id,
        title=overrides.pop("title", "Rent"),
        amount=Decimal(amount),
        frequency=frequency,
        start_date=start_date,
        **overrides,
    )


def make_bill(
    bill_frequency: str = "quarterly",
    start_date: date = date(2024, 1, 1),
    due_date: Optional[date] = date(2024, 1, 10),
    user_id: str = "user-1",
    **overrides,
) -> RecurringTemplate:
    return RecurringTemplate(
        user_id=user_id,
        kind=TemplateKind.BILL,
        title=overrides.pop("title", "Electricity"),
        amount=Decimal(overrides.pop("amount", "1200.00")),
        frequency=overrides.pop("frequency", None),
        bill_frequency=bill_frequency,
        start_date=start_date,
        due_date=due_date,
        payment_method=overrides.pop("payment_method", PaymentMethod.AUTO_PAY),
        **overrides,
    )


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(
        max_catchup_steps=365,
        max_concurrent_templates=4,
        default_timezone="UTC",
    )


@pytest.fixture
def make_orchestrator(storage, audit_storage, engine_settings):
    """Build an orchestrator over the in-memory store for a fixed date."""

    def _make(today: date, store=None, **kwargs) -> RecurringJobOrchestrator:
        return RecurringJobOrchestrator(
            storage=store or storage,
            clock=FixedClock(today),
            audit_logger=AuditLogger(audit_storage),
            settings=kwargs.pop("settings", engine_settings),
            **kwargs,
        )

    return _make


@pytest.fixture
def sqlite_db(tmp_path):
    database = SQLiteDatabase(path=tmp_path / "ledger.db", timeout_seconds=1.0)
    yield database
    database.close()


@pytest.fixture
def sqlite_storage(sqlite_db) -> SQLiteLedgerStorage:
    return SQLiteLedgerStorage(sqlite_db)
