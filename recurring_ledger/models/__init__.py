"""
Data Models Package

This package contains all Pydantic models used in the Recurring Ledger engine.
All data flowing through the system must conform to these schemas.
"""

from recurring_ledger.models.template import (
    BillStatus,
    EntryType,
    Frequency,
    LedgerInstance,
    PaymentMethod,
    RecurringTemplate,
    TemplateKind,
    TemplateScan,
    UnreadableTemplate,
    ValidationIssue,
    ValidationResult,
)
from recurring_ledger.models.report import (
    OnDemandResult,
    RecurringStatus,
    SweepError,
    SweepReport,
    SweepState,
    SweepTrigger,
    TemplateOutcome,
    UserSweepResult,
)
from recurring_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Template models
    "BillStatus",
    "EntryType",
    "Frequency",
    "LedgerInstance",
    "PaymentMethod",
    "RecurringTemplate",
    "TemplateKind",
    "TemplateScan",
    "UnreadableTemplate",
    "ValidationIssue",
    "ValidationResult",
    # Sweep results
    "OnDemandResult",
    "RecurringStatus",
    "SweepError",
    "SweepReport",
    "SweepState",
    "SweepTrigger",
    "TemplateOutcome",
    "UserSweepResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
