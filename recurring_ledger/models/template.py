"""
Core Data Models for Recurring Ledger

Two entity kinds flow through the engine:
1. RecurringTemplate - a periodic definition owned by a user
2. LedgerInstance - one concrete, dated entry materialized from a template

DESIGN DECISION: Templates are loaded leniently. A stored template with an
unknown frequency tag or a missing start date must still load so that the
sweep can reject THAT template and move on. Strict checks live in
recurring_ledger.validation, not in the model.

Instances are snapshots. They copy the template's fields at creation time
and keep only a non-owning back reference (template_id) to it.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """
    Supported period units.

    DESIGN DECISION: No arbitrary recurrence rules. A template repeats
    on exactly one of these units, or never (ONE_TIME).
    """
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    ONE_TIME = "one-time"


class TemplateKind(str, Enum):
    """
    Discriminant between plain recurring transactions and bills.

    Bills carry a second rolling pointer (the due date).
    """
    TRANSACTION = "transaction"
    BILL = "bill"


class EntryType(str, Enum):
    """Direction of money for a ledger entry."""
    INCOME = "income"
    EXPENSE = "expense"


class BillStatus(str, Enum):
    """Payment status for a bill."""
    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"
    PENDING = "pending"


class PaymentMethod(str, Enum):
    """How a bill is normally settled."""
    MANUAL = "manual"
    AUTO_PAY = "auto-pay"
    BANK_TRANSFER = "bank-transfer"
    CREDIT_CARD = "credit-card"
    DEBIT_CARD = "debit-card"
    CASH = "cash"


# =============================================================================
# TEMPLATE
# =============================================================================

class RecurringTemplate(BaseModel):
    """
    A recurring definition: "pay rent monthly starting Jan 15".

    Owned exclusively by its user. The engine only ever flips is_active;
    every other field is changed by user edits.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique template ID"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owning user"
    )
    kind: TemplateKind = Field(
        default=TemplateKind.TRANSACTION,
        description="transaction or bill"
    )

    # Ledger fields copied onto every instance
    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    amount: Annotated[
        Decimal,
        Field(decimal_places=2, description="Amount per occurrence")
    ]
    category: str = Field(default="Other", max_length=100)
    currency: str = Field(default="INR", min_length=3, max_length=3)
    entry_type: EntryType = Field(default=EntryType.EXPENSE)
    description: Optional[str] = Field(default=None, max_length=1000)

    # Schedule - deliberately loose, see module docstring
    frequency: Optional[str] = Field(
        default=None,
        description="Raw frequency tag (validated per sweep)"
    )
    start_date: Optional[date] = Field(
        default=None,
        description="First occurrence (required by validation)"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="Last day an occurrence may fall on"
    )
    is_active: bool = True
    auto_create: bool = Field(
        default=True,
        description="Whether sweeps materialize this template"
    )

    # Bill-only fields
    due_date: Optional[date] = Field(
        default=None,
        description="Due date of the first occurrence"
    )
    bill_frequency: Optional[str] = Field(
        default=None,
        description="Raw bill frequency tag"
    )
    last_paid_date: Optional[date] = None
    bill_status: BillStatus = BillStatus.UNPAID
    payment_method: PaymentMethod = PaymentMethod.MANUAL
    reminder_days: int = Field(default=3, ge=0, le=60)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('frequency', 'bill_frequency')
    @classmethod
    def normalize_tag(cls, v: Optional[str]) -> Optional[str]:
        """Tags are compared lower-case; blank means unset."""
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @property
    def is_bill(self) -> bool:
        return self.kind == TemplateKind.BILL

    @property
    def effective_frequency(self) -> Optional[str]:
        """
        The tag that drives the schedule.

        Bills repeat on their bill frequency; older bill rows only have
        the generic frequency, so fall back to it.
        """
        if self.is_bill:
            return self.bill_frequency or self.frequency
        return self.frequency


# =============================================================================
# INSTANCE
# =============================================================================

class LedgerInstance(BaseModel):
    """
    One materialized occurrence of a template.

    CRITICAL: An instance is never itself a generator. is_template is
    always False so sweeps never scan it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    template_id: Optional[UUID] = Field(
        default=None,
        description="Template this occurrence came from (None for manual entries)"
    )
    occurrence_date: date

    # Snapshot of the template at creation time
    kind: TemplateKind = TemplateKind.TRANSACTION
    title: str = Field(..., min_length=1, max_length=200)
    amount: Annotated[Decimal, Field(decimal_places=2)]
    category: str = "Other"
    currency: str = "INR"
    entry_type: EntryType = EntryType.EXPENSE
    description: Optional[str] = None

    # Bill snapshot
    due_date: Optional[date] = None
    next_due_date: Optional[date] = Field(
        default=None,
        description="Preview of the following due date, for display"
    )
    bill_status: Optional[BillStatus] = None
    payment_method: Optional[PaymentMethod] = None

    is_template: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('is_template')
    @classmethod
    def never_a_template(cls, v: bool) -> bool:
        if v:
            raise ValueError("A ledger instance cannot be a template")
        return v

    @classmethod
    def from_template(
        cls,
        template: RecurringTemplate,
        occurrence_date: date,
        user_id: str,
        due_date: Optional[date] = None,
        next_due_date: Optional[date] = None,
    ) -> "LedgerInstance":
        """Snapshot a template into a new instance for one occurrence date."""
        return cls(
            user_id=user_id,
            template_id=template.id,
            occurrence_date=occurrence_date,
            kind=template.kind,
            title=template.title,
            amount=template.amount,
            category=template.category,
            currency=template.currency,
            entry_type=template.entry_type,
            description=template.description,
            due_date=due_date,
            next_due_date=next_due_date,
            bill_status=BillStatus.UNPAID if template.is_bill else None,
            payment_method=template.payment_method if template.is_bill else None,
        )


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found on a template."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'unknown_frequency')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of checking one template before it is scheduled.

    Only error-level issues stop a template; warnings are logged.
    """

    template_id: UUID
    validated_at: datetime = Field(default_factory=utcnow)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def is_valid(self) -> bool:
        return not self.has_errors


class UnreadableTemplate(BaseModel):
    """A stored template row that could not be parsed into a RecurringTemplate."""

    row_id: str
    template_id: Optional[UUID] = Field(
        default=None,
        description="The row id as a UUID, when it is one"
    )
    user_id: str
    error_type: str
    message: str


class TemplateScan(BaseModel):
    """
    Result of listing active templates.

    Rows the backend could not read come back in `unreadable` so a sweep
    can report them instead of losing them.
    """

    templates: list[RecurringTemplate] = Field(default_factory=list)
    unreadable: list[UnreadableTemplate] = Field(default_factory=list)
