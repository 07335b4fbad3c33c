"""
Tests for Recurring Ledger models

Test strategy:
1. Unit tests for individual components (models, schedule, validator)
2. Integration tests for sweeps (in-memory and temporary SQLite stores)
3. No real services in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from recurring_ledger.models.template import (
    BillStatus,
    EntryType,
    Frequency,
    LedgerInstance,
    PaymentMethod,
    RecurringTemplate,
    TemplateKind,
    ValidationIssue,
    ValidationResult,
)
from recurring_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from recurring_ledger.models.report import (
    OnDemandResult,
    SweepError,
    SweepReport,
    SweepTrigger,
)


class TestTemplateModels:
    """Tests for template and instance Pydantic models."""

    def test_template_defaults(self):
        """Test RecurringTemplate defaults."""
        template = RecurringTemplate(
            user_id="user-1",
            title="Rent",
            amount=Decimal("50.00"),
            frequency="monthly",
            start_date=date(2024, 1, 15),
        )
        assert template.kind == TemplateKind.TRANSACTION
        assert template.currency == "INR"
        assert template.entry_type == EntryType.EXPENSE
        assert template.is_active is True
        assert template.auto_create is True
        assert template.reminder_days == 3
        assert not template.is_bill

    def test_template_strips_whitespace(self):
        """Test that whitespace is stripped from the title."""
        template = RecurringTemplate(user_id="user-1", title="  Rent  ", amount=Decimal("1"))
        assert template.title == "Rent"

    def test_frequency_tag_normalized_not_validated(self):
        """Unknown tags load; validation rejects them later."""
        template = RecurringTemplate(
            user_id="user-1", title="Gym", amount=Decimal("1"), frequency=" Fortnightly ",
        )
        assert template.frequency == "fortnightly"

    def test_blank_frequency_is_unset(self):
        template = RecurringTemplate(user_id="user-1", title="Gym", amount=Decimal("1"), frequency="  ")
        assert template.frequency is None

    def test_bill_effective_frequency(self):
        """Bills schedule on bill_frequency, falling back to frequency."""
        bill = RecurringTemplate(
            user_id="user-1",
            kind=TemplateKind.BILL,
            title="Water",
            amount=Decimal("300"),
            frequency="monthly",
            bill_frequency="quarterly",
        )
        assert bill.is_bill
        assert bill.effective_frequency == "quarterly"
        assert bill.model_copy(update={"bill_frequency": None}).effective_frequency == "monthly"

    def test_transaction_ignores_bill_frequency(self):
        template = RecurringTemplate(
            user_id="user-1", title="Salary", amount=Decimal("1"),
            frequency="monthly", bill_frequency="yearly",
        )
        assert template.effective_frequency == "monthly"

    def test_currency_length(self):
        with pytest.raises(ValueError):
            RecurringTemplate(user_id="user-1", title="Rent", amount=Decimal("1"), currency="RUPEE")

    def test_instance_from_template_snapshot(self):
        """Test LedgerInstance.from_template copies template fields."""
        bill = RecurringTemplate(
            user_id="user-1",
            kind=TemplateKind.BILL,
            title="Internet",
            amount=Decimal("999.00"),
            category="Utilities",
            bill_frequency="monthly",
            start_date=date(2024, 1, 1),
            due_date=date(2024, 1, 5),
            payment_method=PaymentMethod.CREDIT_CARD,
        )
        instance = LedgerInstance.from_template(
            bill,
            occurrence_date=date(2024, 2, 1),
            user_id="user-1",
            due_date=date(2024, 2, 5),
            next_due_date=date(2024, 3, 5),
        )
        assert instance.template_id == bill.id
        assert instance.title == "Internet"
        assert instance.category == "Utilities"
        assert instance.bill_status == BillStatus.UNPAID
        assert instance.payment_method == PaymentMethod.CREDIT_CARD
        assert instance.next_due_date == date(2024, 3, 5)
        assert instance.is_template is False

    def test_transaction_instance_has_no_bill_fields(self):
        template = RecurringTemplate(user_id="user-1", title="Rent", amount=Decimal("1"))
        instance = LedgerInstance.from_template(template, date(2024, 1, 1), "user-1")
        assert instance.bill_status is None
        assert instance.payment_method is None

    def test_instance_cannot_be_template(self):
        """Test that an instance can never be flagged as a template."""
        with pytest.raises(ValueError):
            LedgerInstance(
                user_id="user-1",
                occurrence_date=date(2024, 1, 1),
                title="Rent",
                amount=Decimal("1"),
                is_template=True,
            )


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SWEEP_STARTED,
            description="Sweep started",
        )
        assert event.event_type == AuditEventType.SWEEP_STARTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.INSTANCE_CREATED,
            description="Instance created",
            details={"occurrence_date": "2024-01-15"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "instance_created"
        assert log_dict["details"]["occurrence_date"] == "2024-01-15"

    def test_audit_event_to_row(self):
        """Test conversion to an audit_events row."""
        event = AuditEvent(
            event_type=AuditEventType.ON_DEMAND_REQUESTED,
            description="User requested generation",
            is_user_action=True,
        )
        row = event.to_row()
        assert len(row) == 13
        assert row[2] == "on_demand_requested"
        assert row[9] is None  # no details
        assert row[12] == 1

    def test_audit_event_builder_template_failed(self):
        """Test AuditEventBuilder.template_failed."""
        template_id = uuid4()
        sweep_id = uuid4()

        event = AuditEventBuilder.template_failed(
            template_id=template_id,
            user_id="user-1",
            error_type="TemplateValidationError",
            error_message="Unrecognized frequency 'fortnightly'",
            correlation_id=sweep_id,
        )

        assert event.severity == AuditSeverity.ERROR
        assert event.entity_id == template_id
        assert event.correlation_id == sweep_id
        assert event.error_code == "TemplateValidationError"

    def test_sweep_completed_with_errors_is_warning(self):
        event = AuditEventBuilder.sweep_completed(uuid4(), 3, 5, 1, 2)
        assert event.severity == AuditSeverity.WARNING
        assert event.details["instances_skipped"] == 1


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            template_id=uuid4(),
            issues=[
                ValidationIssue(
                    field="frequency",
                    issue_type="missing",
                    message="Frequency is required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.is_valid is False

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            template_id=uuid4(),
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message="Amount is not positive",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0

    def test_severity_restricted(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


class TestReports:
    """Tests for sweep report models."""

    def test_summary(self):
        report = SweepReport(
            trigger=SweepTrigger.SCHEDULED,
            templates_processed=2,
            instances_created=5,
            instances_skipped=1,
            errors=[SweepError(error_type="StorageError", message="locked")],
        )
        assert report.error_count == 1
        assert report.summary() == "Processed 2 templates, created 5 instances, skipped 1, errors 1"

    def test_on_demand_aliases(self):
        result = OnDemandResult(success=True, createdCount=2, message="ok")
        assert result.created_count == 2
        assert result.model_dump(by_alias=True)["createdCount"] == 2


class TestFrequencies:
    """Tests for the frequency enum."""

    def test_all_frequencies_exist(self):
        """Test that expected frequencies exist."""
        for tag in ["daily", "weekly", "monthly", "quarterly", "yearly", "one-time"]:
            assert Frequency(tag) is not None

    def test_payment_method_values(self):
        assert PaymentMethod.AUTO_PAY.value == "auto-pay"
        assert PaymentMethod.BANK_TRANSFER.value == "bank-transfer"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
