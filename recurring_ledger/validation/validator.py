"""
Template Validation

DESIGN DECISION: Templates are checked one at a time, right before they
are scheduled. A template that fails here is reported and skipped; the
rest of the sweep carries on.

SCHEMA CHECKS (errors, the template is not scheduled):
- Frequency tag present and recognized
- Start date present
- Bills carry an initial due date

SEMANTIC CHECKS (warnings, the template is still scheduled):
- Non-positive amounts
- End date before start date
- Due date long before the start date

IMPORTANT: Validation NEVER silently fixes a template.
It reports what is wrong and leaves the stored row alone.
"""

from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import structlog

from recurring_ledger.models.template import (
    Frequency,
    RecurringTemplate,
    ValidationIssue,
    ValidationResult,
)

logger = structlog.get_logger(__name__)


class TemplateValidationError(Exception):
    """A template cannot be scheduled as stored."""

    def __init__(self, template_id: Optional[UUID], messages: Sequence[str]):
        self.template_id = template_id
        self.messages = list(messages)
        super().__init__(
            f"Template {template_id} is invalid: {'; '.join(self.messages)}"
        )


def _known_frequency(tag: Optional[str]) -> bool:
    if not tag:
        return False
    return tag in {f.value for f in Frequency}


class TemplateValidator:
    """
    Checks a stored template before the engine schedules it.

    Stage 1 (schema) decides whether the template can run at all.
    Stage 2 (semantic) only runs when stage 1 passes.
    """

    def _validate_schema(
        self,
        template: RecurringTemplate,
    ) -> list[ValidationIssue]:
        issues = []

        tag = template.effective_frequency
        if not tag:
            issues.append(ValidationIssue(
                field="bill_frequency" if template.is_bill else "frequency",
                issue_type="missing",
                message="Frequency is required",
                severity="error",
            ))
        elif not _known_frequency(tag):
            issues.append(ValidationIssue(
                field="bill_frequency" if template.is_bill else "frequency",
                issue_type="invalid_value",
                message=f"Unrecognized frequency '{tag}'",
                severity="error",
            ))

        if template.start_date is None:
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="missing",
                message="Start date is required",
                severity="error",
            ))

        if template.is_bill and template.due_date is None:
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="missing",
                message="Bill template has no due date",
                severity="error",
            ))

        return issues

    def _validate_semantic(
        self,
        template: RecurringTemplate,
    ) -> list[ValidationIssue]:
        issues = []

        if template.amount <= Decimal("0"):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({template.amount}) is not positive",
                severity="warning",
            ))

        if template.end_date and template.end_date < template.start_date:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="inconsistent",
                message="End date is before start date; nothing will be generated",
                severity="warning",
            ))

        if (
            template.is_bill
            and template.due_date
            and template.due_date < template.start_date
        ):
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="inconsistent",
                message="Due date is before the first occurrence",
                severity="warning",
            ))

        return issues

    def validate(self, template: RecurringTemplate) -> ValidationResult:
        """
        Run both stages and collect every issue found.

        Args:
            template: The stored template to check

        Returns:
            ValidationResult with all issues found
        """
        issues = self._validate_schema(template)
        if not any(i.severity == "error" for i in issues):
            issues.extend(self._validate_semantic(template))

        return ValidationResult(template_id=template.id, issues=issues)

    def ensure_valid(self, template: RecurringTemplate) -> ValidationResult:
        """
        Validate and raise if the template cannot be scheduled.

        Warnings are logged and otherwise ignored.

        Raises:
            TemplateValidationError: If any error-level issue was found
        """
        result = self.validate(template)

        for issue in result.issues:
            if issue.severity == "warning":
                logger.warning(
                    "template_validation_warning",
                    template_id=str(template.id),
                    user_id=template.user_id,
                    field=issue.field,
                    message=issue.message,
                )

        if result.has_errors:
            raise TemplateValidationError(
                template.id,
                [i.message for i in result.issues if i.severity == "error"],
            )
        return result
