"""
Due-Date Chain (bills only)

A bill has two rolling pointers that advance by the same step from
independent anchors:
- occurrence date: when the bill entry appears (anchor: start date)
- due date: when payment is owed (anchor: the template's due date)

For the Nth generated instance both are advance(anchor, frequency, N),
so they stay in lockstep no matter how many sweeps it took to get there.
"""

from datetime import date
from typing import Optional

from recurring_ledger.models.template import Frequency, RecurringTemplate
from recurring_ledger.schedule.frequency import advance, parse_frequency
from recurring_ledger.validation.validator import TemplateValidationError


class DueDateChain:
    """Due dates for the instances of one bill template."""

    def __init__(self, template: RecurringTemplate):
        if template.due_date is None:
            raise TemplateValidationError(
                template.id,
                ["Bill template has no due date"],
            )
        self._anchor = template.due_date
        self._frequency = parse_frequency(template.effective_frequency)

    @classmethod
    def for_template(cls, template: RecurringTemplate) -> Optional["DueDateChain"]:
        """A chain for bills, None for plain transactions."""
        if not template.is_bill:
            return None
        return cls(template)

    @property
    def initial_due_date(self) -> date:
        return self._anchor

    def due_date_for(self, index: int) -> date:
        return advance(self._anchor, self._frequency, index)

    def next_due_preview(self, index: int) -> Optional[date]:
        """Due date of the instance after `index`; one-time bills have none."""
        if self._frequency is Frequency.ONE_TIME:
            return None
        return advance(self._anchor, self._frequency, index + 1)

    def fields_for(self, index: int) -> dict[str, Optional[date]]:
        return {
            "due_date": self.due_date_for(index),
            "next_due_date": self.next_due_preview(index),
        }
