"""
Validation Package

Per-template checks run before scheduling.
"""

from recurring_ledger.validation.validator import (
    TemplateValidationError,
    TemplateValidator,
)

__all__ = [
    "TemplateValidationError",
    "TemplateValidator",
]
