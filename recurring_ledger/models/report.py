"""
Sweep Result Models

A sweep never answers with a bare count. It returns a report that
shows, per template and per user, what was created, what was already
there, and what failed and why.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from recurring_ledger.models.template import TemplateKind, utcnow


class SweepTrigger(str, Enum):
    """Which entry point started a sweep."""
    SCHEDULED = "scheduled"
    ON_DEMAND = "on_demand"


class SweepState(str, Enum):
    """
    Orchestrator state machine.

    IDLE -> SCANNING -> PER_TEMPLATE -> AGGREGATING -> IDLE
    """
    IDLE = "idle"
    SCANNING = "scanning"
    PER_TEMPLATE = "per_template"
    AGGREGATING = "aggregating"


class SweepError(BaseModel):
    """One template that could not be processed."""

    template_id: Optional[UUID] = None
    user_id: Optional[str] = None
    error_type: str = Field(
        ...,
        description="Exception class name (e.g. TemplateValidationError)"
    )
    message: str

    def describe(self) -> str:
        return f"Template {self.template_id} (user {self.user_id}): {self.message}"


class TemplateOutcome(BaseModel):
    """What one sweep did to one template."""

    template_id: UUID
    user_id: str
    kind: TemplateKind
    boundary: Optional[date] = None
    created: int = Field(default=0, ge=0)
    skipped: int = Field(
        default=0,
        ge=0,
        description="Candidates that were already materialized"
    )
    created_dates: list[date] = Field(default_factory=list)
    deactivated: bool = False
    error: Optional[SweepError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class UserSweepResult(BaseModel):
    """Per-user breakdown of a sweep."""

    user_id: str
    processed: int = 0
    created: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class SweepReport(BaseModel):
    """
    Aggregate result of one sweep.

    templates_processed counts templates that ran through the whole
    pipeline; failed templates are counted in error_count instead.
    """

    sweep_id: UUID = Field(default_factory=uuid4)
    trigger: SweepTrigger
    user_scope: Optional[str] = Field(
        default=None,
        description="User the sweep was limited to, None for all users"
    )
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    templates_processed: int = 0
    instances_created: int = 0
    instances_skipped: int = 0
    errors: list[SweepError] = Field(default_factory=list)

    user_results: list[UserSweepResult] = Field(default_factory=list)
    template_outcomes: list[TemplateOutcome] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary(self) -> str:
        return (
            f"Processed {self.templates_processed} templates, "
            f"created {self.instances_created} instances, "
            f"skipped {self.instances_skipped}, "
            f"errors {self.error_count}"
        )


class OnDemandResult(BaseModel):
    """
    Response of a user-triggered sweep.

    Serializes as {"success", "createdCount", "message"} with by_alias=True.
    """
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    created_count: int = Field(default=0, ge=0, alias="createdCount")
    message: str
    report: Optional[SweepReport] = Field(default=None, exclude=True)


class RecurringStatus(BaseModel):
    """Counts describing a user's recurring setup."""

    user_id: str
    active_count: int = 0
    paused_count: int = 0
    expired_count: int = 0
    total_instances: int = 0
