"""
Audit Models for Recurring Ledger

Every sweep leaves a trail: when it started, which instances it created,
which templates it deactivated or failed on, and how it ended.
This provides:
1. Traceability of every generated ledger entry
2. Debugging information when a template misbehaves
3. Ability to reconstruct what a sweep did after the fact

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from recurring_ledger.models.template import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Sweep lifecycle
    SWEEP_STARTED = "sweep_started"
    SWEEP_COMPLETED = "sweep_completed"
    SWEEP_ABORTED = "sweep_aborted"
    ON_DEMAND_REQUESTED = "on_demand_requested"

    # Per template
    INSTANCE_CREATED = "instance_created"
    TEMPLATE_DEACTIVATED = "template_deactivated"
    TEMPLATE_FAILED = "template_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    correlation_id is the sweep id, so every event of one sweep can be
    pulled back together.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'template', 'instance', 'sweep')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Sweep that produced this event"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> tuple:
        """
        Convert to a row for the audit_events table.

        Column order:
        (event_id, timestamp, event_type, severity, entity_type, entity_id,
         user_id, correlation_id, description, details_json, error_code,
         error_message, is_user_action)
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type,
            str(self.entity_id) if self.entity_id else None,
            self.user_id,
            str(self.correlation_id) if self.correlation_id else None,
            self.description,
            json.dumps(self.details, default=str) if self.details else None,
            self.error_code,
            self.error_message,
            1 if self.is_user_action else 0,
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.sweep_started(sweep_id, "scheduled", None)
        event = AuditEventBuilder.instance_created(instance_id, ...)
    """

    @staticmethod
    def sweep_started(
        sweep_id: UUID,
        trigger: str,
        user_scope: Optional[str],
    ) -> AuditEvent:
        scope = f"user {user_scope}" if user_scope else "all users"
        return AuditEvent(
            event_type=AuditEventType.SWEEP_STARTED,
            entity_type="sweep",
            entity_id=sweep_id,
            user_id=user_scope,
            correlation_id=sweep_id,
            description=f"{trigger.capitalize()} sweep started for {scope}",
            details={"trigger": trigger},
        )

    @staticmethod
    def sweep_completed(
        sweep_id: UUID,
        templates_processed: int,
        instances_created: int,
        instances_skipped: int,
        error_count: int,
    ) -> AuditEvent:
        severity = AuditSeverity.WARNING if error_count else AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.SWEEP_COMPLETED,
            severity=severity,
            entity_type="sweep",
            entity_id=sweep_id,
            correlation_id=sweep_id,
            description=(
                f"Sweep completed: {instances_created} created, "
                f"{error_count} errors"
            ),
            details={
                "templates_processed": templates_processed,
                "instances_created": instances_created,
                "instances_skipped": instances_skipped,
                "error_count": error_count,
            },
        )

    @staticmethod
    def sweep_aborted(
        sweep_id: UUID,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SWEEP_ABORTED,
            severity=AuditSeverity.CRITICAL,
            entity_type="sweep",
            entity_id=sweep_id,
            correlation_id=sweep_id,
            description="Sweep aborted: store unreachable",
            error_message=error_message,
        )

    @staticmethod
    def on_demand_requested(
        user_id: str,
        sweep_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ON_DEMAND_REQUESTED,
            entity_type="sweep",
            entity_id=sweep_id,
            user_id=user_id,
            correlation_id=sweep_id,
            description=f"User {user_id} requested recurring generation",
            is_user_action=True,
        )

    @staticmethod
    def instance_created(
        instance_id: UUID,
        template_id: UUID,
        user_id: str,
        occurrence_date: date,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTANCE_CREATED,
            entity_type="instance",
            entity_id=instance_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Instance created for {occurrence_date.isoformat()}",
            details={
                "template_id": str(template_id),
                "occurrence_date": occurrence_date.isoformat(),
            },
        )

    @staticmethod
    def template_deactivated(
        template_id: UUID,
        user_id: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_DEACTIVATED,
            entity_type="template",
            entity_id=template_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Template deactivated: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def template_failed(
        template_id: Optional[UUID],
        user_id: Optional[str],
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="template",
            entity_id=template_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Template skipped: {error_type}",
            error_code=error_type,
            error_message=error_message,
        )
