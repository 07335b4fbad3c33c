"""
Audit Logger

DESIGN DECISION: Every sweep leaves a trail. This provides:
1. Traceability: which sweep created which instance
2. Debugging: why a template was skipped or deactivated
3. A history users can be shown for their own templates

The audit logger:
- Is async to not block the sweep
- Gracefully handles failures (a broken audit store never stops a sweep)
- Uses the sweep id as the correlation id for everything it logs
"""

import logging
import sys
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from recurring_ledger.config import LoggingSettings, get_settings
from recurring_ledger.models.audit import AuditEvent, AuditEventBuilder
from recurring_ledger.services.storage import AuditStorageInterface


def configure_logging(settings: Optional[LoggingSettings] = None) -> None:
    """Configure stdlib logging and structlog from LoggingSettings."""
    settings = settings or get_settings().logging

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.level),
    )
    logging.getLogger().setLevel(getattr(logging, settings.level))

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Configure structlog for local logging
configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("recurring_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_sweep_started(
        self,
        sweep_id: UUID,
        trigger: str,
        user_scope: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.sweep_started(
            sweep_id=sweep_id,
            trigger=trigger,
            user_scope=user_scope,
        ))

    async def log_sweep_completed(
        self,
        sweep_id: UUID,
        templates_processed: int,
        instances_created: int,
        instances_skipped: int,
        error_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.sweep_completed(
            sweep_id=sweep_id,
            templates_processed=templates_processed,
            instances_created=instances_created,
            instances_skipped=instances_skipped,
            error_count=error_count,
        ))

    async def log_sweep_aborted(self, sweep_id: UUID, error_message: str) -> None:
        await self.log(AuditEventBuilder.sweep_aborted(
            sweep_id=sweep_id,
            error_message=error_message,
        ))

    async def log_on_demand(self, user_id: str, sweep_id: UUID) -> None:
        """Log a user-triggered sweep."""
        await self.log(AuditEventBuilder.on_demand_requested(
            user_id=user_id,
            sweep_id=sweep_id,
        ))

    async def log_instance_created(
        self,
        instance_id: UUID,
        template_id: UUID,
        user_id: str,
        occurrence_date: date,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.instance_created(
            instance_id=instance_id,
            template_id=template_id,
            user_id=user_id,
            occurrence_date=occurrence_date,
            correlation_id=correlation_id,
        ))

    async def log_template_deactivated(
        self,
        template_id: UUID,
        user_id: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.template_deactivated(
            template_id=template_id,
            user_id=user_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_template_failed(
        self,
        template_id: Optional[UUID],
        user_id: Optional[str],
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a template the sweep had to skip."""
        await self.log(AuditEventBuilder.template_failed(
            template_id=template_id,
            user_id=user_id,
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Each sweep gets one; every event it logs carries it.
    """
    return uuid4()
