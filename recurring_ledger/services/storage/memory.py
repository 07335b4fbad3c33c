"""
In-Memory Storage Implementation

Same contract as the SQLite store, kept in dicts. Used by tests and by
dry runs that should not touch a database.

Instances are keyed by (template_id, occurrence_date, user_id), the same
triple the SQLite unique index covers. A second insert for a key raises
DuplicateError, the way a backend without ON CONFLICT would.
"""

import asyncio
from datetime import date
from typing import Optional
from uuid import UUID

from recurring_ledger.models.audit import AuditEvent
from recurring_ledger.models.template import (
    LedgerInstance,
    RecurringTemplate,
    TemplateScan,
    utcnow,
)
from recurring_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)

InstanceKey = tuple[Optional[UUID], date, str]


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger storage."""

    def __init__(self):
        self._templates: dict[UUID, RecurringTemplate] = {}
        self._instances: dict[InstanceKey, LedgerInstance] = {}
        self._timezones: dict[str, Optional[str]] = {}

    # ===== TEST HELPERS =====

    def add_template(self, template: RecurringTemplate) -> RecurringTemplate:
        self._templates[template.id] = template
        return template

    def add_user(self, user_id: str, timezone: Optional[str] = None) -> None:
        self._timezones[user_id] = timezone

    @property
    def instances(self) -> list[LedgerInstance]:
        return list(self._instances.values())

    # ===== ENGINE OPERATIONS =====

    async def list_active_templates(
        self,
        user_id: Optional[str] = None,
    ) -> TemplateScan:
        return TemplateScan(templates=[
            t for t in self._templates.values()
            if t.is_active and t.auto_create
            and (user_id is None or t.user_id == user_id)
        ])

    async def list_instances(self, template_id: UUID) -> list[LedgerInstance]:
        found = [i for i in self._instances.values() if i.template_id == template_id]
        return sorted(found, key=lambda i: i.occurrence_date, reverse=True)

    async def upsert_instance(self, instance: LedgerInstance) -> bool:
        key = (instance.template_id, instance.occurrence_date, instance.user_id)
        # Yield so concurrent sweeps interleave between their reads and writes.
        await asyncio.sleep(0)
        if key in self._instances:
            raise DuplicateError(
                f"Instance for {instance.template_id} on "
                f"{instance.occurrence_date} already exists"
            )
        self._instances[key] = instance
        return True

    async def set_template_active(self, template_id: UUID, is_active: bool) -> bool:
        template = self._templates.get(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        self._templates[template_id] = template.model_copy(
            update={"is_active": is_active, "updated_at": utcnow()}
        )
        return True

    # ===== USER ACTIONS AND STATUS =====

    async def save_template(self, template: RecurringTemplate) -> bool:
        self._templates[template.id] = template
        return True

    async def get_template(self, template_id: UUID) -> Optional[RecurringTemplate]:
        return self._templates.get(template_id)

    async def delete_template(self, template_id: UUID) -> bool:
        if self._templates.pop(template_id, None) is None:
            return False
        for key in [k for k in self._instances if k[0] == template_id]:
            del self._instances[key]
        return True

    async def list_templates(self, user_id: str) -> list[RecurringTemplate]:
        return [t for t in self._templates.values() if t.user_id == user_id]

    async def count_instances(self, user_id: str) -> int:
        return sum(
            1 for i in self._instances.values()
            if i.user_id == user_id and i.template_id is not None
        )

    async def get_user_timezone(self, user_id: str) -> Optional[str]:
        if user_id not in self._timezones:
            raise NotFoundError(f"User {user_id} not found")
        return self._timezones[user_id]

    async def set_user_timezone(self, user_id: str, timezone: str) -> None:
        self._timezones[user_id] = timezone


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
