"""
Idempotent Materializer

Turns one candidate occurrence into one stored instance, exactly once.

CRITICAL: There is no "does it exist yet?" read before the write. Two
sweeps running side by side would both see "no" and both write. Instead
the write itself is conditional on the (template_id, occurrence_date,
user_id) key, and losing that race is reported as "already there".
"""

from typing import Optional

import structlog

from recurring_ledger.models.template import LedgerInstance, RecurringTemplate
from recurring_ledger.schedule.catch_up import Candidate
from recurring_ledger.schedule.due_dates import DueDateChain
from recurring_ledger.services.storage.interface import (
    DuplicateError,
    LedgerStorageInterface,
    storage_retry,
)

logger = structlog.get_logger(__name__)


class IdempotentMaterializer:
    """Writes instances through the store's conditional insert."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    def build_instance(
        self,
        template: RecurringTemplate,
        candidate: Candidate,
        user_id: str,
        due_chain: Optional[DueDateChain] = None,
    ) -> LedgerInstance:
        due_fields = due_chain.fields_for(candidate.index) if due_chain else {}
        return LedgerInstance.from_template(
            template,
            occurrence_date=candidate.occurrence_date,
            user_id=user_id,
            **due_fields,
        )

    @storage_retry
    async def _write(self, instance: LedgerInstance) -> bool:
        try:
            return await self._storage.upsert_instance(instance)
        except DuplicateError:
            logger.debug(
                "instance_already_materialized",
                template_id=str(instance.template_id),
                occurrence_date=instance.occurrence_date.isoformat(),
                user_id=instance.user_id,
            )
            return False

    async def materialize(
        self,
        template: RecurringTemplate,
        candidate: Candidate,
        user_id: str,
        due_chain: Optional[DueDateChain] = None,
    ) -> tuple[bool, LedgerInstance]:
        """
        Store the instance for one candidate.

        Args:
            template: The owning template
            candidate: Period index and occurrence date
            user_id: Owner of the new instance
            due_chain: Due-date chain for bills, None otherwise

        Returns:
            (created, instance): created is False when the key already
            existed, in which case nothing was written

        Raises:
            TransientStorageError: If the write failed twice
            StorageError: For any other storage failure
        """
        instance = self.build_instance(template, candidate, user_id, due_chain)
        created = await self._write(instance)
        return created, instance
