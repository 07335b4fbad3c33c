"""
Main Orchestrator for Recurring Ledger

This module ties the components together and defines the two ways a
sweep starts:
1. Scheduled sweep (every user, every active template)
2. On-demand sweep (one user, from a user action)

Both run the same per-template pipeline:
validate -> read instances -> build cursor -> catch up -> materialize
-> deactivate if finished

DESIGN DECISION: The orchestrator enforces the boundaries:
- A failing template never stops the other templates
- Every instance write is its own checkpoint; no transaction spans a sweep
- Duplicate prevention is left entirely to the store's unique key, so a
  scheduled sweep and an on-demand sweep may overlap freely

CRITICAL: Only StoreUnavailableError aborts a sweep. Everything else is
recorded against the template it happened in.
"""

import asyncio
from datetime import date
from typing import Awaitable, Iterable, Optional
from uuid import UUID

import structlog

from recurring_ledger.audit import AuditLogger, create_correlation_id
from recurring_ledger.config import EngineSettings, get_settings
from recurring_ledger.engine import IdempotentMaterializer
from recurring_ledger.models.report import (
    OnDemandResult,
    RecurringStatus,
    SweepError,
    SweepReport,
    SweepState,
    SweepTrigger,
    TemplateOutcome,
    UserSweepResult,
)
from recurring_ledger.models.template import (
    Frequency,
    LedgerInstance,
    RecurringTemplate,
    UnreadableTemplate,
    utcnow,
)
from recurring_ledger.schedule import (
    CatchUpGenerator,
    DueDateChain,
    build_cursor,
    parse_frequency,
)
from recurring_ledger.services.clock import UserClock
from recurring_ledger.services.storage import (
    LedgerStorageInterface,
    StorageError,
    StoreUnavailableError,
    storage_retry,
)
from recurring_ledger.validation import TemplateValidator

logger = structlog.get_logger(__name__)


class SweepAbortedError(Exception):
    """The store became unreachable; the sweep stopped."""

    def __init__(self, sweep_id: UUID, reason: str):
        self.sweep_id = sweep_id
        self.reason = reason
        super().__init__(reason)


class RecurringJobOrchestrator:
    """
    Runs sweeps over recurring templates.

    Flow per sweep:
    1. Scan → list active templates (failure here aborts); unreadable
       rows are reported as template errors
    2. Resolve "today" once per user
    3. Process templates through a bounded worker pool
    4. Aggregate → SweepReport with per-user and per-template breakdowns
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        clock: UserClock,
        validator: Optional[TemplateValidator] = None,
        catch_up: Optional[CatchUpGenerator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._settings = settings or get_settings().engine
        self._storage = storage
        self._clock = clock
        self._validator = validator or TemplateValidator()
        self._catch_up = catch_up or CatchUpGenerator(self._settings.max_catchup_steps)
        self._materializer = IdempotentMaterializer(storage)
        self._audit_logger = audit_logger
        # Running sweeps only; a sweep leaves the map when it returns to IDLE
        self._sweeps: dict[UUID, SweepState] = {}

    @property
    def state(self) -> SweepState:
        """State of the most recently started sweep still running, IDLE if none."""
        if not self._sweeps:
            return SweepState.IDLE
        return next(reversed(self._sweeps.values()))

    @property
    def sweep_states(self) -> dict[UUID, SweepState]:
        """Current state of every running sweep, by sweep id."""
        return dict(self._sweeps)

    def _transition(self, state: SweepState, sweep_id: UUID) -> None:
        from_state = self._sweeps.get(sweep_id, SweepState.IDLE)
        logger.info(
            "sweep_state_changed",
            sweep_id=str(sweep_id),
            from_state=from_state.value,
            to_state=state.value,
        )
        if state is SweepState.IDLE:
            self._sweeps.pop(sweep_id, None)
        else:
            self._sweeps[sweep_id] = state

    # ===== STORAGE CALLS WITH ONE RETRY =====

    @storage_retry
    async def _read_instances(self, template_id: UUID) -> list[LedgerInstance]:
        return await self._storage.list_instances(template_id)

    @storage_retry
    async def _deactivate(self, template_id: UUID) -> bool:
        return await self._storage.set_template_active(template_id, False)

    # ===== PER-TEMPLATE PIPELINE =====

    async def process_template(
        self,
        template: RecurringTemplate,
        today: date,
        sweep_id: Optional[UUID] = None,
    ) -> TemplateOutcome:
        """
        Bring one template up to date.

        Args:
            template: The template to process
            today: The owner's current calendar date
            sweep_id: Correlation id for audit events

        Returns:
            TemplateOutcome. Failures are recorded in outcome.error;
            instances written before a failure stay written and counted.

        Raises:
            StoreUnavailableError: The store is gone; the sweep must stop
        """
        outcome = TemplateOutcome(
            template_id=template.id,
            user_id=template.user_id,
            kind=template.kind,
        )

        try:
            self._validator.ensure_valid(template)
            existing = await self._read_instances(template.id)
            cursor = build_cursor(template, existing, today)
            outcome.boundary = cursor.boundary
            due_chain = DueDateChain.for_template(template)

            for candidate in self._catch_up.candidates(cursor):
                created, instance = await self._materializer.materialize(
                    template,
                    candidate,
                    user_id=template.user_id,
                    due_chain=due_chain,
                )
                if created:
                    outcome.created += 1
                    outcome.created_dates.append(candidate.occurrence_date)
                    if self._audit_logger:
                        await self._audit_logger.log_instance_created(
                            instance_id=instance.id,
                            template_id=template.id,
                            user_id=template.user_id,
                            occurrence_date=candidate.occurrence_date,
                            correlation_id=sweep_id,
                        )
                else:
                    outcome.skipped += 1

            reason = self._deactivation_reason(
                template,
                today,
                has_instance=bool(existing) or outcome.created + outcome.skipped > 0,
            )
            if reason:
                await self._deactivate(template.id)
                outcome.deactivated = True
                logger.info(
                    "template_deactivated",
                    template_id=str(template.id),
                    user_id=template.user_id,
                    reason=reason,
                )
                if self._audit_logger:
                    await self._audit_logger.log_template_deactivated(
                        template_id=template.id,
                        user_id=template.user_id,
                        reason=reason,
                        correlation_id=sweep_id,
                    )

        except StoreUnavailableError:
            raise
        except Exception as e:
            outcome.error = SweepError(
                template_id=template.id,
                user_id=template.user_id,
                error_type=type(e).__name__,
                message=str(e),
            )
            await self._report_failure(
                outcome.error,
                sweep_id,
                created_before_failure=outcome.created,
            )

        return outcome

    async def _report_failure(
        self,
        error: SweepError,
        sweep_id: Optional[UUID],
        **log_fields,
    ) -> None:
        logger.error(
            "template_failed",
            template_id=str(error.template_id),
            user_id=error.user_id,
            error_type=error.error_type,
            error=error.message,
            **log_fields,
        )
        if self._audit_logger:
            await self._audit_logger.log_template_failed(
                template_id=error.template_id,
                user_id=error.user_id,
                error_type=error.error_type,
                error_message=error.message,
                correlation_id=sweep_id,
            )

    @staticmethod
    def _deactivation_reason(
        template: RecurringTemplate,
        today: date,
        has_instance: bool,
    ) -> Optional[str]:
        if template.end_date is not None and template.end_date <= today:
            return f"end date {template.end_date.isoformat()} reached"
        if parse_frequency(template.effective_frequency) is Frequency.ONE_TIME and has_instance:
            return "one-time occurrence materialized"
        return None

    # ===== SWEEPS =====

    async def _resolve_today(
        self,
        templates: list[RecurringTemplate],
    ) -> tuple[dict[str, date], dict[str, Exception]]:
        today_by_user: dict[str, date] = {}
        failed_users: dict[str, Exception] = {}
        for user_id in sorted({t.user_id for t in templates}):
            try:
                today_by_user[user_id] = await self._clock.today_for(user_id)
            except StoreUnavailableError:
                raise
            except Exception as e:
                failed_users[user_id] = e
        return today_by_user, failed_users

    async def _sweep(
        self,
        trigger: SweepTrigger,
        user_id: Optional[str],
        sweep_id: UUID,
    ) -> SweepReport:
        report = SweepReport(sweep_id=sweep_id, trigger=trigger, user_scope=user_id)

        if self._audit_logger:
            await self._audit_logger.log_sweep_started(
                sweep_id=sweep_id,
                trigger=trigger.value,
                user_scope=user_id,
            )

        try:
            self._transition(SweepState.SCANNING, sweep_id)
            try:
                scan = await self._storage.list_active_templates(user_id)
            except StorageError as e:
                raise StoreUnavailableError(str(e)) from e
            templates = scan.templates
            unreadable = [self._unreadable_error(row) for row in scan.unreadable]
            for error in unreadable:
                await self._report_failure(error, sweep_id)
            today_by_user, failed_users = await self._resolve_today(templates)

            logger.info(
                "sweep_scanned",
                sweep_id=str(sweep_id),
                template_count=len(templates),
                unreadable_count=len(unreadable),
                user_count=len(today_by_user) + len(failed_users),
            )

            self._transition(SweepState.PER_TEMPLATE, sweep_id)
            semaphore = asyncio.Semaphore(self._settings.max_concurrent_templates)

            async def run_one(template: RecurringTemplate) -> TemplateOutcome:
                if template.user_id in failed_users:
                    e = failed_users[template.user_id]
                    return TemplateOutcome(
                        template_id=template.id,
                        user_id=template.user_id,
                        kind=template.kind,
                        error=SweepError(
                            template_id=template.id,
                            user_id=template.user_id,
                            error_type=type(e).__name__,
                            message=f"Could not resolve today: {e}",
                        ),
                    )
                async with semaphore:
                    return await self.process_template(
                        template,
                        today_by_user[template.user_id],
                        sweep_id=sweep_id,
                    )

            outcomes = await self._run_all(run_one(t) for t in templates)

        except StoreUnavailableError as e:
            self._transition(SweepState.IDLE, sweep_id)
            logger.error("sweep_aborted", sweep_id=str(sweep_id), error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_sweep_aborted(sweep_id, str(e))
            raise SweepAbortedError(sweep_id, str(e)) from e

        self._transition(SweepState.AGGREGATING, sweep_id)
        self._aggregate(report, outcomes, unreadable)
        report.finished_at = utcnow()

        if self._audit_logger:
            await self._audit_logger.log_sweep_completed(
                sweep_id=sweep_id,
                templates_processed=report.templates_processed,
                instances_created=report.instances_created,
                instances_skipped=report.instances_skipped,
                error_count=report.error_count,
            )
        logger.info(
            "sweep_completed",
            sweep_id=str(sweep_id),
            trigger=trigger.value,
            summary=report.summary(),
        )

        self._transition(SweepState.IDLE, sweep_id)
        return report

    @staticmethod
    async def _run_all(coros: Iterable[Awaitable[TemplateOutcome]]) -> list[TemplateOutcome]:
        """
        Run template coroutines concurrently.

        If one raises, the rest are cancelled and awaited before the
        exception propagates, so no write outlives an aborted sweep.
        """
        tasks = [asyncio.ensure_future(coro) for coro in coros]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    @staticmethod
    def _unreadable_error(row: UnreadableTemplate) -> SweepError:
        return SweepError(
            template_id=row.template_id,
            user_id=row.user_id,
            error_type=row.error_type,
            message=row.message,
        )

    @staticmethod
    def _aggregate(
        report: SweepReport,
        outcomes: list[TemplateOutcome],
        unreadable: Optional[list[SweepError]] = None,
    ) -> None:
        by_user: dict[str, UserSweepResult] = {}

        for outcome in outcomes:
            user = by_user.setdefault(
                outcome.user_id,
                UserSweepResult(user_id=outcome.user_id),
            )
            report.instances_created += outcome.created
            report.instances_skipped += outcome.skipped
            user.created += outcome.created
            user.skipped += outcome.skipped

            if outcome.succeeded:
                report.templates_processed += 1
                user.processed += 1
            else:
                report.errors.append(outcome.error)
                user.errors.append(outcome.error.describe())

        for error in unreadable or []:
            user = by_user.setdefault(error.user_id, UserSweepResult(user_id=error.user_id))
            report.errors.append(error)
            user.errors.append(error.describe())

        report.template_outcomes = list(outcomes)
        report.user_results = [by_user[u] for u in sorted(by_user)]

    async def run_full_sweep(self) -> SweepReport:
        """
        Process every active template of every user.

        Raises:
            SweepAbortedError: If the store is unreachable
        """
        return await self._sweep(SweepTrigger.SCHEDULED, None, create_correlation_id())

    async def run_user_sweep(self, user_id: str) -> OnDemandResult:
        """
        Process one user's templates now.

        Never raises for store failures; they come back as success=False.
        """
        sweep_id = create_correlation_id()
        if self._audit_logger:
            await self._audit_logger.log_on_demand(user_id=user_id, sweep_id=sweep_id)

        try:
            report = await self._sweep(SweepTrigger.ON_DEMAND, user_id, sweep_id)
        except SweepAbortedError as e:
            return OnDemandResult(
                success=False,
                created_count=0,
                message=f"Error: {e.reason}",
            )

        if not report.template_outcomes and not report.errors:
            return OnDemandResult(
                success=True,
                created_count=0,
                message="No active recurring transactions found",
                report=report,
            )

        message = (
            f"Processed {report.templates_processed} templates, "
            f"created {report.instances_created} instances, "
            f"skipped {report.instances_skipped}"
        )
        if report.errors:
            message += f"; {report.error_count} failed: " + "; ".join(
                error.describe() for error in report.errors
            )

        return OnDemandResult(
            success=True,
            created_count=report.instances_created,
            message=message,
            report=report,
        )

    # ===== STATUS =====

    async def get_status(self, user_id: str) -> RecurringStatus:
        """Active, paused and expired template counts plus generated instances."""
        templates = await self._storage.list_templates(user_id)
        today = await self._clock.today_for(user_id)

        def expired(t: RecurringTemplate) -> bool:
            return t.end_date is not None and t.end_date < today

        return RecurringStatus(
            user_id=user_id,
            active_count=sum(1 for t in templates if t.is_active and not expired(t)),
            paused_count=sum(1 for t in templates if not t.is_active),
            expired_count=sum(1 for t in templates if expired(t)),
            total_instances=await self._storage.count_instances(user_id),
        )
