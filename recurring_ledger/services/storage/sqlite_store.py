"""
SQLite Storage Implementation

Templates and instances share one flat table, ledger_entries, told apart
by is_template. Instances point back at their template through
template_id; deleting a template cascades to its instances.

CRITICAL: The unique index ux_instance_per_period on
(template_id, entry_date, user_id) is what makes materialization
idempotent. Manual entries have a NULL template_id and never collide.

Each write commits on its own. No transaction spans a sweep, so a crash
keeps everything written so far and the next sweep resumes from it.
"""

import json
import sqlite3
import threading
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from recurring_ledger.config import get_settings
from recurring_ledger.models.audit import AuditEvent
from recurring_ledger.models.template import (
    LedgerInstance,
    RecurringTemplate,
    TemplateScan,
    UnreadableTemplate,
    utcnow,
)
from recurring_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    StoreUnavailableError,
    TransientStorageError,
)

logger = structlog.get_logger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    timezone TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS ledger_entries (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    is_template INTEGER NOT NULL DEFAULT 0,
    template_id TEXT REFERENCES ledger_entries(id) ON DELETE CASCADE,
    entry_date TEXT,
    kind TEXT NOT NULL DEFAULT 'transaction',
    title TEXT NOT NULL,
    amount TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'Other',
    currency TEXT NOT NULL DEFAULT 'INR',
    entry_type TEXT NOT NULL DEFAULT 'expense',
    description TEXT,
    frequency TEXT,
    end_date TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    auto_create INTEGER NOT NULL DEFAULT 1,
    due_date TEXT,
    next_due_date TEXT,
    bill_frequency TEXT,
    last_paid_date TEXT,
    bill_status TEXT,
    payment_method TEXT,
    reminder_days INTEGER NOT NULL DEFAULT 3,
    created_at TEXT NOT NULL,
    updated_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_instance_per_period
    ON ledger_entries(template_id, entry_date, user_id);
CREATE INDEX IF NOT EXISTS idx_entries_user ON ledger_entries(user_id);
CREATE INDEX IF NOT EXISTS idx_entries_active_templates
    ON ledger_entries(is_template, is_active, auto_create);

CREATE TABLE IF NOT EXISTS audit_events (
    event_id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    event_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    entity_type TEXT,
    entity_id TEXT,
    user_id TEXT,
    correlation_id TEXT,
    description TEXT NOT NULL,
    details TEXT,
    error_code TEXT,
    error_message TEXT,
    is_user_action INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_audit_correlation ON audit_events(correlation_id);
"""


# =============================================================================
# CONNECTION
# =============================================================================

class SQLiteDatabase:
    """
    Owns the SQLite connection shared by the ledger and audit stores.

    One connection, guarded by a lock, with WAL so readers never block
    the writer.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings().storage
        self._path = str(path) if path is not None else str(settings.db_path)
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.timeout_seconds
        )
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def path(self) -> str:
        return self._path

    def connect(self) -> sqlite3.Connection:
        """Open the connection and create the schema on first use."""
        if self._conn is not None:
            return self._conn

        try:
            conn = sqlite3.connect(
                self._path,
                timeout=self._timeout,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open database {self._path}: {e}") from e

        self._conn = conn
        logger.info("database_connected", path=self._path)
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run one statement and commit it."""
        conn = self.connect()
        with self._lock:
            try:
                cursor = conn.execute(sql, params)
                conn.commit()
                return cursor
            except sqlite3.IntegrityError as e:
                conn.rollback()
                if "UNIQUE" in str(e):
                    raise DuplicateError(str(e)) from e
                if "FOREIGN KEY" in str(e):
                    raise NotFoundError(str(e)) from e
                raise StorageError(str(e)) from e
            except sqlite3.OperationalError as e:
                conn.rollback()
                if "locked" in str(e) or "busy" in str(e):
                    raise TransientStorageError(str(e)) from e
                raise StorageError(str(e)) from e

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self.connect()
        with self._lock:
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.OperationalError as e:
                if "locked" in str(e) or "busy" in str(e):
                    raise TransientStorageError(str(e)) from e
                raise StorageError(str(e)) from e


# =============================================================================
# ROW CONVERSION
# =============================================================================

def _iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(text: Optional[str]) -> Optional[date]:
    """Lenient: anything unparseable reads as missing."""
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _parse_datetime(text: Optional[str]) -> Optional[datetime]:
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _row_to_template(row: sqlite3.Row) -> RecurringTemplate:
    data = {
        "id": UUID(row["id"]),
        "user_id": row["user_id"],
        "kind": row["kind"],
        "title": row["title"],
        "amount": Decimal(row["amount"]),
        "category": row["category"],
        "currency": row["currency"],
        "entry_type": row["entry_type"],
        "description": row["description"],
        "frequency": row["frequency"],
        "start_date": _parse_date(row["entry_date"]),
        "end_date": _parse_date(row["end_date"]),
        "is_active": bool(row["is_active"]),
        "auto_create": bool(row["auto_create"]),
        "due_date": _parse_date(row["due_date"]),
        "bill_frequency": row["bill_frequency"],
        "last_paid_date": _parse_date(row["last_paid_date"]),
        "bill_status": row["bill_status"],
        "payment_method": row["payment_method"],
        "reminder_days": row["reminder_days"],
    }
    # NULL columns fall back to model defaults
    data = {k: v for k, v in data.items() if v is not None}
    created_at = _parse_datetime(row["created_at"])
    if created_at:
        data["created_at"] = created_at
    updated_at = _parse_datetime(row["updated_at"])
    if updated_at:
        data["updated_at"] = updated_at
    return RecurringTemplate(**data)


def _unreadable(row: sqlite3.Row, error: Exception) -> UnreadableTemplate:
    try:
        template_id = UUID(row["id"])
    except (TypeError, ValueError):
        template_id = None
    return UnreadableTemplate(
        row_id=str(row["id"]),
        template_id=template_id,
        user_id=row["user_id"],
        error_type=type(error).__name__,
        message=f"Stored template could not be read: {error}",
    )


def _row_to_instance(row: sqlite3.Row) -> LedgerInstance:
    data = {
        "id": UUID(row["id"]),
        "user_id": row["user_id"],
        "template_id": UUID(row["template_id"]) if row["template_id"] else None,
        "occurrence_date": _parse_date(row["entry_date"]),
        "kind": row["kind"],
        "title": row["title"],
        "amount": Decimal(row["amount"]),
        "category": row["category"],
        "currency": row["currency"],
        "entry_type": row["entry_type"],
        "description": row["description"],
        "due_date": _parse_date(row["due_date"]),
        "next_due_date": _parse_date(row["next_due_date"]),
        "bill_status": row["bill_status"],
        "payment_method": row["payment_method"],
    }
    created_at = _parse_datetime(row["created_at"])
    if created_at:
        data["created_at"] = created_at
    return LedgerInstance(**data)


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class SQLiteLedgerStorage(LedgerStorageInterface):
    """
    Templates and instances in a local SQLite file.

    Sync sqlite3 calls behind the async interface; every statement is
    short and commits immediately.
    """

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase()

    @property
    def database(self) -> SQLiteDatabase:
        return self._db

    def _read_templates(self, rows: list[sqlite3.Row]) -> TemplateScan:
        scan = TemplateScan()
        for row in rows:
            try:
                scan.templates.append(_row_to_template(row))
            except (ValidationError, InvalidOperation, ValueError) as e:
                logger.warning(
                    "unreadable_template_row",
                    row_id=row["id"],
                    user_id=row["user_id"],
                    error=str(e),
                )
                scan.unreadable.append(_unreadable(row, e))
        return scan

    async def list_active_templates(
        self,
        user_id: Optional[str] = None,
    ) -> TemplateScan:
        sql = (
            "SELECT * FROM ledger_entries "
            "WHERE is_template = 1 AND is_active = 1 AND auto_create = 1"
        )
        params: tuple = ()
        if user_id is not None:
            sql += " AND user_id = ?"
            params = (user_id,)

        try:
            rows = self._db.fetchall(sql, params)
        except StorageError as e:
            raise StoreUnavailableError(f"Failed to list templates: {e}") from e
        return self._read_templates(rows)

    async def list_instances(self, template_id: UUID) -> list[LedgerInstance]:
        rows = self._db.fetchall(
            "SELECT * FROM ledger_entries "
            "WHERE is_template = 0 AND template_id = ? "
            "ORDER BY entry_date DESC",
            (str(template_id),),
        )
        return [_row_to_instance(row) for row in rows]

    async def upsert_instance(self, instance: LedgerInstance) -> bool:
        cursor = self._db.execute(
            """
            INSERT INTO ledger_entries (
                id, user_id, is_template, template_id, entry_date, kind,
                title, amount, category, currency, entry_type, description,
                due_date, next_due_date, bill_status, payment_method,
                created_at
            ) VALUES (?, ?, 0, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(template_id, entry_date, user_id) DO NOTHING
            """,
            (
                str(instance.id),
                instance.user_id,
                str(instance.template_id) if instance.template_id else None,
                instance.occurrence_date.isoformat(),
                instance.kind.value,
                instance.title,
                str(instance.amount),
                instance.category,
                instance.currency,
                instance.entry_type.value,
                instance.description,
                _iso(instance.due_date),
                _iso(instance.next_due_date),
                instance.bill_status.value if instance.bill_status else None,
                instance.payment_method.value if instance.payment_method else None,
                instance.created_at.isoformat(),
            ),
        )
        return cursor.rowcount == 1

    async def set_template_active(self, template_id: UUID, is_active: bool) -> bool:
        cursor = self._db.execute(
            "UPDATE ledger_entries SET is_active = ?, updated_at = ? "
            "WHERE id = ? AND is_template = 1",
            (1 if is_active else 0, utcnow().isoformat(), str(template_id)),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Template {template_id} not found")
        return True

    async def save_template(self, template: RecurringTemplate) -> bool:
        self._db.execute(
            """
            INSERT INTO ledger_entries (
                id, user_id, is_template, template_id, entry_date, kind,
                title, amount, category, currency, entry_type, description,
                frequency, end_date, is_active, auto_create, due_date,
                bill_frequency, last_paid_date, bill_status, payment_method,
                reminder_days, created_at, updated_at
            ) VALUES (?, ?, 1, NULL, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                entry_date = excluded.entry_date,
                kind = excluded.kind,
                title = excluded.title,
                amount = excluded.amount,
                category = excluded.category,
                currency = excluded.currency,
                entry_type = excluded.entry_type,
                description = excluded.description,
                frequency = excluded.frequency,
                end_date = excluded.end_date,
                is_active = excluded.is_active,
                auto_create = excluded.auto_create,
                due_date = excluded.due_date,
                bill_frequency = excluded.bill_frequency,
                last_paid_date = excluded.last_paid_date,
                bill_status = excluded.bill_status,
                payment_method = excluded.payment_method,
                reminder_days = excluded.reminder_days,
                updated_at = excluded.updated_at
            """,
            (
                str(template.id),
                template.user_id,
                _iso(template.start_date),
                template.kind.value,
                template.title,
                str(template.amount),
                template.category,
                template.currency,
                template.entry_type.value,
                template.description,
                template.frequency,
                _iso(template.end_date),
                1 if template.is_active else 0,
                1 if template.auto_create else 0,
                _iso(template.due_date),
                template.bill_frequency,
                _iso(template.last_paid_date),
                template.bill_status.value if template.bill_status else None,
                template.payment_method.value if template.payment_method else None,
                template.reminder_days,
                template.created_at.isoformat(),
                template.updated_at.isoformat(),
            ),
        )
        return True

    async def get_template(self, template_id: UUID) -> Optional[RecurringTemplate]:
        rows = self._db.fetchall(
            "SELECT * FROM ledger_entries WHERE id = ? AND is_template = 1",
            (str(template_id),),
        )
        templates = self._read_templates(rows).templates
        return templates[0] if templates else None

    async def delete_template(self, template_id: UUID) -> bool:
        cursor = self._db.execute(
            "DELETE FROM ledger_entries WHERE id = ? AND is_template = 1",
            (str(template_id),),
        )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("template_deleted", template_id=str(template_id))
        return deleted

    async def list_templates(self, user_id: str) -> list[RecurringTemplate]:
        rows = self._db.fetchall(
            "SELECT * FROM ledger_entries WHERE is_template = 1 AND user_id = ? "
            "ORDER BY created_at",
            (user_id,),
        )
        return self._read_templates(rows).templates

    async def count_instances(self, user_id: str) -> int:
        rows = self._db.fetchall(
            "SELECT COUNT(*) AS n FROM ledger_entries "
            "WHERE is_template = 0 AND template_id IS NOT NULL AND user_id = ?",
            (user_id,),
        )
        return rows[0]["n"]

    async def get_user_timezone(self, user_id: str) -> Optional[str]:
        rows = self._db.fetchall(
            "SELECT timezone FROM users WHERE id = ?",
            (user_id,),
        )
        if not rows:
            raise NotFoundError(f"User {user_id} not found")
        return rows[0]["timezone"]

    async def set_user_timezone(self, user_id: str, timezone: str) -> None:
        self._db.execute(
            "INSERT INTO users (id, timezone) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET timezone = excluded.timezone",
            (user_id, timezone),
        )


# =============================================================================
# AUDIT STORAGE
# =============================================================================

def _row_to_event(row: sqlite3.Row) -> AuditEvent:
    return AuditEvent(
        event_id=UUID(row["event_id"]),
        timestamp=datetime.fromisoformat(row["timestamp"]),
        event_type=row["event_type"],
        severity=row["severity"],
        entity_type=row["entity_type"],
        entity_id=UUID(row["entity_id"]) if row["entity_id"] else None,
        user_id=row["user_id"],
        correlation_id=UUID(row["correlation_id"]) if row["correlation_id"] else None,
        description=row["description"],
        details=json.loads(row["details"]) if row["details"] else {},
        error_code=row["error_code"],
        error_message=row["error_message"],
        is_user_action=bool(row["is_user_action"]),
    )


class SQLiteAuditStorage(AuditStorageInterface):
    """
    Append-only audit log in the audit_events table.
    """

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase()

    async def append_event(self, event: AuditEvent) -> bool:
        self._db.execute(
            "INSERT INTO audit_events VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            event.to_row(),
        )
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        rows = self._db.fetchall(
            "SELECT * FROM audit_events WHERE correlation_id = ? ORDER BY timestamp",
            (str(correlation_id),),
        )
        return [_row_to_event(row) for row in rows]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        rows = self._db.fetchall(
            "SELECT * FROM audit_events ORDER BY timestamp DESC LIMIT ?",
            (limit,),
        )
        return [_row_to_event(row) for row in rows]
