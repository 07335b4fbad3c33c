"""Tests for settings, the audit logger and the command-line entry point."""

import asyncio
import json
from uuid import uuid4

import pytest

from recurring_ledger.audit import AuditLogger
from recurring_ledger.cli import build_parser, main
from recurring_ledger.config import EngineSettings, get_settings, validate_all_settings
from recurring_ledger.models.audit import AuditEventBuilder
from recurring_ledger.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)

from conftest import make_template


class FailingAuditStorage(AuditStorageInterface):
    async def append_event(self, event):
        raise RuntimeError("audit table missing")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.max_catchup_steps == 365
        assert settings.default_timezone == "UTC"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("RECURRING_MAX_CONCURRENT_TEMPLATES", "8")
        assert EngineSettings().max_concurrent_templates == 8

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError):
            EngineSettings(default_timezone="Nowhere/Special")

    def test_validate_all_settings(self, monkeypatch):
        monkeypatch.setenv("RECURRING_MAX_CATCHUP_STEPS", "0")
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert results["engine"] is False
        assert "engine_error" in results
        assert results["storage"] is True


class TestAuditLogger:
    """Tests for audit persistence."""

    @pytest.mark.asyncio
    async def test_persists_event(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        ok = await logger.log(AuditEventBuilder.on_demand_requested("user-1", sweep_id=uuid4()))

        assert ok
        assert len(storage.events) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_swallowed(self):
        logger = AuditLogger(FailingAuditStorage())
        ok = await logger.log(AuditEventBuilder.sweep_aborted(uuid4(), "gone"))
        assert ok is False


class TestCli:
    """Tests for the recurring-ledger command."""

    def seed(self, db_path):
        database = SQLiteDatabase(path=db_path)
        asyncio.run(SQLiteLedgerStorage(database).save_template(make_template()))
        database.close()

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_parser_rejects_bad_date(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--today", "20/04/2024", "sweep"])

    def test_sweep_user_prints_json(self, tmp_path, capsys):
        db_path = tmp_path / "ledger.db"
        self.seed(db_path)

        code = main(["--db", str(db_path), "--today", "2024-04-20", "sweep-user", "user-1"])

        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload == {
            "success": True,
            "createdCount": 4,
            "message": "Processed 1 templates, created 4 instances, skipped 0",
        }

    def test_sweep_then_status(self, tmp_path, capsys):
        db_path = tmp_path / "ledger.db"
        self.seed(db_path)

        assert main(["--db", str(db_path), "--today", "2024-04-20", "sweep"]) == 0
        assert main(["--db", str(db_path), "--today", "2024-04-20", "status", "user-1"]) == 0

        out = capsys.readouterr().out
        assert out.startswith("Processed 1 templates, created 4 instances")
        status = json.loads(out[out.index("{"):])
        assert status["total_instances"] == 4
        assert status["active_count"] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
