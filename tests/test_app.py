"""Tests for settings validation and the sync daemon wiring."""
import asyncio
from unittest.mock import MagicMock

import pytest

from syncqueue import app, settings
from syncqueue.queue.models import HandlerResult
from syncqueue.storage.file_store import FileStore
from syncqueue.storage.memory_store import MemoryStore
from syncqueue.storage.postgres_store import PostgresStore


@pytest.fixture
def configured(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "SYNC_API_URL", "https://api.example.test")
    monkeypatch.setattr(settings, "CONNECTIVITY_PROBE_URL", "https://api.example.test")
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "memory")
    monkeypatch.setattr(settings, "STORAGE_DIR", tmp_path)


class TestValidateConfig:

    def test_valid(self, configured):
        settings.validate_config()

    def test_collects_all_errors(self, configured, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_API_URL", None)
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "postgres")
        monkeypatch.setattr(settings, "DATABASE_URL", None)
        monkeypatch.setattr(settings, "MAX_ATTEMPTS", 0)

        with pytest.raises(ValueError) as excinfo:
            settings.validate_config()

        message = str(excinfo.value)
        assert "SYNC_API_URL" in message
        assert "DATABASE_URL" in message
        assert "MAX_ATTEMPTS" in message

    def test_unknown_backend(self, configured, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "redis")
        with pytest.raises(ValueError, match="STORAGE_BACKEND"):
            settings.validate_config()


class TestBuildStore:

    def test_backends(self, configured, monkeypatch):
        monkeypatch.setattr(settings, "DATABASE_URL", "postgres://x")
        assert isinstance(app.build_store("memory"), MemoryStore)
        assert isinstance(app.build_store("file"), FileStore)
        assert isinstance(app.build_store("postgres"), PostgresStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            app.build_store("redis")


class TestApplication:

    def test_requires_configuration(self, configured, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_API_URL", None)
        with pytest.raises(ValueError):
            app.Application()

    def test_sweep_once_delivers_pending_actions(self, configured):
        application = app.Application()
        application.client.handle = MagicMock(side_effect=self._async_result(HandlerResult(success=True)))

        async def scenario():
            await application.queue.initialize()
            await application.queue.add({"type": "FORM_SUBMIT", "payload": {"n": 1}})
            offline = await application.sweep_once()
            application.monitor.set_offline(False)
            online = await application.sweep_once()
            return offline, online

        offline, online = asyncio.run(scenario())

        assert offline == 0
        assert online == 1
        assert application.queue.get_queue_length() == 0
        application.client.handle.assert_called_once()

    def test_run_stops_on_request(self, configured, monkeypatch):
        application = app.Application()
        application.monitor.probe = lambda: True
        monkeypatch.setattr(application.monitor, "start", MagicMock())

        async def scenario():
            task = asyncio.create_task(application.run())
            await asyncio.sleep(0.05)
            application.request_stop()
            await asyncio.wait_for(task, timeout=5)

        asyncio.run(scenario())

        assert not application.running
        assert not application.monitor.is_offline()

    @staticmethod
    def _async_result(result):
        async def handle(action):
            return result

        return handle
