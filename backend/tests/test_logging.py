"""
Structured JSON logging and the application lifespan messages
"""
import json
import logging

import main
from core.utils.logging import StructuredLogger


def _entries(caplog):
    return [json.loads(record.getMessage()) for record in caplog.records if record.name == "aquaticpose"]


class TestStructuredLogger:
    def test_info_is_json(self, caplog):
        with caplog.at_level(logging.INFO, logger="aquaticpose"):
            StructuredLogger().info(message="hello", correlation_id="abc", metadata={"k": 1})

        [entry] = _entries(caplog)
        assert entry["level"] == "INFO"
        assert entry["message"] == "hello"
        assert entry["correlation_id"] == "abc"
        assert entry["metadata"] == {"k": 1}

    def test_error_carries_exception(self, caplog):
        with caplog.at_level(logging.INFO, logger="aquaticpose"):
            StructuredLogger().error(message="boom", exception=ValueError("bad value"))

        [entry] = _entries(caplog)
        assert entry["exception"] == {"type": "ValueError", "message": "bad value"}


async def test_lifespan_logs_start_and_stop(monkeypatch, caplog):
    async def noop(*args, **kwargs):
        return None

    monkeypatch.setattr(main, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(main, "initialize_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(main.db_manager, "create_all", noop)
    monkeypatch.setattr(main.db_manager, "dispose", noop)

    with caplog.at_level(logging.INFO, logger="aquaticpose"):
        async with main.lifespan(main.app):
            pass

    assert [entry["message"] for entry in _entries(caplog)] == [
        "AquaticPose API started",
        "AquaticPose API stopped",
    ]
