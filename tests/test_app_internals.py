"""Tests for websocket task cleanup and logging setup."""

import asyncio
import json
import logging

import logging_config
from main import stop_task


def test_stop_task_collects_send_failure(caplog):
    async def failing_send():
        raise RuntimeError("connection reset")

    async def run():
        task = asyncio.create_task(failing_send())
        await asyncio.sleep(0)
        await stop_task(task)
        return task

    with caplog.at_level(logging.ERROR, logger="main"):
        task = asyncio.run(run())

    assert task.done()
    assert "Alert push to websocket failed" in caplog.text
    assert "connection reset" in caplog.text


def test_stop_task_cancels_idle_sender():
    async def run():
        task = asyncio.create_task(asyncio.Event().wait())
        await asyncio.sleep(0)
        await stop_task(task)
        return task

    task = asyncio.run(run())
    assert task.cancelled()


def test_json_logging_formats_one_object_per_record():
    handler = logging_config.setup_logging(level="WARNING", as_json=True)
    try:
        record = logging.LogRecord("background", logging.WARNING, __file__, 1, "Crisis alert %s", (7,), None)
        entry = json.loads(handler.format(record))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "background"
        assert entry["message"] == "Crisis alert 7"
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        logging_config.setup_logging(level="INFO", as_json=False)
