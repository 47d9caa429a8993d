"""Tests for scheduler wiring and logging setup."""

import json
import logging
from unittest.mock import MagicMock

from dealfinder.logging_config import get_logger, setup_logging
from dealfinder.worker.scheduler import setup_scheduler


def test_scheduler_jobs():
    runner = MagicMock()
    table = MagicMock()

    scheduler = setup_scheduler(runner, table)
    jobs = {job.id: job for job in scheduler.get_jobs()}

    assert set(jobs) == {"watch_tick", "currency_refresh"}
    assert jobs["watch_tick"].max_instances == 1
    assert jobs["watch_tick"].coalesce is True
    assert jobs["watch_tick"].trigger.interval.total_seconds() == 10 * 60
    assert jobs["currency_refresh"].trigger.interval.total_seconds() == 6 * 3600


def test_json_log_carries_context(tmp_path):
    setup_logging(base_dir=tmp_path, level="INFO")
    try:
        log = get_logger("dealfinder.test", component="watch_runner").bind(watch_id=7)
        log.info("Watch ran")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = (tmp_path / "logs" / "app.log").read_text(encoding="utf-8").splitlines()
        record = json.loads(lines[-1])
        assert record["message"] == "Watch ran"
        assert record["component"] == "watch_runner"
        assert record["watch_id"] == 7
        assert record["level"] == "INFO"
    finally:
        for handler in list(logging.getLogger().handlers):
            handler.close()
        logging.getLogger().handlers.clear()
