"""
Unit Tests: daemon loop and entry point
"""

import threading
from unittest.mock import Mock

import pytest

from backend import autoscaler_daemon
from backend.autoscaler_daemon import Daemon, main
from backend.cloud_saver import CloudSaver, empty_configuration
from cloud.errors import ConfigError


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch):
    monkeypatch.setattr(autoscaler_daemon.signal, "signal", Mock())


def fake_saver(running=True):
    saver = Mock(spec=CloudSaver)
    saver.window_size = 60.0
    saver.traffic_threshold = 1.0
    saver.dry_run = False
    saver.running = running
    return saver


def test_counts_ticks_until_signal():
    saver = fake_saver()
    daemon = Daemon(saver)
    saver.provide.side_effect = lambda q: (q.put(empty_configuration()), q.put(empty_configuration()))

    timer = threading.Timer(0.3, daemon.signal_handler, args=(None, None))
    timer.start()
    try:
        daemon.run(poll_seconds=0.05)
    finally:
        timer.cancel()

    assert daemon.shutdown_requested
    assert daemon.tick_count == 2
    saver.init.assert_called_once()
    saver.stop.assert_called_once()


def test_exits_when_worker_dies():
    saver = fake_saver(running=False)

    Daemon(saver).run(poll_seconds=0.05)

    saver.stop.assert_called_once()


def test_provide_failure_propagates():
    saver = fake_saver()
    saver.provide.side_effect = RuntimeError("already running")

    with pytest.raises(RuntimeError):
        Daemon(saver).run()

    saver.provide.assert_called_once()
    saver.stop.assert_called_once()


def test_stop_called_when_init_fails():
    saver = fake_saver()
    saver.init.side_effect = ConfigError("traffic threshold must be non-negative")

    with pytest.raises(ConfigError):
        Daemon(saver).run()

    saver.provide.assert_not_called()
    saver.stop.assert_called_once()


def test_main_bad_threshold_returns_2():
    assert main({"TRAFFIC_THRESHOLD": "plenty"}) == 2


def test_main_short_window_returns_2(tmp_path):
    env = {"WINDOW_SIZE": "30s", "LOG_FILE": str(tmp_path / "cloud_saver.log")}
    assert main(env) == 2


def test_main_unknown_provider_returns_2(tmp_path):
    env = {"CLOUD_TYPE": "aws", "LOG_FILE": str(tmp_path / "cloud_saver.log")}
    assert main(env) == 2


def reset_timers():
    return {t for t in threading.enumerate() if t.name == "mock-reset-timer" and t.is_alive()}


def test_main_init_failure_cancels_reset_timer(tmp_path):
    before = reset_timers()
    env = {
        "TRAFFIC_THRESHOLD": "-1",
        "MOCK_INITIAL_SCALE": "web=1",
        "MOCK_RESET_AFTER": "1h",
        "LOG_FILE": str(tmp_path / "cloud_saver.log"),
    }

    assert main(env) == 2

    assert reset_timers() - before == set()
