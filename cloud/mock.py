# cloud/mock.py

import threading
from contextlib import contextmanager

from cloud.base import CloudService
from cloud.config import CloudServiceConfig, parse_duration
from cloud.errors import ConfigError, ProviderError
from cloud.logging_config import LogConfig


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class MockCloudService(CloudService):
    """
    In-memory cloud service keyed by resource name.

    Scales start from `initial_scale`. With `fail_after` > 0, every scale
    operation after that many calls fails. With `reset_after`, a background
    thread restores the initial scales once the duration elapses.
    """

    provider_name = "mock"

    def __init__(self, config: CloudServiceConfig, log_config: LogConfig | None = None):
        if config is None:
            raise ConfigError("config is required")

        self.reset_after = parse_duration(config.reset_after) if config.reset_after else 0.0
        if config.fail_after < 0:
            raise ConfigError("failAfter must be non-negative")

        self.logger = (log_config or LogConfig()).get_logger(self.provider_name)
        self.logger.info("creating mock service")

        self.config = config
        self.fail_after = config.fail_after
        self.op_count = 0
        self.scale_error: Exception | None = None
        self._scale: dict[str, int] = {}
        self._lock = ReadWriteLock()

        self.reset()

        self._closed = threading.Event()
        self._reset_thread = None
        if self.reset_after > 0:
            self._reset_thread = threading.Thread(
                target=self._reset_timer, name="mock-reset-timer", daemon=True
            )
            self._reset_thread.start()

    def _reset_timer(self):
        if self._closed.wait(self.reset_after):
            return
        self.reset()

    def close(self):
        """Cancel the reset timer, if one is pending."""
        self._closed.set()
        if self._reset_thread is not None:
            self._reset_thread.join()

    def _check_failure(self):
        # Caller holds the write lock.
        self.op_count += 1
        if self.fail_after > 0 and self.op_count > self.fail_after:
            raise ProviderError(f"mock service failed after {self.fail_after} operations")
        if self.scale_error is not None:
            raise self.scale_error

    def scale_down(self, resource_name, cancel=None):
        with self._lock.write():
            self._check_failure()

            if resource_name not in self._scale:
                raise ProviderError(f"service {resource_name} not found")

            current = self._scale[resource_name]
            if current <= 0:
                self.logger.info(f"service {resource_name} already at minimum scale")
                return

            self._scale[resource_name] = current - 1

    def scale_up(self, resource_name, cancel=None):
        with self._lock.write():
            self.logger.info(
                f"scaling up service '{resource_name}' (current scale: {self._scale.get(resource_name, 0)})"
            )
            self._check_failure()
            self._scale[resource_name] = self._scale.get(resource_name, 0) + 1

    def get_current_scale(self, resource_name, cancel=None):
        with self._lock.read():
            if resource_name not in self._scale:
                raise ProviderError(f"service {resource_name} not found")
            return self._scale[resource_name]

    def set_scale(self, resource_name: str, scale: int) -> None:
        with self._lock.write():
            self._scale[resource_name] = scale

    def reset(self) -> None:
        """Restore every scale to its configured initial value."""
        self.logger.info("resetting scale values for mock service")
        with self._lock.write():
            self._scale = dict(self.config.initial_scale or {})
            self.scale_error = None
