# cloud/logging_config.py

import os
import sys
import logging
from dataclasses import dataclass

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ProviderLogger(logging.LoggerAdapter):
    """
    Logger adapter that tags every message with the emitting provider
    and only lets debug messages through when its config asks for them.
    """

    def __init__(self, logger, provider, debug=False):
        super().__init__(logger, {"provider": provider})
        self.provider = provider
        self.debug_enabled = debug

    def process(self, msg, kwargs):
        return f"[{self.provider}] {msg}", kwargs

    def isEnabledFor(self, level):
        if level < logging.INFO and not self.debug_enabled:
            return False
        return self.logger.isEnabledFor(level)


@dataclass(frozen=True)
class LogConfig:
    """Logging settings handed to each component at construction."""

    debug: bool = False
    log_file: str | None = None

    def get_logger(self, provider: str, name: str = "cloud_saver") -> ProviderLogger:
        logger = logging.getLogger(name)
        # Gating happens in the adapter, so the logger itself must pass debug records.
        logger.setLevel(logging.DEBUG)
        return ProviderLogger(logger, provider, debug=self.debug)


def setup_logging(log_config: LogConfig) -> None:
    """Configure root logging to stdout and, if set, a log file."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_config.log_file:
        log_dir = os.path.dirname(log_config.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_config.log_file))

    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
    )
